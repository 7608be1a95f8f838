"""
API route modules for the control center.

This package contains subrouters for:
- Auth, Users, Roles, Tenants: authentication and administration
- Sites, Credentials, Mail, Billing, WhatsApp: tenant-scoped records
- God Mode, Scans, Logs: super-admin tooling and audit
- Integration Health, Relays, Social: simulated checks and outbound relays
- Reports: CSV/XLSX/PDF exports

Routers are included from control_center.api.main (under the /api/v1 prefix).
"""
