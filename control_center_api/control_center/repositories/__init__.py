"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each area of the dashboard
(security, sites, mail, billing, messaging, audit). They assume the provided
AsyncSession has tenant context configured (e.g., using
control_center.core.deps.get_tenant_session).
"""
