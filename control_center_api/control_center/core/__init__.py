"""
Core application utilities for settings, logging, security and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Structured logging with request context
- Password hashing and JWT helpers
- Dependency helpers (tenant extraction, tenant-scoped DB session, role gates)
"""
