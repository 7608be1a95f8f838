"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by dashboard area (sites, mail, billing, messaging,
godmode, scans, relays, ...) and also include common reusable models such as
pagination and the standard error envelope.
"""

from .common import MessageResponse  # noqa: F401
