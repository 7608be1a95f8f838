"""
ORM models for Control Center entities: tenancy and security, sites and their
integrations, mail, billing, WhatsApp messaging, and audit/scan records.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .security import (  # noqa: F401
    Tenant,
    User,
    Role,
    Permission,
    UserRole,
    RolePermission,
)
from .sites import (  # noqa: F401
    Site,
    ImportedApp,
    SiteIntegration,
    Credential,
)
from .mail import (  # noqa: F401
    EmailAccount,
    MailMessage,
)
from .billing import (  # noqa: F401
    PaymentProvider,
    PaymentTransaction,
)
from .messaging import (  # noqa: F401
    WhatsAppChat,
    WhatsAppMessage,
)
from .audit import (  # noqa: F401
    AuditLog,
    ErrorLog,
    SecurityScan,
    GodModeSession,
)
