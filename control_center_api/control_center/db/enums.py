"""
Status enumerations shared by ORM models (check constraints), migrations and API schemas.
"""
from __future__ import annotations

from enum import Enum


class AppRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    EDITOR = "editor"


class PaymentGateway(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BTC = "btc"
    USDT = "usdt"
    ETH = "eth"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScanType(str, Enum):
    DAILY_BUG = "daily_bug"
    DAILY_SECURITY = "daily_security"


class ScanStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MailFolder(str, Enum):
    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    ARCHIVE = "archive"
    SPAM = "spam"
    TRASH = "trash"


# PUBLIC_INTERFACE
def values_sql(enum_cls: type[Enum]) -> str:
    """Render enum values as a SQL IN-list literal for check constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
