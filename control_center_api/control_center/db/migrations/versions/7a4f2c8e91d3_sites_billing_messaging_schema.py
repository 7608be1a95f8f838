"""Sites, integrations, mail, billing, messaging and security-audit schema.

Adds tenant-scoped tables with UUID PKs, timestamps, indexes, check constraints and RLS policies:
- Sites: sites, imported_apps, site_integrations, credentials
- Mail: email_accounts, mail_messages
- Billing: payment_providers, payment_transactions
- Messaging: whatsapp_chats, whatsapp_messages
- Security: security_scans, godmode_sessions
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "7a4f2c8e91d3"
down_revision: Union[str, None] = "3c1d9e7a2b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_DEFAULT = sa.text("NULLIF(current_setting('app.tenant_id', true), '')::uuid")
UUID_DEFAULT = sa.text("uuid_generate_v4()")
NOW = sa.text("now()")
JSONB_EMPTY = sa.text("'{}'::jsonb")
JSONB_EMPTY_LIST = sa.text("'[]'::jsonb")

GATEWAYS = "'stripe', 'paypal', 'btc', 'usdt', 'eth'"
TX_STATUSES = "'pending', 'confirmed', 'failed', 'refunded', 'cancelled'"
MAIL_FOLDERS = "'inbox', 'sent', 'drafts', 'archive', 'spam', 'trash'"

# Creation order; dropped in reverse
TENANT_SCOPED = [
    "sites",
    "imported_apps",
    "site_integrations",
    "credentials",
    "email_accounts",
    "mail_messages",
    "payment_providers",
    "payment_transactions",
    "whatsapp_chats",
    "whatsapp_messages",
    "security_scans",
    "godmode_sessions",
]


def _enable_rls_with_policy(table: str) -> None:
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
    op.execute(
        f"""
        CREATE POLICY {table}_tenant_isolation ON {table}
        USING (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid)
        WITH CHECK (tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid);
        """
    )


def _base(site_fk: bool = False, updated_at: bool = True) -> list:
    cols = [
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    ]
    if updated_at:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False))
    if site_fk:
        cols.append(sa.Column("site_id", sa.UUID(), nullable=True))
        cols.append(sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"))
    return cols


def upgrade() -> None:
    # SITES
    op.create_table(
        "sites",
        *_base(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("health_status", sa.Text(), nullable=True),
        sa.Column("ssl_status", sa.Text(), nullable=True),
        sa.Column("owner_type", sa.Text(), nullable=True),
        sa.Column("app_color", sa.Text(), nullable=True),
        sa.Column("lovable_url", sa.Text(), nullable=True),
        sa.Column("uptime_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.UniqueConstraint("tenant_id", "name", name="uq_sites_tenant_name"),
    )

    op.create_table(
        "imported_apps",
        *_base(),
        sa.Column("site_id", sa.UUID(), nullable=False, unique=True),
        sa.Column("github_repo_url", sa.Text(), nullable=True),
        sa.Column("github_repo_owner", sa.Text(), nullable=True),
        sa.Column("github_repo_name", sa.Text(), nullable=True),
        sa.Column("github_default_branch", sa.Text(), nullable=True),
        sa.Column("github_visibility", sa.Text(), nullable=True),
        sa.Column("github_last_push_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("github_last_commit_sha", sa.Text(), nullable=True),
        sa.Column("detected_integrations", postgresql.ARRAY(sa.Text()), server_default=sa.text("'{}'"), nullable=False),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "site_integrations",
        *_base(site_fk=True),
        sa.Column("integration_id", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("config", postgresql.JSONB(), server_default=JSONB_EMPTY, nullable=False),
        sa.UniqueConstraint("tenant_id", "site_id", "integration_id", name="uq_site_integrations_tenant_site_integration"),
    )

    op.create_table(
        "credentials",
        *_base(site_fk=True),
        sa.Column("integration_id", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("additional_fields", postgresql.JSONB(), server_default=JSONB_EMPTY, nullable=False),
        sa.Index("ix_credentials_tenant_site", "tenant_id", "site_id"),
    )

    # MAIL
    op.create_table(
        "email_accounts",
        *_base(site_fk=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("password", sa.Text(), nullable=True),
    )

    op.create_table(
        "mail_messages",
        *_base(),
        sa.Column("email_account_id", sa.UUID(), nullable=False),
        sa.Column("folder", sa.Text(), server_default=sa.text("'inbox'"), nullable=False),
        sa.Column("sender", sa.Text(), nullable=False),
        sa.Column("recipients", postgresql.ARRAY(sa.Text()), server_default=sa.text("'{}'"), nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_starred", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["email_account_id"], ["email_accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint(f"folder IN ({MAIL_FOLDERS})", name="ck_mail_messages_folder_valid"),
        sa.Index("ix_mail_messages_account_folder", "email_account_id", "folder"),
    )

    # BILLING
    op.create_table(
        "payment_providers",
        *_base(site_fk=True),
        sa.Column("provider", sa.Text(), nullable=False),
        sa.Column("is_connected", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_sandbox", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("credentials_encrypted", sa.Text(), nullable=True),
        sa.Column("webhook_secret", sa.Text(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(f"provider IN ({GATEWAYS})", name="ck_payment_providers_provider_valid"),
        sa.UniqueConstraint("tenant_id", "site_id", "provider", name="uq_payment_providers_tenant_site_provider"),
    )

    op.create_table(
        "payment_transactions",
        *_base(site_fk=True),
        sa.Column("gateway_source", sa.Text(), nullable=False),
        sa.Column("gateway_ref_id", sa.Text(), nullable=False),
        sa.Column("amount_usd", sa.Numeric(18, 2), nullable=False),
        sa.Column("native_amount", sa.Numeric(28, 10), nullable=False),
        sa.Column("fees_usd", sa.Numeric(18, 2), nullable=True),
        sa.Column("crypto_network", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), server_default=JSONB_EMPTY, nullable=False),
        sa.CheckConstraint(f"gateway_source IN ({GATEWAYS})", name="ck_payment_transactions_gateway_source_valid"),
        sa.CheckConstraint(f"status IN ({TX_STATUSES})", name="ck_payment_transactions_status_valid"),
        sa.UniqueConstraint("tenant_id", "gateway_source", "gateway_ref_id", name="uq_payment_transactions_tenant_gateway_ref"),
        sa.Index("ix_payment_transactions_tenant_status_created_at", "tenant_id", "status", "created_at"),
    )

    # MESSAGING
    op.create_table(
        "whatsapp_chats",
        *_base(),
        sa.Column("contact_phone", sa.Text(), nullable=False),
        sa.Column("contact_name", sa.Text(), nullable=True),
        sa.Column("profile_picture_url", sa.Text(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_preview", sa.Text(), nullable=True),
        sa.Column("unread_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_muted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.UniqueConstraint("tenant_id", "contact_phone", name="uq_whatsapp_chats_tenant_contact_phone"),
    )

    op.create_table(
        "whatsapp_messages",
        *_base(updated_at=False),
        sa.Column("chat_id", sa.UUID(), nullable=False),
        sa.Column("wa_message_id", sa.Text(), nullable=True),
        sa.Column("direction", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("media_type", sa.Text(), nullable=True),
        sa.Column("media_url", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["chat_id"], ["whatsapp_chats.id"], ondelete="CASCADE"),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_whatsapp_messages_direction_valid"),
        sa.Index("ix_whatsapp_messages_chat_created_at", "chat_id", "created_at"),
        sa.Index("ix_whatsapp_messages_wa_message_id", "wa_message_id"),
    )

    # SECURITY
    op.create_table(
        "security_scans",
        *_base(updated_at=False),
        sa.Column("scan_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default=sa.text("'running'"), nullable=False),
        sa.Column("findings", postgresql.JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.Column("severity_counts", postgresql.JSONB(), server_default=JSONB_EMPTY, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("scan_type IN ('daily_bug', 'daily_security')", name="ck_security_scans_scan_type_valid"),
        sa.CheckConstraint("status IN ('running', 'completed', 'failed')", name="ck_security_scans_status_valid"),
    )

    op.create_table(
        "godmode_sessions",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("admin_user_id", sa.UUID(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("actions_log", postgresql.JSONB(), server_default=JSONB_EMPTY_LIST, nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["admin_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.Index("ix_godmode_sessions_admin_active", "admin_user_id", "is_active"),
    )

    for tbl in TENANT_SCOPED:
        _enable_rls_with_policy(tbl)


def downgrade() -> None:
    for tbl in reversed(TENANT_SCOPED):
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")
        op.drop_table(tbl)
