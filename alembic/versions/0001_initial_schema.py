"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


PEER_STATUS = ("available", "active", "inactive")
USER_STATUS = ("active", "inactive")
AUDIT_EVENTS = (
    "LOGIN",
    "PEER_CLAIM",
    "PEER_ASSIGN",
    "PEER_DOWNLOAD",
    "PEER_REVOKE",
    "RESET_PASSWORD",
    "PASSWORD_CHANGE",
    "LIMIT_CHANGE",
    "USER_DEACTIVATE",
    "IMPORT",
)


def upgrade() -> None:
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
    )
    op.create_index("ix_roles_id", "roles", ["id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("status", sa.Enum(*USER_STATUS, name="user_status_enum"), nullable=False),
        sa.Column("peer_limit", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_status", "users", ["status"])

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id"), primary_key=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("files_imported", sa.Integer(), nullable=False),
        sa.Column("imported_by", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "peers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("public_key", sa.String(255), nullable=False),
        sa.Column("status", sa.Enum(*PEER_STATUS, name="peer_status_enum"), nullable=False),
        sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("friendly_name", sa.String(63), nullable=True, unique=True),
        sa.Column("config_ciphertext", sa.Text(), nullable=False),
        sa.Column("imported_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("import_batch_id", sa.String(36), sa.ForeignKey("import_batches.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_peers_public_key", "peers", ["public_key"], unique=True)
    op.create_index("ix_peers_status", "peers", ["status"])
    op.create_index("ix_peers_owner_id", "peers", ["owner_id"])
    op.create_index("ix_peers_imported_at", "peers", ["imported_at"])
    op.create_index("ix_peers_claimed_at", "peers", ["claimed_at"])
    op.create_index("ix_peers_import_batch_id", "peers", ["import_batch_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("event_type", sa.Enum(*AUDIT_EVENTS, name="audit_event_enum"), nullable=False),
        sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("subject_table", sa.String(50), nullable=False),
        sa.Column("subject_id", sa.String(36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_log_id", "audit_log", ["id"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_subject_id", "audit_log", ["subject_id"])

    op.create_table(
        "user_limit_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("old_limit", sa.Integer(), nullable=False),
        sa.Column("new_limit", sa.Integer(), nullable=False),
        sa.Column("changed_by", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_limit_history_id", "user_limit_history", ["id"])
    op.create_index("ix_user_limit_history_user_id", "user_limit_history", ["user_id"])

    op.create_table(
        "config_kv",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "accepted_domains",
        sa.Column("domain", sa.String(255), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key_hash", sa.String(255), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_id", "api_keys", ["id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("accepted_domains")
    op.drop_table("config_kv")
    op.drop_table("user_limit_history")
    op.drop_table("audit_log")
    op.drop_table("peers")
    op.drop_table("import_batches")
    op.drop_table("user_roles")
    op.drop_table("users")
    op.drop_table("roles")
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in ("audit_event_enum", "peer_status_enum", "user_status_enum"):
            sa.Enum(name=name).drop(bind, checkfirst=True)
