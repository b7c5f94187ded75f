"""create account tables

Revision ID: 0001_create_account_tables
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_create_account_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("username", sa.String(256), nullable=False),
        sa.Column("normalized_username", sa.String(256), nullable=False),
        sa.Column("email", sa.String(256), nullable=False, server_default=""),
        sa.Column("normalized_email", sa.String(256), nullable=False, server_default=""),
        sa.Column("email_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("password_hash", sa.String(), nullable=False, server_default=""),
        sa.Column("security_stamp", sa.String(36), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("lockout_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("lockout_end", sa.DateTime(), nullable=True),
        sa.Column("access_failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_normalized_username", "users", ["normalized_username"], unique=True)
    op.create_index("ix_users_normalized_email", "users", ["normalized_email"], unique=True)

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("normalized_name", sa.String(256), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
    )
    op.create_index("ix_roles_normalized_name", "roles", ["normalized_name"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_roles_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_user_roles_role_id_roles", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id", name="pk_user_roles"),
    )

    op.create_table(
        "user_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("claim_type", sa.String(256), nullable=False),
        sa.Column("claim_value", sa.String(), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_claims_user_id_users", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_user_claims"),
    )
    op.create_index("ix_user_claims_user_id", "user_claims", ["user_id"])

    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("last_page_visited", sa.String(), nullable=False, server_default="/dashboard"),
        sa.Column("is_nav_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_nav_minified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_profiles_user_id_users", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", name="pk_user_profiles"),
    )

    op.create_table(
        "api_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_time", sa.DateTime(), nullable=False),
        sa.Column("response_millis", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("query_string", sa.String(), nullable=False, server_default=""),
        sa.Column("ip_address", sa.String(64), nullable=False, server_default=""),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_api_logs_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_api_logs"),
    )
    op.create_index("ix_api_logs_user_time", "api_logs", ["user_id", "request_time"])


def downgrade() -> None:
    op.drop_index("ix_api_logs_user_time", table_name="api_logs")
    op.drop_table("api_logs")
    op.drop_table("user_profiles")
    op.drop_index("ix_user_claims_user_id", table_name="user_claims")
    op.drop_table("user_claims")
    op.drop_table("user_roles")
    op.drop_index("ix_roles_normalized_name", table_name="roles")
    op.drop_table("roles")
    op.drop_index("ix_users_normalized_email", table_name="users")
    op.drop_index("ix_users_normalized_username", table_name="users")
    op.drop_table("users")
