"""accounts, admins and membership schema

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261001_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    account_status_enum = sa.Enum("active", "inactive", "suspended", name="accountstatus")
    sub_account_role_enum = sa.Enum("admin", "manager", "operator", name="subaccountrole")
    admin_role_enum = sa.Enum("super_admin", "admin", name="adminrole")
    reward_type_enum = sa.Enum("free_malls", "discount", "cash", "points", name="rewardtype")
    reward_status_enum = sa.Enum("pending", "granted", "expired", name="rewardstatus")
    plugin_status_enum = sa.Enum("active", "inactive", "deprecated", name="pluginstatus")

    bind = op.get_bind()
    for enum in (
        account_status_enum,
        sub_account_role_enum,
        admin_role_enum,
        reward_type_enum,
        reward_status_enum,
        plugin_status_enum,
    ):
        enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("invite_code", sa.String(length=20), nullable=False),
        sa.Column("avatar", sa.String(length=255), nullable=True),
        sa.Column("status", account_status_enum, nullable=False),
        sa.Column("last_login_time", sa.DateTime(), nullable=True),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_invite_code"), "users", ["invite_code"], unique=True)

    op.create_table(
        "sub_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parent_user_id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("real_name", sa.String(length=50), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("role", sub_account_role_enum, nullable=False),
        sa.Column("status", account_status_enum, nullable=False),
        sa.Column("responsible_malls", sa.JSON(), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("last_login_time", sa.DateTime(), nullable=True),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["parent_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sub_accounts_id"), "sub_accounts", ["id"], unique=False)
    op.create_index(op.f("ix_sub_accounts_parent_user_id"), "sub_accounts", ["parent_user_id"], unique=False)
    op.create_index(op.f("ix_sub_accounts_username"), "sub_accounts", ["username"], unique=True)

    op.create_table(
        "user_mall_bindings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("mall_id", sa.BigInteger(), nullable=False),
        sa.Column("mall_name", sa.String(length=255), nullable=False),
        sa.Column("bind_time", sa.DateTime(), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_mall_bindings_id"), "user_mall_bindings", ["id"], unique=False)
    op.create_index(op.f("ix_user_mall_bindings_user_id"), "user_mall_bindings", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_mall_bindings_mall_id"), "user_mall_bindings", ["mall_id"], unique=True)
    op.create_index(op.f("ix_user_mall_bindings_mall_name"), "user_mall_bindings", ["mall_name"], unique=False)

    op.create_table(
        "user_operation_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("operation_type", sa.String(length=50), nullable=False),
        sa.Column("operation_desc", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_operation_logs_id"), "user_operation_logs", ["id"], unique=False)
    op.create_index(op.f("ix_user_operation_logs_user_id"), "user_operation_logs", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_user_operation_logs_operation_type"), "user_operation_logs", ["operation_type"], unique=False
    )
    op.create_index(
        op.f("ix_user_operation_logs_created_time"), "user_operation_logs", ["created_time"], unique=False
    )

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=False),
        sa.Column("expires_time", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_password_reset_tokens_id"), "password_reset_tokens", ["id"], unique=False)
    op.create_index(op.f("ix_password_reset_tokens_user_id"), "password_reset_tokens", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_password_reset_tokens_token_hash"), "password_reset_tokens", ["token_hash"], unique=True
    )
    op.create_index(
        op.f("ix_password_reset_tokens_expires_time"), "password_reset_tokens", ["expires_time"], unique=False
    )

    op.create_table(
        "admins",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("real_name", sa.String(length=50), nullable=True),
        sa.Column("status", account_status_enum, nullable=False),
        sa.Column("role", admin_role_enum, nullable=False),
        sa.Column("last_login_time", sa.DateTime(), nullable=True),
        sa.Column("last_login_ip", sa.String(length=45), nullable=True),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_admins_id"), "admins", ["id"], unique=False)
    op.create_index(op.f("ix_admins_username"), "admins", ["username"], unique=True)

    op.create_table(
        "membership_packages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("package_name", sa.String(length=255), nullable=False),
        sa.Column("package_desc", sa.Text(), nullable=True),
        sa.Column("package_type", sa.String(length=50), nullable=False),
        sa.Column("original_price", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("max_bind_mall", sa.Integer(), nullable=False),
        sa.Column("discount_percent", sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column("discount_start_time", sa.DateTime(), nullable=True),
        sa.Column("discount_end_time", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_membership_packages_id"), "membership_packages", ["id"], unique=False)
    op.create_index(
        op.f("ix_membership_packages_package_type"), "membership_packages", ["package_type"], unique=False
    )
    op.create_index(op.f("ix_membership_packages_is_active"), "membership_packages", ["is_active"], unique=False)

    op.create_table(
        "user_packages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=False),
        sa.Column("order_time", sa.DateTime(), nullable=False),
        sa.Column("expire_time", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["package_id"], ["membership_packages.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_packages_id"), "user_packages", ["id"], unique=False)
    op.create_index(op.f("ix_user_packages_user_id"), "user_packages", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_packages_package_id"), "user_packages", ["package_id"], unique=False)
    op.create_index(op.f("ix_user_packages_expire_time"), "user_packages", ["expire_time"], unique=False)
    op.create_index(op.f("ix_user_packages_is_active"), "user_packages", ["is_active"], unique=False)

    op.create_table(
        "invitations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inviter_id", sa.Integer(), nullable=False),
        sa.Column("invitee_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["inviter_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invitee_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_invitations_id"), "invitations", ["id"], unique=False)
    op.create_index(op.f("ix_invitations_inviter_id"), "invitations", ["inviter_id"], unique=False)
    op.create_index(op.f("ix_invitations_invitee_id"), "invitations", ["invitee_id"], unique=True)

    op.create_table(
        "invitation_rewards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inviter_id", sa.Integer(), nullable=False),
        sa.Column("invitee_id", sa.Integer(), nullable=False),
        sa.Column("mall_id", sa.BigInteger(), nullable=False),
        sa.Column("mall_name", sa.String(length=255), nullable=True),
        sa.Column("reward_type", reward_type_enum, nullable=False),
        sa.Column("reward_value", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("status", reward_status_enum, nullable=False),
        sa.Column("granted_at", sa.DateTime(), nullable=True),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["inviter_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invitee_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_invitation_rewards_id"), "invitation_rewards", ["id"], unique=False)
    op.create_index(op.f("ix_invitation_rewards_inviter_id"), "invitation_rewards", ["inviter_id"], unique=False)
    op.create_index(op.f("ix_invitation_rewards_invitee_id"), "invitation_rewards", ["invitee_id"], unique=False)
    op.create_index(op.f("ix_invitation_rewards_mall_id"), "invitation_rewards", ["mall_id"], unique=True)

    op.create_table(
        "plugin_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("version", sa.String(length=20), nullable=False),
        sa.Column("release_date", sa.DateTime(), nullable=False),
        sa.Column("download_url", sa.String(length=500), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("changelog", sa.Text(), nullable=True),
        sa.Column("is_latest", sa.Boolean(), nullable=False),
        sa.Column("status", plugin_status_enum, nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_plugin_versions_id"), "plugin_versions", ["id"], unique=False)
    op.create_index(op.f("ix_plugin_versions_version"), "plugin_versions", ["version"], unique=True)
    op.create_index(op.f("ix_plugin_versions_is_latest"), "plugin_versions", ["is_latest"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_plugin_versions_is_latest"), table_name="plugin_versions")
    op.drop_index(op.f("ix_plugin_versions_version"), table_name="plugin_versions")
    op.drop_index(op.f("ix_plugin_versions_id"), table_name="plugin_versions")
    op.drop_table("plugin_versions")

    op.drop_index(op.f("ix_invitation_rewards_mall_id"), table_name="invitation_rewards")
    op.drop_index(op.f("ix_invitation_rewards_invitee_id"), table_name="invitation_rewards")
    op.drop_index(op.f("ix_invitation_rewards_inviter_id"), table_name="invitation_rewards")
    op.drop_index(op.f("ix_invitation_rewards_id"), table_name="invitation_rewards")
    op.drop_table("invitation_rewards")

    op.drop_index(op.f("ix_invitations_invitee_id"), table_name="invitations")
    op.drop_index(op.f("ix_invitations_inviter_id"), table_name="invitations")
    op.drop_index(op.f("ix_invitations_id"), table_name="invitations")
    op.drop_table("invitations")

    op.drop_index(op.f("ix_user_packages_is_active"), table_name="user_packages")
    op.drop_index(op.f("ix_user_packages_expire_time"), table_name="user_packages")
    op.drop_index(op.f("ix_user_packages_package_id"), table_name="user_packages")
    op.drop_index(op.f("ix_user_packages_user_id"), table_name="user_packages")
    op.drop_index(op.f("ix_user_packages_id"), table_name="user_packages")
    op.drop_table("user_packages")

    op.drop_index(op.f("ix_membership_packages_is_active"), table_name="membership_packages")
    op.drop_index(op.f("ix_membership_packages_package_type"), table_name="membership_packages")
    op.drop_index(op.f("ix_membership_packages_id"), table_name="membership_packages")
    op.drop_table("membership_packages")

    op.drop_index(op.f("ix_admins_username"), table_name="admins")
    op.drop_index(op.f("ix_admins_id"), table_name="admins")
    op.drop_table("admins")

    op.drop_index(op.f("ix_password_reset_tokens_expires_time"), table_name="password_reset_tokens")
    op.drop_index(op.f("ix_password_reset_tokens_token_hash"), table_name="password_reset_tokens")
    op.drop_index(op.f("ix_password_reset_tokens_user_id"), table_name="password_reset_tokens")
    op.drop_index(op.f("ix_password_reset_tokens_id"), table_name="password_reset_tokens")
    op.drop_table("password_reset_tokens")

    op.drop_index(op.f("ix_user_operation_logs_created_time"), table_name="user_operation_logs")
    op.drop_index(op.f("ix_user_operation_logs_operation_type"), table_name="user_operation_logs")
    op.drop_index(op.f("ix_user_operation_logs_user_id"), table_name="user_operation_logs")
    op.drop_index(op.f("ix_user_operation_logs_id"), table_name="user_operation_logs")
    op.drop_table("user_operation_logs")

    op.drop_index(op.f("ix_user_mall_bindings_mall_name"), table_name="user_mall_bindings")
    op.drop_index(op.f("ix_user_mall_bindings_mall_id"), table_name="user_mall_bindings")
    op.drop_index(op.f("ix_user_mall_bindings_user_id"), table_name="user_mall_bindings")
    op.drop_index(op.f("ix_user_mall_bindings_id"), table_name="user_mall_bindings")
    op.drop_table("user_mall_bindings")

    op.drop_index(op.f("ix_sub_accounts_username"), table_name="sub_accounts")
    op.drop_index(op.f("ix_sub_accounts_parent_user_id"), table_name="sub_accounts")
    op.drop_index(op.f("ix_sub_accounts_id"), table_name="sub_accounts")
    op.drop_table("sub_accounts")

    op.drop_index(op.f("ix_users_invite_code"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for name in ("pluginstatus", "rewardstatus", "rewardtype", "adminrole", "subaccountrole", "accountstatus"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
