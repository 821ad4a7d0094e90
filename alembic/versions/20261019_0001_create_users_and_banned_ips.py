"""create users and banned ips tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=True),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "banned_ips"):
        op.create_table(
            "banned_ips",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("ip", sa.String(length=255), nullable=False),
            sa.Column("banned_until", sa.BigInteger(), nullable=False),
            sa.Column("attempts", sa.Integer(), nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=True,
                server_default=sa.func.now(),
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=True,
                server_default=sa.func.now(),
            ),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    if not _index_exists(inspector, "users", "ix_users_email"):
        op.create_index("ix_users_email", "users", ["email"], unique=True)
    if not _index_exists(inspector, "users", "ux_users_email_lower"):
        op.create_index("ux_users_email_lower", "users", [sa.text("lower(email)")], unique=True)
    if not _index_exists(inspector, "banned_ips", "ix_banned_ips_ip"):
        op.create_index("ix_banned_ips_ip", "banned_ips", ["ip"], unique=True)
    if not _index_exists(inspector, "banned_ips", "ix_banned_ips_banned_until"):
        op.create_index("ix_banned_ips_banned_until", "banned_ips", ["banned_until"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_banned_ips_banned_until", table_name="banned_ips")
    op.drop_index("ix_banned_ips_ip", table_name="banned_ips")
    op.drop_table("banned_ips")
    op.drop_index("ux_users_email_lower", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
