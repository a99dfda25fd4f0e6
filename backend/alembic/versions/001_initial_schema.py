"""初始数据库架构 - 用户和 OTP 验证码

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# 版本标识符
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 用户表
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("created_via", sa.String(20), nullable=False, server_default="password"),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("last_otp_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # OTP 验证码表
    op.create_table(
        "otp_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_otp_requests_email", "otp_requests", ["email"])
    op.create_index("ix_otp_requests_code_email", "otp_requests", ["code", "email"])


def downgrade() -> None:
    op.drop_index("ix_otp_requests_code_email", table_name="otp_requests")
    op.drop_index("ix_otp_requests_email", table_name="otp_requests")
    op.drop_table("otp_requests")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
