"""initial_portal_schema

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-01-05

Users (clients and bookkeepers), one monthly package per client per month,
and the statements uploaded into each package.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "a1c2e3f4b5d6"
down_revision = None
branch_labels = None
depends_on = None

user_role = postgresql.ENUM("client", "bookkeeper", name="user_role", create_type=False)
package_status = postgresql.ENUM(
    "need_statements",
    "categorizing",
    "categorized",
    "reconciling",
    "reconciled",
    "finished",
    name="package_status",
    create_type=False,
)
institution_type = postgresql.ENUM(
    "bank", "credit_card", "loan", "other", name="institution_type", create_type=False
)


def upgrade() -> None:
    bind = op.get_bind()
    user_role.create(bind, checkfirst=True)
    package_status.create(bind, checkfirst=True)
    institution_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("company_name", sa.Text(), nullable=True),
        sa.Column("qbo_name", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="client"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "monthly_packages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("status", package_status, nullable=False, server_default="need_statements"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "month", "year", name="user_month_year_idx"),
    )
    op.create_index("ix_monthly_packages_user_id", "monthly_packages", ["user_id"])

    op.create_table(
        "statements",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("monthly_package_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("institution_name", sa.Text(), nullable=False),
        sa.Column("account_last4", sa.String(4), nullable=False),
        sa.Column("institution_type", institution_type, nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["monthly_package_id"], ["monthly_packages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_statements_monthly_package_id", "statements", ["monthly_package_id"])


def downgrade() -> None:
    op.drop_index("ix_statements_monthly_package_id", table_name="statements")
    op.drop_table("statements")
    op.drop_index("ix_monthly_packages_user_id", table_name="monthly_packages")
    op.drop_table("monthly_packages")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    institution_type.drop(bind, checkfirst=True)
    package_status.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
