"""Create mailroom tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates `contacts`, `templates`, `ai_prompt_templates` and `users`.
How:   Portable column types only (String ids, timezone-aware DateTime) so the
       same revision runs on PostgreSQL and SQLite.

Every table has:
    - id: 24-character hexadecimal primary key, generated by the application
    - a unique constraint on its key field (email or name)
    - created_at / updated_at, indexed

Rollback: downgrade() drops all four tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ATTACHMENT_CHECK = (
    "(attachment_filename IS NULL AND attachment_path IS NULL AND attachment_mimetype IS NULL)"
    " OR "
    "(attachment_filename IS NOT NULL AND attachment_path IS NOT NULL"
    " AND attachment_mimetype IS NOT NULL)"
)


def _common_columns():
    return [
        sa.Column("id", sa.String(24), nullable=False, comment="24-character hexadecimal record id"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _attachment_columns():
    return [
        sa.Column("attachment_filename", sa.String(255), nullable=True),
        sa.Column("attachment_path", sa.String(512), nullable=True),
        sa.Column("attachment_mimetype", sa.String(255), nullable=True),
    ]


def _timestamp_indexes(table: str) -> None:
    op.create_index(f"ix_{table}_created_at", table, ["created_at"])
    op.create_index(f"ix_{table}_updated_at", table, ["updated_at"])


def upgrade() -> None:
    op.create_table(
        "contacts",
        *_common_columns(),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone_number", sa.String(64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("web_site", sa.String(512), nullable=True),
        sa.Column(
            "type",
            sa.Enum("agent", "client", "vendor", "other", name="contact_type", native_enum=False),
            nullable=False,
            server_default=sa.text("'other'"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_contacts_email"),
    )
    _timestamp_indexes("contacts")

    op.create_table(
        "templates",
        *_common_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(998), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_attachment_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_templates_name"),
        sa.CheckConstraint(ATTACHMENT_CHECK, name="ck_templates_attachment_complete"),
    )
    _timestamp_indexes("templates")

    op.create_table(
        "ai_prompt_templates",
        *_common_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("agent", sa.String(255), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        *_attachment_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_ai_prompt_templates_name"),
        sa.CheckConstraint(ATTACHMENT_CHECK, name="ck_ai_prompt_templates_attachment_complete"),
    )
    _timestamp_indexes("ai_prompt_templates")
    op.create_index("ix_ai_prompt_templates_agent", "ai_prompt_templates", ["agent"])

    op.create_table(
        "users",
        *_common_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("profile_image_filename", sa.String(255), nullable=True),
        sa.Column("profile_image_path", sa.String(512), nullable=True),
        sa.Column("profile_image_mimetype", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "(profile_image_path IS NULL AND profile_image_mimetype IS NULL)"
            " OR (profile_image_path IS NOT NULL AND profile_image_mimetype IS NOT NULL)",
            name="ck_users_profile_image_complete",
        ),
    )
    _timestamp_indexes("users")


def downgrade() -> None:
    for table in ("users", "ai_prompt_templates", "templates", "contacts"):
        op.drop_table(table)
