"""contacts table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

link_precedence = sa.Enum("primary", "secondary", name="link_precedence")


def upgrade() -> None:
    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=254), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("linked_id", sa.Integer(), nullable=True),
        sa.Column("link_precedence", link_precedence, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL)"
            " OR (link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contacts_link_precedence_linked_id",
        ),
        sa.CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="ck_contacts_has_identifier",
        ),
        sa.ForeignKeyConstraint(["linked_id"], ["contacts.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contacts_email", "contacts", ["email"], unique=False)
    op.create_index("ix_contacts_phone_number", "contacts", ["phone_number"], unique=False)
    op.create_index("ix_contacts_linked_id", "contacts", ["linked_id"], unique=False)
    op.create_index("ix_contacts_link_precedence", "contacts", ["link_precedence"], unique=False)
    op.create_index("ix_contacts_created_at", "contacts", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_contacts_created_at", table_name="contacts")
    op.drop_index("ix_contacts_link_precedence", table_name="contacts")
    op.drop_index("ix_contacts_linked_id", table_name="contacts")
    op.drop_index("ix_contacts_phone_number", table_name="contacts")
    op.drop_index("ix_contacts_email", table_name="contacts")
    op.drop_table("contacts")
    link_precedence.drop(op.get_bind(), checkfirst=True)
