"""Contact ORM model."""

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, IdMixin, TimestampMixin


class LinkPrecedence(str, enum.Enum):
    """Position of a contact inside its identity cluster."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(Base, IdMixin, TimestampMixin):
    """One observed (email, phone number) pair linked into an identity cluster."""

    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL)"
            " OR (link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contacts_link_precedence_linked_id",
        ),
        CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="ck_contacts_has_identifier",
        ),
    )

    email: Mapped[str | None] = mapped_column(String(254), index=True, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    linked_id: Mapped[int | None] = mapped_column(
        ForeignKey("contacts.id", ondelete="RESTRICT"),
        index=True,
        nullable=True,
    )
    link_precedence: Mapped[LinkPrecedence] = mapped_column(
        Enum(
            LinkPrecedence,
            name="link_precedence",
            values_callable=lambda members: [member.value for member in members],
        ),
        index=True,
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
