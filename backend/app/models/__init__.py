"""ORM models package exports."""

from app.models.contact import Contact, LinkPrecedence

__all__ = ["Contact", "LinkPrecedence"]
