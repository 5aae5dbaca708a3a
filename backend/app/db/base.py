"""SQLAlchemy metadata registry import for Alembic."""

from app.models import Contact
from app.models.base import Base

__all__ = ["Base", "Contact"]
