"""FastAPI dependencies for database and identity store access."""

from collections.abc import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db.session import SessionLocal
from app.identity import IdentityResolver, SqlAlchemyContactStore


def get_db() -> Iterator[Session]:
    """Yield a request-scoped session."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_contact_store() -> SqlAlchemyContactStore:
    """Return the contact store bound to the application session factory."""

    return SqlAlchemyContactStore(SessionLocal)


def get_identity_resolver(
    store: SqlAlchemyContactStore = Depends(get_contact_store),
    settings: Settings = Depends(get_settings),
) -> IdentityResolver:
    """Build a resolver around the injected store."""

    return IdentityResolver(store, timeout_seconds=settings.store_timeout_seconds)
