"""Identity resolution package."""

from app.identity.domain import ContactRecord, Identity, PrimaryContact, SecondaryContact
from app.identity.errors import (
    DataIntegrityError,
    IdentityError,
    InvalidInputError,
    ResolutionConflictError,
    StoreError,
)
from app.identity.resolver import IdentityResolver
from app.identity.store import ContactStore, SqlAlchemyContactStore

__all__ = [
    "ContactRecord",
    "ContactStore",
    "DataIntegrityError",
    "Identity",
    "IdentityError",
    "IdentityResolver",
    "InvalidInputError",
    "PrimaryContact",
    "ResolutionConflictError",
    "SecondaryContact",
    "SqlAlchemyContactStore",
    "StoreError",
]
