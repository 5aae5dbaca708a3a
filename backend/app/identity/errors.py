"""Failure taxonomy for identity resolution."""

from __future__ import annotations


class IdentityError(RuntimeError):
    """Base class for identity resolution failures."""


class InvalidInputError(IdentityError, ValueError):
    """Raised when an observation carries neither a usable email nor phone number."""


class DataIntegrityError(IdentityError):
    """Raised when persisted contacts violate the primary/secondary hierarchy."""

    def __init__(self, message: str, *, contact_ids: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.contact_ids = contact_ids


class StoreError(IdentityError):
    """Raised when the contact store fails; the enclosing transaction is rolled back."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ResolutionConflictError(StoreError):
    """Raised when a concurrent resolution changed a cluster this one was about to mutate."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)
