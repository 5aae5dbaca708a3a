"""Identify service: run the resolver, retry transient store failures, shape the response."""

from __future__ import annotations

import logging
from time import perf_counter, sleep

from app.identity import DataIntegrityError, Identity, IdentityResolver, StoreError
from app.schemas.contact import ContactRead, IdentifiedContact, IdentifyResponse, IdentityRead

logger = logging.getLogger(__name__)


def identify_contact(
    resolver: IdentityResolver,
    email: str | None,
    phone_number: str | None,
    *,
    max_attempts: int = 1,
    backoff_seconds: float = 0.0,
) -> Identity:
    """Resolve one observation, re-running the whole resolution on retryable store errors.

    Every attempt starts from a fresh transaction, so a lost merge race is
    re-derived against the state the winning transaction committed.
    """

    started = perf_counter()
    attempt = 0
    while True:
        attempt += 1
        try:
            identity = resolver.resolve(email, phone_number)
        except StoreError as exc:
            if not exc.retryable or attempt >= max(1, max_attempts):
                logger.error(
                    "identity.resolve_failed attempt=%d retryable=%s email=%s has_phone=%s error=%s",
                    attempt,
                    exc.retryable,
                    mask_email(email),
                    phone_number is not None,
                    exc,
                )
                raise
            logger.warning("identity.resolve_retry attempt=%d error=%s", attempt, exc)
            if backoff_seconds > 0:
                sleep(backoff_seconds * attempt)
            continue
        except DataIntegrityError as exc:
            logger.error(
                "identity.data_integrity_violation contact_ids=%s error=%s",
                list(exc.contact_ids),
                exc,
            )
            raise

        logger.info(
            "identity.resolve_complete primary_id=%d secondaries=%d attempts=%d elapsed_ms=%.2f",
            identity.primary.id,
            len(identity.secondaries),
            attempt,
            (perf_counter() - started) * 1000.0,
        )
        return identity


def build_identify_response(identity: Identity) -> IdentifyResponse:
    """Shape an identity as the ``POST /identify`` payload."""

    return IdentifyResponse(
        contact=IdentifiedContact(
            primary_contact_id=identity.primary.id,
            emails=identity.emails,
            phone_numbers=identity.phone_numbers,
            secondary_contact_ids=identity.secondary_ids,
        )
    )


def build_identity_read(identity: Identity) -> IdentityRead:
    return IdentityRead(
        primary=ContactRead.model_validate(identity.primary),
        secondaries=[ContactRead.model_validate(secondary) for secondary in identity.secondaries],
        emails=identity.emails,
        phone_numbers=identity.phone_numbers,
    )


def mask_email(email: str | None) -> str | None:
    """Keep the first character of the local part and the domain."""

    if email is None:
        return None
    local_part, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local_part[:1]}***@{domain}"
