"""Deterministic normalization of email addresses and phone numbers."""

from __future__ import annotations

import re

from app.identity.errors import InvalidInputError


_EMAIL_RE = re.compile(r"^[^@\s<>'\"]+@[^@\s<>'\"]+\.[^@\s<>'\"]+$")
_PHONE_FORMATTING_RE = re.compile(r"[\s\-().]")
_PHONE_RE = re.compile(r"^\+?\d{1,15}$")

_MAX_EMAIL_LENGTH = 254
_MAX_LOCAL_PART_LENGTH = 64


def normalize_email(value: str | None) -> str | None:
    """Return a lowercase, trimmed email, or None when the value is missing or blank."""

    if value is None:
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    if len(cleaned) > _MAX_EMAIL_LENGTH or not _EMAIL_RE.match(cleaned):
        raise InvalidInputError(f"Invalid email address: {value!r}")

    local_part, domain = cleaned.split("@", 1)
    tld = domain.rsplit(".", 1)[-1]
    if (
        len(local_part) > _MAX_LOCAL_PART_LENGTH
        or ".." in cleaned
        or local_part.startswith(".")
        or local_part.endswith(".")
        or domain.startswith("-")
        or domain.endswith("-")
        or len(tld) < 2
    ):
        raise InvalidInputError(f"Invalid email address: {value!r}")
    return cleaned


def normalize_phone_number(value: str | int | None) -> str | None:
    """Strip formatting characters, keeping digits and an optional leading plus."""

    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid phone number: {value!r}")
    raw = str(value).strip()
    if raw.startswith("-"):
        raise InvalidInputError(f"Invalid phone number: {value!r}")
    cleaned = _PHONE_FORMATTING_RE.sub("", raw)
    if not cleaned:
        return None
    if not _PHONE_RE.match(cleaned):
        raise InvalidInputError(f"Invalid phone number: {value!r}")
    return cleaned
