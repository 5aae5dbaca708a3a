"""Domain view of contacts: primaries and secondaries as distinct types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Iterable

from app.models.contact import LinkPrecedence


@dataclass(frozen=True, slots=True)
class PrimaryContact:
    """Canonical, oldest contact of an identity cluster."""

    id: int
    email: str | None
    phone_number: str | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    link_precedence: ClassVar[LinkPrecedence] = LinkPrecedence.PRIMARY
    linked_id: ClassVar[None] = None

    @property
    def identifiers(self) -> tuple[str | None, str | None]:
        return (self.email, self.phone_number)


@dataclass(frozen=True, slots=True)
class SecondaryContact:
    """Alias contact attached to exactly one primary."""

    id: int
    email: str | None
    phone_number: str | None
    linked_id: int
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    link_precedence: ClassVar[LinkPrecedence] = LinkPrecedence.SECONDARY

    @property
    def identifiers(self) -> tuple[str | None, str | None]:
        return (self.email, self.phone_number)


ContactRecord = PrimaryContact | SecondaryContact


@dataclass(frozen=True, slots=True)
class Identity:
    """Consolidated identity: one primary plus its secondaries, oldest first."""

    primary: PrimaryContact
    secondaries: tuple[SecondaryContact, ...] = ()

    @property
    def members(self) -> tuple[ContactRecord, ...]:
        return (self.primary, *self.secondaries)

    @property
    def emails(self) -> list[str]:
        return _distinct(member.email for member in self.members)

    @property
    def phone_numbers(self) -> list[str]:
        return _distinct(member.phone_number for member in self.members)

    @property
    def secondary_ids(self) -> list[int]:
        return [secondary.id for secondary in self.secondaries]


def _distinct(values: Iterable[str | None]) -> list[str]:
    """Keep first appearances, skipping nulls."""

    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
