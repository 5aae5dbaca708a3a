"""Deterministic contact linking: create, attach, or merge identity clusters."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import cast

from sqlalchemy.orm import Session

from app.identity.domain import ContactRecord, Identity, PrimaryContact, SecondaryContact
from app.identity.errors import DataIntegrityError, InvalidInputError, ResolutionConflictError
from app.identity.store import ContactStore
from app.models.contact import LinkPrecedence

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolve an (email, phone number) observation into its consolidated identity.

    All reads and writes for one call share a single store transaction, so a
    merge is either fully applied or not at all. The resolver never retries;
    retryable ``StoreError``s are left to the caller.
    """

    def __init__(self, store: ContactStore, *, timeout_seconds: float | None = None) -> None:
        self._store = store
        self._timeout_seconds = timeout_seconds

    def resolve(self, email: str | None, phone_number: str | None) -> Identity:
        """Link the observation into the contact graph and return its identity.

        ``email`` and ``phone_number`` must already be normalized; blank values
        count as missing.
        """

        email = _presence(email)
        phone_number = _presence(phone_number)
        if email is None and phone_number is None:
            raise InvalidInputError("Either email or phoneNumber must be provided.")

        with self._store.transaction(timeout_seconds=self._timeout_seconds) as tx:
            self._store.lock_identifiers(tx, email, phone_number)
            primary = self._link(tx, email, phone_number)
            return self._consolidate(tx, primary)

    def lookup(self, contact_id: int) -> Identity | None:
        """Return the identity a live contact belongs to, without writing anything."""

        with self._store.transaction(timeout_seconds=self._timeout_seconds) as tx:
            contact = self._store.find_by_id(tx, contact_id)
            if contact is None:
                return None
            return self._consolidate(tx, self.primary_of(tx, contact))

    def primary_of(self, tx: Session, contact: ContactRecord) -> PrimaryContact:
        """Follow a secondary's link exactly one hop to its primary."""

        if isinstance(contact, PrimaryContact):
            return contact
        target = self._store.find_by_id(tx, contact.linked_id)
        if target is None:
            raise DataIntegrityError(
                f"Secondary contact {contact.id} links to missing contact {contact.linked_id}.",
                contact_ids=(contact.id, contact.linked_id),
            )
        if not isinstance(target, PrimaryContact):
            raise DataIntegrityError(
                f"Secondary contact {contact.id} links to secondary contact {target.id}.",
                contact_ids=(contact.id, target.id),
            )
        return target

    def _link(self, tx: Session, email: str | None, phone_number: str | None) -> PrimaryContact:
        exact = self._store.find_exact_match(tx, email, phone_number)
        if exact is not None:
            primary = self.primary_of(tx, exact)
            logger.debug("identity.exact_match contact_id=%d primary_id=%d", exact.id, primary.id)
            return primary

        matches = self._store.find_by_email_or_phone(tx, email, phone_number)
        email_matches = [contact for contact in matches if email is not None and contact.email == email]
        phone_matches = [
            contact
            for contact in matches
            if phone_number is not None and contact.phone_number == phone_number
        ]

        if not email_matches and not phone_matches:
            created = self._store.create(
                tx,
                email=email,
                phone_number=phone_number,
                linked_id=None,
                precedence=LinkPrecedence.PRIMARY,
            )
            logger.info("identity.primary_created contact_id=%d", created.id)
            return cast(PrimaryContact, created)

        if email_matches and phone_matches:
            email_primary = self._owning_primary(tx, email_matches)
            phone_primary = self._owning_primary(tx, phone_matches)
            if email_primary.id == phone_primary.id:
                return email_primary
            return self._merge(tx, email_primary, phone_primary, email, phone_number)

        primary = self._owning_primary(tx, email_matches or phone_matches)
        (primary,) = self._lock_primaries(tx, [primary.id])
        cluster = self._store.find_by_primary_id(tx, primary.id)
        if not _pair_exists(cluster, email, phone_number):
            created = self._store.create(
                tx,
                email=email,
                phone_number=phone_number,
                linked_id=primary.id,
                precedence=LinkPrecedence.SECONDARY,
            )
            logger.info("identity.secondary_created contact_id=%d primary_id=%d", created.id, primary.id)
        return primary

    def _merge(
        self,
        tx: Session,
        left: PrimaryContact,
        right: PrimaryContact,
        email: str | None,
        phone_number: str | None,
    ) -> PrimaryContact:
        """Fold the younger cluster into the older one."""

        winner, loser = sorted((left, right), key=lambda contact: (contact.created_at, contact.id))
        winner, loser = self._lock_primaries(tx, [winner.id, loser.id])

        loser_cluster = self._store.find_by_primary_id(tx, loser.id)
        self._store.update_to_secondary(tx, loser.id, winner.id)
        repointed = 0
        for member in loser_cluster:
            if isinstance(member, SecondaryContact):
                self._store.update_primary_id_of_secondary(tx, member.id, winner.id)
                repointed += 1

        merged_cluster = self._store.find_by_primary_id(tx, winner.id)
        created_id: int | None = None
        if not _pair_exists(merged_cluster, email, phone_number):
            created = self._store.create(
                tx,
                email=email,
                phone_number=phone_number,
                linked_id=winner.id,
                precedence=LinkPrecedence.SECONDARY,
            )
            created_id = created.id

        logger.info(
            "identity.clusters_merged winner_id=%d loser_id=%d repointed=%d created_id=%s",
            winner.id,
            loser.id,
            repointed,
            created_id,
        )
        return winner

    def _owning_primary(self, tx: Session, contacts: Sequence[ContactRecord]) -> PrimaryContact:
        primaries: dict[int, PrimaryContact] = {}
        for contact in contacts:
            primary = self.primary_of(tx, contact)
            primaries[primary.id] = primary
        if len(primaries) != 1:
            raise DataIntegrityError(
                f"Matched contacts reach {len(primaries)} primaries where exactly one was expected.",
                contact_ids=tuple(sorted(primaries)),
            )
        return next(iter(primaries.values()))

    def _lock_primaries(self, tx: Session, primary_ids: list[int]) -> list[PrimaryContact]:
        """Lock clusters before mutating them and confirm their heads are still primaries."""

        self._store.lock_clusters(tx, primary_ids)
        fresh: list[PrimaryContact] = []
        for primary_id in primary_ids:
            contact = self._store.find_by_id(tx, primary_id, for_update=True)
            if not isinstance(contact, PrimaryContact):
                raise ResolutionConflictError(
                    f"Contact {primary_id} stopped being a primary during resolution."
                )
            fresh.append(contact)
        return fresh

    def _consolidate(self, tx: Session, primary: PrimaryContact) -> Identity:
        members = self._store.find_by_primary_id(tx, primary.id)
        head = members[0] if members else None
        if not isinstance(head, PrimaryContact) or head.id != primary.id:
            raise DataIntegrityError(
                f"Cluster of contact {primary.id} has no live primary.",
                contact_ids=(primary.id,),
            )
        secondaries: list[SecondaryContact] = []
        for member in members[1:]:
            if not isinstance(member, SecondaryContact):
                raise DataIntegrityError(
                    f"Cluster of contact {primary.id} holds a second primary {member.id}.",
                    contact_ids=(primary.id, member.id),
                )
            secondaries.append(member)
        return Identity(primary=head, secondaries=tuple(secondaries))


def _presence(value: str | None) -> str | None:
    if value is None:
        return None
    return value if value.strip() else None


def _pair_exists(cluster: Iterable[ContactRecord], email: str | None, phone_number: str | None) -> bool:
    return any(member.identifiers == (email, phone_number) for member in cluster)
