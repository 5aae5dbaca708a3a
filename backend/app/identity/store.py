"""Contact store: transactional reads and writes of contact rows."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from time import monotonic
from typing import Protocol

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.identity.domain import ContactRecord, PrimaryContact, SecondaryContact
from app.identity.errors import DataIntegrityError, InvalidInputError, StoreError
from app.models.contact import Contact, LinkPrecedence


_DEADLINE_KEY = "identity.store_deadline"

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})


class ContactStore(Protocol):
    """Operations the identity resolver needs from persistence.

    Every operation takes the transaction handle yielded by ``transaction()``.
    """

    def transaction(self, *, timeout_seconds: float | None = None) -> AbstractContextManager[Session]:
        """Open one atomic unit of work; commits on clean exit, rolls back otherwise."""

    def lock_identifiers(self, tx: Session, email: str | None, phone_number: str | None) -> None:
        """Serialize concurrent resolutions that touch the same email or phone number."""

    def lock_clusters(self, tx: Session, primary_ids: Iterable[int]) -> None:
        """Serialize concurrent mutations of the given clusters."""

    def find_by_email_or_phone(
        self, tx: Session, email: str | None, phone_number: str | None
    ) -> list[ContactRecord]:
        """Return live contacts matching either identifier."""

    def find_exact_match(
        self, tx: Session, email: str | None, phone_number: str | None
    ) -> ContactRecord | None:
        """Return a live contact matching both identifiers, both non-null."""

    def find_by_id(self, tx: Session, contact_id: int, *, for_update: bool = False) -> ContactRecord | None:
        """Return one live contact."""

    def find_by_primary_id(self, tx: Session, primary_id: int) -> list[ContactRecord]:
        """Return the primary followed by its secondaries, oldest first."""

    def create(
        self,
        tx: Session,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        precedence: LinkPrecedence,
    ) -> ContactRecord:
        """Insert a new contact."""

    def update_to_secondary(self, tx: Session, contact_id: int, new_linked_id: int) -> SecondaryContact:
        """Demote a primary under another primary."""

    def update_primary_id_of_secondary(
        self, tx: Session, contact_id: int, new_linked_id: int
    ) -> SecondaryContact:
        """Re-point a secondary at a different primary."""


class SqlAlchemyContactStore:
    """Contact store over the ``contacts`` table.

    Rows are translated into ``PrimaryContact``/``SecondaryContact`` at this
    boundary; a row that breaks the precedence/link pairing raises
    ``DataIntegrityError`` instead of leaking into resolution. Writes refuse to
    link anything to a contact that is not a live primary.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(self, *, timeout_seconds: float | None = None) -> Iterator[Session]:
        session = self._session_factory()
        if timeout_seconds is not None:
            session.info[_DEADLINE_KEY] = monotonic() + timeout_seconds
        try:
            with session.begin():
                if timeout_seconds is not None and _is_postgres(session):
                    session.execute(
                        select(
                            func.set_config(
                                "statement_timeout",
                                str(max(1, int(timeout_seconds * 1000))),
                                True,
                            )
                        )
                    )
                yield session
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        finally:
            session.close()

    def lock_identifiers(self, tx: Session, email: str | None, phone_number: str | None) -> None:
        keys = []
        if email is not None:
            keys.append(f"email:{email}")
        if phone_number is not None:
            keys.append(f"phone:{phone_number}")
        self._advisory_locks(tx, sorted(keys))

    def lock_clusters(self, tx: Session, primary_ids: Iterable[int]) -> None:
        self._advisory_locks(tx, [f"cluster:{primary_id}" for primary_id in sorted(set(primary_ids))])

    def find_by_email_or_phone(
        self, tx: Session, email: str | None, phone_number: str | None
    ) -> list[ContactRecord]:
        conditions = []
        if email is not None:
            conditions.append(Contact.email == email)
        if phone_number is not None:
            conditions.append(Contact.phone_number == phone_number)
        if not conditions:
            return []
        stmt = (
            select(Contact)
            .where(Contact.deleted_at.is_(None), or_(*conditions))
            .order_by(Contact.created_at.asc(), Contact.id.asc())
        )
        return [_to_record(row) for row in self._rows(tx, stmt)]

    def find_exact_match(
        self, tx: Session, email: str | None, phone_number: str | None
    ) -> ContactRecord | None:
        if email is None or phone_number is None:
            return None
        stmt = (
            select(Contact)
            .where(
                Contact.deleted_at.is_(None),
                Contact.email == email,
                Contact.phone_number == phone_number,
            )
            .order_by(Contact.created_at.asc(), Contact.id.asc())
            .limit(1)
        )
        rows = self._rows(tx, stmt)
        return _to_record(rows[0]) if rows else None

    def find_by_id(self, tx: Session, contact_id: int, *, for_update: bool = False) -> ContactRecord | None:
        row = self._live_row(tx, contact_id, for_update=for_update)
        return _to_record(row) if row is not None else None

    def find_by_primary_id(self, tx: Session, primary_id: int) -> list[ContactRecord]:
        stmt = select(Contact).where(
            Contact.deleted_at.is_(None),
            or_(Contact.id == primary_id, Contact.linked_id == primary_id),
        )
        rows = sorted(
            self._rows(tx, stmt),
            key=lambda row: (row.id != primary_id, _as_utc(row.created_at), row.id),
        )
        return [_to_record(row) for row in rows]

    def create(
        self,
        tx: Session,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        precedence: LinkPrecedence,
    ) -> ContactRecord:
        if email is None and phone_number is None:
            raise InvalidInputError("A contact needs an email or a phone number.")
        if precedence == LinkPrecedence.PRIMARY and linked_id is not None:
            raise DataIntegrityError("A primary contact cannot link to another contact.")
        if precedence == LinkPrecedence.SECONDARY:
            if linked_id is None:
                raise DataIntegrityError("A secondary contact must link to a primary.")
            self._require_live_primary(tx, linked_id)

        now = _utcnow()
        row = Contact(
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=precedence,
            created_at=now,
            updated_at=now,
        )
        tx.add(row)
        tx.flush()
        return _to_record(row)

    def update_to_secondary(self, tx: Session, contact_id: int, new_linked_id: int) -> SecondaryContact:
        row = self._require_row(tx, contact_id)
        if row.link_precedence != LinkPrecedence.PRIMARY:
            raise DataIntegrityError(
                f"Contact {contact_id} is not a primary and cannot be demoted.",
                contact_ids=(contact_id,),
            )
        self._require_link_target(tx, contact_id, new_linked_id)
        row.link_precedence = LinkPrecedence.SECONDARY
        row.linked_id = new_linked_id
        row.updated_at = _utcnow()
        tx.flush()
        return _to_secondary(row)

    def update_primary_id_of_secondary(
        self, tx: Session, contact_id: int, new_linked_id: int
    ) -> SecondaryContact:
        row = self._require_row(tx, contact_id)
        if row.link_precedence != LinkPrecedence.SECONDARY:
            raise DataIntegrityError(
                f"Contact {contact_id} is not a secondary and cannot be re-pointed.",
                contact_ids=(contact_id,),
            )
        self._require_link_target(tx, contact_id, new_linked_id)
        row.linked_id = new_linked_id
        row.updated_at = _utcnow()
        tx.flush()
        return _to_secondary(row)

    def _rows(self, tx: Session, stmt: Select[tuple[Contact]]) -> Sequence[Contact]:
        _check_deadline(tx)
        return tx.scalars(stmt.execution_options(populate_existing=True)).all()

    def _live_row(self, tx: Session, contact_id: int, *, for_update: bool = False) -> Contact | None:
        stmt = select(Contact).where(Contact.id == contact_id, Contact.deleted_at.is_(None))
        if for_update:
            stmt = stmt.with_for_update()
        rows = self._rows(tx, stmt)
        return rows[0] if rows else None

    def _require_row(self, tx: Session, contact_id: int) -> Contact:
        row = self._live_row(tx, contact_id, for_update=True)
        if row is None:
            raise DataIntegrityError(f"Contact {contact_id} does not exist.", contact_ids=(contact_id,))
        return row

    def _require_link_target(self, tx: Session, contact_id: int, target_id: int) -> None:
        if target_id == contact_id:
            raise DataIntegrityError(
                f"Contact {contact_id} cannot link to itself.",
                contact_ids=(contact_id,),
            )
        self._require_live_primary(tx, target_id)

    def _require_live_primary(self, tx: Session, contact_id: int) -> None:
        row = self._live_row(tx, contact_id)
        if row is None or row.link_precedence != LinkPrecedence.PRIMARY:
            raise DataIntegrityError(
                f"Contact {contact_id} is not a live primary and cannot be linked to.",
                contact_ids=(contact_id,),
            )

    def _advisory_locks(self, tx: Session, keys: list[str]) -> None:
        _check_deadline(tx)
        if not keys or not _is_postgres(tx):
            return
        for key in keys:
            tx.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))


def _to_record(row: Contact) -> ContactRecord:
    if row.link_precedence == LinkPrecedence.PRIMARY:
        if row.linked_id is not None:
            raise DataIntegrityError(
                f"Primary contact {row.id} links to contact {row.linked_id}.",
                contact_ids=(row.id, row.linked_id),
            )
        return PrimaryContact(
            id=row.id,
            email=row.email,
            phone_number=row.phone_number,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            deleted_at=_as_utc(row.deleted_at) if row.deleted_at is not None else None,
        )
    return _to_secondary(row)


def _to_secondary(row: Contact) -> SecondaryContact:
    if row.linked_id is None or row.linked_id == row.id:
        raise DataIntegrityError(
            f"Secondary contact {row.id} has no valid primary link.",
            contact_ids=(row.id,),
        )
    return SecondaryContact(
        id=row.id,
        email=row.email,
        phone_number=row.phone_number,
        linked_id=row.linked_id,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        deleted_at=_as_utc(row.deleted_at) if row.deleted_at is not None else None,
    )


def _store_error(exc: SQLAlchemyError) -> StoreError:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    retryable = (
        isinstance(exc, OperationalError)
        or sqlstate in _RETRYABLE_SQLSTATES
        or bool(getattr(exc, "connection_invalidated", False))
    )
    detail = f" (sqlstate {sqlstate})" if sqlstate else ""
    return StoreError(f"Contact store failure: {exc.__class__.__name__}{detail}", retryable=retryable)


def _check_deadline(tx: Session) -> None:
    deadline = tx.info.get(_DEADLINE_KEY)
    if deadline is not None and monotonic() > deadline:
        raise StoreError("Contact store transaction timed out.", retryable=True)


def _is_postgres(tx: Session) -> bool:
    return tx.get_bind().dialect.name == "postgresql"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
