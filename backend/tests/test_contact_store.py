"""Tests for the SQLAlchemy contact store."""

from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest import mock

from sqlalchemy import create_engine, delete, event, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.identity import (
    DataIntegrityError,
    InvalidInputError,
    PrimaryContact,
    SecondaryContact,
    SqlAlchemyContactStore,
    StoreError,
)
from app.identity.store import _to_record
from app.models.base import Base
from app.models.contact import Contact, LinkPrecedence


class SqlAlchemyContactStoreTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        with self.SessionLocal() as db:
            db.execute(delete(Contact))
            db.commit()
        self.store = SqlAlchemyContactStore(self.SessionLocal)

    def _count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(Contact))

    def _create_primary(self, email: str | None, phone_number: str | None) -> PrimaryContact:
        with self.store.transaction() as tx:
            contact = self.store.create(
                tx,
                email=email,
                phone_number=phone_number,
                linked_id=None,
                precedence=LinkPrecedence.PRIMARY,
            )
        assert isinstance(contact, PrimaryContact)
        return contact

    def test_create_returns_typed_records(self) -> None:
        primary = self._create_primary("a@x.com", "100")
        with self.store.transaction() as tx:
            secondary = self.store.create(
                tx,
                email="b@x.com",
                phone_number=None,
                linked_id=primary.id,
                precedence=LinkPrecedence.SECONDARY,
            )

        self.assertIsInstance(primary, PrimaryContact)
        self.assertIsNone(primary.linked_id)
        self.assertIsInstance(secondary, SecondaryContact)
        self.assertEqual(secondary.linked_id, primary.id)
        self.assertEqual(secondary.link_precedence, LinkPrecedence.SECONDARY)
        self.assertLessEqual(primary.created_at, primary.updated_at)
        self.assertGreater(secondary.id, primary.id)

    def test_create_rejects_contact_without_identifiers(self) -> None:
        with self.assertRaises(InvalidInputError):
            with self.store.transaction() as tx:
                self.store.create(
                    tx,
                    email=None,
                    phone_number=None,
                    linked_id=None,
                    precedence=LinkPrecedence.PRIMARY,
                )
        self.assertEqual(self._count(), 0)

    def test_create_refuses_to_link_to_a_secondary(self) -> None:
        primary = self._create_primary("a@x.com", "100")
        with self.store.transaction() as tx:
            secondary = self.store.create(
                tx,
                email="b@x.com",
                phone_number="100",
                linked_id=primary.id,
                precedence=LinkPrecedence.SECONDARY,
            )

        with self.assertRaises(DataIntegrityError):
            with self.store.transaction() as tx:
                self.store.create(
                    tx,
                    email="c@x.com",
                    phone_number="100",
                    linked_id=secondary.id,
                    precedence=LinkPrecedence.SECONDARY,
                )
        self.assertEqual(self._count(), 2)

    def test_create_rejects_primary_with_link(self) -> None:
        primary = self._create_primary("a@x.com", "100")

        with self.assertRaises(DataIntegrityError):
            with self.store.transaction() as tx:
                self.store.create(
                    tx,
                    email="b@x.com",
                    phone_number=None,
                    linked_id=primary.id,
                    precedence=LinkPrecedence.PRIMARY,
                )

    def test_find_exact_match_requires_both_identifiers(self) -> None:
        self._create_primary("a@x.com", None)
        both = self._create_primary("b@x.com", "200")

        with self.store.transaction() as tx:
            self.assertIsNone(self.store.find_exact_match(tx, "a@x.com", None))
            self.assertIsNone(self.store.find_exact_match(tx, "b@x.com", "999"))
            match = self.store.find_exact_match(tx, "b@x.com", "200")

        self.assertIsNotNone(match)
        self.assertEqual(match.id, both.id)

    def test_find_by_email_or_phone_matches_either_and_skips_deleted(self) -> None:
        by_email = self._create_primary("a@x.com", "100")
        by_phone = self._create_primary("z@x.com", "200")
        deleted = self._create_primary("a@x.com", "300")
        with self.SessionLocal() as db:
            row = db.get(Contact, deleted.id)
            row.deleted_at = datetime.now(timezone.utc)
            db.commit()

        with self.store.transaction() as tx:
            matches = self.store.find_by_email_or_phone(tx, "a@x.com", "200")
            nothing = self.store.find_by_email_or_phone(tx, None, None)

        self.assertEqual([contact.id for contact in matches], [by_email.id, by_phone.id])
        self.assertEqual(nothing, [])

    def test_find_by_primary_id_lists_primary_first(self) -> None:
        primary = self._create_primary("a@x.com", "100")
        other = self._create_primary("z@x.com", "900")
        with self.store.transaction() as tx:
            first = self.store.create(
                tx, email="b@x.com", phone_number=None, linked_id=primary.id, precedence=LinkPrecedence.SECONDARY
            )
            second = self.store.create(
                tx, email=None, phone_number="200", linked_id=primary.id, precedence=LinkPrecedence.SECONDARY
            )

        with self.store.transaction() as tx:
            members = self.store.find_by_primary_id(tx, primary.id)

        self.assertEqual([member.id for member in members], [primary.id, first.id, second.id])
        self.assertNotIn(other.id, [member.id for member in members])

    def test_update_to_secondary_and_repoint(self) -> None:
        winner = self._create_primary("a@x.com", "100")
        loser = self._create_primary("b@x.com", "200")
        with self.store.transaction() as tx:
            child = self.store.create(
                tx, email="c@x.com", phone_number="200", linked_id=loser.id, precedence=LinkPrecedence.SECONDARY
            )

        with self.store.transaction() as tx:
            demoted = self.store.update_to_secondary(tx, loser.id, winner.id)
            repointed = self.store.update_primary_id_of_secondary(tx, child.id, winner.id)

        self.assertEqual(demoted.linked_id, winner.id)
        self.assertGreaterEqual(demoted.updated_at, loser.updated_at)
        self.assertEqual(repointed.linked_id, winner.id)
        with self.store.transaction() as tx:
            members = self.store.find_by_primary_id(tx, winner.id)
        self.assertEqual({member.id for member in members}, {winner.id, loser.id, child.id})

    def test_update_to_secondary_rejects_secondary_and_self_links(self) -> None:
        primary = self._create_primary("a@x.com", "100")
        with self.store.transaction() as tx:
            secondary = self.store.create(
                tx, email="b@x.com", phone_number="100", linked_id=primary.id, precedence=LinkPrecedence.SECONDARY
            )

        with self.assertRaises(DataIntegrityError):
            with self.store.transaction() as tx:
                self.store.update_to_secondary(tx, secondary.id, primary.id)
        with self.assertRaises(DataIntegrityError):
            with self.store.transaction() as tx:
                self.store.update_to_secondary(tx, primary.id, primary.id)
        with self.assertRaises(DataIntegrityError):
            with self.store.transaction() as tx:
                self.store.update_primary_id_of_secondary(tx, primary.id, secondary.id)

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.store.transaction() as tx:
                self.store.create(
                    tx, email="a@x.com", phone_number="100", linked_id=None, precedence=LinkPrecedence.PRIMARY
                )
                raise RuntimeError("abort")

        self.assertEqual(self._count(), 0)

    def test_database_errors_surface_as_store_error(self) -> None:
        with self.assertRaises(StoreError) as ctx:
            with self.store.transaction() as tx:
                tx.execute(text("SELECT * FROM missing_table"))

        self.assertTrue(ctx.exception.retryable)
        self.assertIsNotNone(ctx.exception.__cause__)

    def test_expired_deadline_raises_retryable_store_error(self) -> None:
        with mock.patch("app.identity.store.monotonic", side_effect=[0.0, 100.0]):
            with self.assertRaises(StoreError) as ctx:
                with self.store.transaction(timeout_seconds=1.0) as tx:
                    self.store.find_by_email_or_phone(tx, "a@x.com", None)

        self.assertTrue(ctx.exception.retryable)

    def test_locks_are_noops_outside_postgres(self) -> None:
        with self.store.transaction() as tx:
            self.store.lock_identifiers(tx, "a@x.com", "100")
            self.store.lock_clusters(tx, [3, 1, 3])

    def test_malformed_rows_are_integrity_errors(self) -> None:
        now = datetime.now(timezone.utc)
        linked_primary = Contact(
            id=1,
            email="a@x.com",
            phone_number=None,
            linked_id=2,
            link_precedence=LinkPrecedence.PRIMARY,
            created_at=now,
            updated_at=now,
        )
        unlinked_secondary = Contact(
            id=3,
            email="b@x.com",
            phone_number=None,
            linked_id=None,
            link_precedence=LinkPrecedence.SECONDARY,
            created_at=now,
            updated_at=now,
        )

        with self.assertRaises(DataIntegrityError):
            _to_record(linked_primary)
        with self.assertRaises(DataIntegrityError):
            _to_record(unlinked_secondary)

    def test_primary_with_secondaries_cannot_be_hard_deleted(self) -> None:
        engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        event.listen(engine, "connect", lambda dbapi_connection, _: dbapi_connection.execute("PRAGMA foreign_keys=ON"))
        Base.metadata.create_all(engine)
        SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
        store = SqlAlchemyContactStore(SessionLocal)
        try:
            with store.transaction() as tx:
                primary = store.create(
                    tx,
                    email="a@x.com",
                    phone_number="100",
                    linked_id=None,
                    precedence=LinkPrecedence.PRIMARY,
                )
                secondary = store.create(
                    tx,
                    email="b@x.com",
                    phone_number="100",
                    linked_id=primary.id,
                    precedence=LinkPrecedence.SECONDARY,
                )

            with SessionLocal() as db:
                with self.assertRaises(IntegrityError):
                    db.execute(delete(Contact).where(Contact.id == primary.id))
                    db.commit()

            with SessionLocal() as db:
                self.assertEqual(db.get(Contact, secondary.id).linked_id, primary.id)
        finally:
            with engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            Base.metadata.drop_all(engine)
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
