"""Tests for the contact store queries and mutations."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from create_tables import create_tables
from models.base import utc_now
from models.contact import Contact
from services.contact_store import ContactStore, translate_db_error
from services.exceptions import ConstraintError, InvalidInputError, StoreUnavailableError


async def seed(db, *rows):
    """Insert contacts given as (email, phone, precedence, linked_id, created_at)."""
    async with db.get_session() as session:
        contacts = []
        for email, phone, precedence, linked_id, created_at in rows:
            contact = Contact(
                email=email,
                phone_number=phone,
                link_precedence=precedence,
                linked_id=linked_id,
                created_at=created_at,
                updated_at=created_at
            )
            session.add(contact)
            await session.flush()
            contacts.append(contact)
        return [c.id for c in contacts]


@pytest.mark.anyio
class TestFindByExactMatch:

    async def test_matches_email_or_phone(self, db):
        t = utc_now()
        a, b, c = await seed(
            db,
            ("doc@hillvalley.edu", "111111", "primary", None, t),
            ("einstein@hillvalley.edu", "222222", "primary", None, t),
            ("marty@hillvalley.edu", "333333", "primary", None, t),
        )

        async with db.get_session() as session:
            found = await ContactStore(session).find_by_exact_match("doc@hillvalley.edu", "222222")

        assert {contact.id for contact in found} == {a, b}

    async def test_null_argument_adds_no_predicate(self, db):
        t = utc_now()
        await seed(db, (None, "111111", "primary", None, t))

        async with db.get_session() as session:
            found = await ContactStore(session).find_by_exact_match("doc@hillvalley.edu", None)

        assert found == set()

    async def test_both_missing_is_caller_error(self, db):
        async with db.get_session() as session:
            with pytest.raises(InvalidInputError):
                await ContactStore(session).find_by_exact_match(None, None)

    async def test_soft_deleted_rows_excluded(self, db):
        t = utc_now()
        (a,) = await seed(db, ("doc@hillvalley.edu", "111111", "primary", None, t))
        async with db.get_session() as session:
            (await session.get(Contact, a)).deleted_at = utc_now()

        async with db.get_session() as session:
            assert await ContactStore(session).find_by_exact_match("doc@hillvalley.edu", None) == set()


@pytest.mark.anyio
class TestFindCluster:

    async def test_two_hop_fetch_in_seniority_order(self, db):
        early = datetime(2023, 4, 1, tzinfo=timezone.utc)
        late = datetime(2023, 4, 20, tzinfo=timezone.utc)
        a, b = await seed(
            db,
            ("doc@hillvalley.edu", "111111", "primary", None, late),
            ("einstein@hillvalley.edu", "222222", "primary", None, early),
        )
        c, d = await seed(
            db,
            ("dog@hillvalley.edu", "222222", "secondary", b, late),
            ("other@hillvalley.edu", "999999", "primary", None, early),
        )

        async with db.get_session() as session:
            cluster = await ContactStore(session).find_cluster_by_primary_ids({a, b})

        assert [contact.id for contact in cluster] == [b, a, c]

    async def test_ties_broken_by_id(self, db):
        same_time = datetime(2023, 4, 1, tzinfo=timezone.utc)
        a, = await seed(db, ("doc@hillvalley.edu", "111111", "primary", None, same_time))
        b, c = await seed(
            db,
            ("doc2@hillvalley.edu", "111111", "secondary", a, same_time),
            ("doc3@hillvalley.edu", "111111", "secondary", a, same_time),
        )

        async with db.get_session() as session:
            cluster = await ContactStore(session).find_cluster_by_primary_ids([a])

        assert [contact.id for contact in cluster] == [a, b, c]

    async def test_empty_ids(self, db):
        async with db.get_session() as session:
            assert await ContactStore(session).find_cluster_by_primary_ids(set()) == []


@pytest.mark.anyio
class TestMutations:

    async def test_create_assigns_id(self, db):
        async with db.get_session() as session:
            contact = await ContactStore(session).create("doc@hillvalley.edu", "111111", None, Contact.PRIMARY)
            assert contact.id is not None
            assert contact.is_primary()

    async def test_duplicate_live_pair_is_constraint_error(self, db):
        async with db.get_session() as session:
            await ContactStore(session).create("doc@hillvalley.edu", None, None, Contact.PRIMARY)

        with pytest.raises(ConstraintError):
            async with db.get_session() as session:
                await ContactStore(session).create("doc@hillvalley.edu", None, None, Contact.PRIMARY)

        assert await db.count_contacts() == 1

    async def test_secondary_without_link_rejected(self, db):
        with pytest.raises(ConstraintError):
            async with db.get_session() as session:
                await ContactStore(session).create("doc@hillvalley.edu", None, None, Contact.SECONDARY)

    async def test_demote_and_repoint(self, db):
        t = utc_now()
        a, b = await seed(
            db,
            ("doc@hillvalley.edu", "111111", "primary", None, t),
            ("einstein@hillvalley.edu", "222222", "primary", None, t),
        )
        (c,) = await seed(db, ("dog@hillvalley.edu", "222222", "secondary", b, t))

        async with db.get_session() as session:
            store = ContactStore(session)
            await store.demote_primaries({b}, a)
            await store.repoint_secondaries({b}, a)

        async with db.get_session() as session:
            rows = {
                contact.id: contact
                for contact in (await session.execute(select(Contact))).scalars()
            }

        assert rows[a].is_primary() and rows[a].linked_id is None
        assert rows[b].is_secondary() and rows[b].linked_id == a
        assert rows[c].is_secondary() and rows[c].linked_id == a
        assert rows[b].updated_at > rows[b].created_at


class TestTranslateDbError:

    def test_integrity_error_is_conflict(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        assert isinstance(translate_db_error(exc), ConstraintError)

    def test_serialization_failure_is_conflict(self):
        orig = Exception("could not serialize access")
        orig.sqlstate = "40001"
        exc = OperationalError("UPDATE", {}, orig)
        assert isinstance(translate_db_error(exc), ConstraintError)

    def test_locked_database_is_conflict(self):
        exc = OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
        assert isinstance(translate_db_error(exc), ConstraintError)

    def test_connection_fault_is_unavailable(self):
        exc = OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))
        assert isinstance(translate_db_error(exc), StoreUnavailableError)


@pytest.mark.anyio
async def test_create_tables_script(db):
    assert await create_tables(db) is True
    assert await db.count_contacts() == 0
