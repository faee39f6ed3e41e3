"""
Contact Store - persistence operations used by the reconciliation engine
Every method runs inside the transaction owned by the session it was
built with; nothing here commits.
"""

import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, or_, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import utc_now
from models.contact import Contact
from services.exceptions import ConstraintError, InvalidInputError, ReconciliationError, StoreUnavailableError

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, unique_violation
CONFLICT_SQLSTATES = {"40001", "40P01", "23505"}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_db_error(exc: DBAPIError) -> Optional[ReconciliationError]:
    """
    Map a driver error onto the reconciliation error taxonomy
    Returns None when the error is not one the engine knows how to handle
    """
    if isinstance(exc, IntegrityError) or _sqlstate(exc) in CONFLICT_SQLSTATES:
        return ConstraintError(f"Concurrent write conflict: {exc.orig!r}")
    if isinstance(exc, OperationalError) and "database is locked" in str(exc.orig):
        return ConstraintError("Timed out waiting for the database write lock")
    if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
        return StoreUnavailableError(f"Contact store unavailable: {type(exc.orig).__name__}")
    return None


class ContactStore:
    """
    Queries and mutations over the contacts table
    Soft-deleted rows are invisible to every read
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_exact_match(self, email: Optional[str], phone: Optional[str]) -> Set[Contact]:
        """
        Live contacts whose email equals ``email`` or whose phone equals ``phone``
        A predicate is only added for a non-null argument
        """
        conditions = []
        if email is not None:
            conditions.append(Contact.email == email)
        if phone is not None:
            conditions.append(Contact.phone_number == phone)

        if not conditions:
            raise InvalidInputError()

        query = select(Contact).where(or_(*conditions), Contact.deleted_at.is_(None))
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def find_cluster_by_primary_ids(self, ids: Iterable[int]) -> List[Contact]:
        """
        Every live contact that is one of ``ids`` or links to one of them,
        oldest first with id as the tie-break
        """
        ids = set(ids)
        if not ids:
            return []

        query = (
            select(Contact)
            .where(
                or_(Contact.id.in_(ids), Contact.linked_id.in_(ids)),
                Contact.deleted_at.is_(None),
            )
            .order_by(Contact.created_at.asc(), Contact.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(
        self,
        email: Optional[str],
        phone: Optional[str],
        linked_id: Optional[int],
        link_precedence: str
    ) -> Contact:
        """Insert a contact and flush it so the database assigns its id"""
        now = utc_now()
        contact = Contact(
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=link_precedence,
            created_at=now,
            updated_at=now
        )
        self.session.add(contact)
        try:
            await self.session.flush()
        except DBAPIError as e:
            translated = translate_db_error(e)
            if translated is None:
                raise
            raise translated from e

        logger.debug(f"Created {link_precedence} contact {contact.id} (linked_id={linked_id})")
        return contact

    async def demote_primaries(self, ids: Iterable[int], new_primary_id: int):
        """Turn the given primaries into secondaries of ``new_primary_id``"""
        ids = set(ids)
        if not ids:
            return
        await self.session.execute(
            update(Contact)
            .where(Contact.id.in_(ids))
            .values(
                link_precedence=Contact.SECONDARY,
                linked_id=new_primary_id,
                updated_at=utc_now()
            )
            .execution_options(synchronize_session="fetch")
        )

    async def repoint_secondaries(self, old_primary_ids: Iterable[int], new_primary_id: int):
        """Move every secondary of the old primaries onto ``new_primary_id``"""
        old_primary_ids = set(old_primary_ids)
        if not old_primary_ids:
            return
        await self.session.execute(
            update(Contact)
            .where(Contact.linked_id.in_(old_primary_ids), Contact.deleted_at.is_(None))
            .values(linked_id=new_primary_id, updated_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
