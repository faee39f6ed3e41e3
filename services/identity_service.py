"""
Identity Service - Core business logic for identity reconciliation
Decides for each observation whether it matches an existing identity,
whether separate identities must be merged, and whether a new alias
record must be appended. Each attempt runs as one transaction and is
retried from scratch when it loses a concurrent write race.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy.exc import DBAPIError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings
from database import DatabaseManager, db_manager
from models.contact import Contact
from schemas.identify import IdentifyResponse
from services.contact_store import ContactStore, translate_db_error
from services.exceptions import ConsistencyError, ConstraintError, InvalidInputError, StoreUnavailableError
from services.response_projector import project

logger = logging.getLogger(__name__)


def select_canonical_primary(cluster: Sequence[Contact]) -> Contact:
    """
    Oldest contact flagged primary, or the oldest contact overall if none is.
    ``cluster`` must already be in seniority order.
    """
    for contact in cluster:
        if contact.is_primary():
            return contact
    # primary was soft-deleted: this is a secondary, so an appended record
    # links to a secondary and the cluster is no longer one level deep
    return cluster[0]


def has_new_information(cluster: Iterable[Contact], email: Optional[str], phone: Optional[str]) -> bool:
    """
    True when the observation carries an email or phone the cluster lacks
    and the exact (email, phone) pair is not already stored
    """
    cluster = list(cluster)
    known_emails = {c.email for c in cluster if c.email}
    known_phones = {c.phone_number for c in cluster if c.phone_number}

    has_new_email = email is not None and email not in known_emails
    has_new_phone = phone is not None and phone not in known_phones
    if not (has_new_email or has_new_phone):
        return False

    return not any(c.email == email and c.phone_number == phone for c in cluster)


class IdentityService:
    """
    Core service for identity reconciliation logic
    Handles all business rules for linking customer contacts
    """

    def __init__(
        self,
        db_manager: DatabaseManager = db_manager,
        max_attempts: Optional[int] = None,
        retry_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None
    ):
        self.db_manager = db_manager
        self.max_attempts = max_attempts or settings.RECONCILE_MAX_ATTEMPTS
        self.retry_wait = settings.RECONCILE_RETRY_WAIT_SECONDS if retry_wait is None else retry_wait
        self.retry_max_wait = settings.RECONCILE_RETRY_MAX_WAIT_SECONDS if retry_max_wait is None else retry_max_wait

    @staticmethod
    def _validate(email: Optional[str], phone: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        email = email if email else None
        phone = phone if phone else None
        if email is None and phone is None:
            raise InvalidInputError()
        return email, phone

    async def reconcile(self, email: Optional[str], phone: Optional[str]) -> IdentifyResponse:
        """
        Resolve an observation into its consolidated identity

        Conflicts and transient store faults roll the transaction back and
        restart from the direct-match query, up to max_attempts times.
        """
        email, phone = self._validate(email, phone)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=self.retry_max_wait),
            retry=retry_if_exception_type((ConstraintError, StoreUnavailableError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._reconcile_once(email, phone)

    async def _reconcile_once(self, email: Optional[str], phone: Optional[str]) -> IdentifyResponse:
        try:
            async with self.db_manager.get_session() as session:
                return await self._reconcile_in_transaction(ContactStore(session), email, phone)
        except DBAPIError as e:
            translated = translate_db_error(e)
            if translated is None:
                raise
            raise translated from e

    async def _reconcile_in_transaction(
        self,
        store: ContactStore,
        email: Optional[str],
        phone: Optional[str]
    ) -> IdentifyResponse:
        # Step 1: direct match
        matches = await store.find_by_exact_match(email, phone)
        if not matches:
            contact = await store.create(email, phone, None, Contact.PRIMARY)
            logger.info(f"Created primary contact {contact.id}")
            return project(contact, [contact])

        # Step 2: expand to the full clusters owning every match
        primary_ids = {contact.owning_primary_id() for contact in matches}
        cluster = await store.find_cluster_by_primary_ids(primary_ids)
        if not cluster:
            logger.error(
                f"Empty cluster for primary ids {sorted(primary_ids)} "
                f"after {len(matches)} direct matches"
            )
            raise ConsistencyError("Cluster lookup returned no contacts for matched primaries")

        # Step 3: oldest primary wins
        primary = select_canonical_primary(cluster)

        # Step 4: merge every other primary into it; the store keeps the
        # loaded cluster objects in sync with the bulk updates
        demoted_ids = {c.id for c in cluster if c.is_primary() and c.id != primary.id}
        if demoted_ids:
            await store.demote_primaries(demoted_ids, primary.id)
            await store.repoint_secondaries(demoted_ids, primary.id)
            logger.info(f"Merged primaries {sorted(demoted_ids)} into contact {primary.id}")

        # Step 5: append the observation if it brings something new
        if has_new_information(cluster, email, phone):
            secondary = await store.create(email, phone, primary.id, Contact.SECONDARY)
            cluster.append(secondary)
            logger.info(f"Created secondary contact {secondary.id} for primary {primary.id}")

        return project(primary, cluster)


# Global service instance
identity_service = IdentityService()
