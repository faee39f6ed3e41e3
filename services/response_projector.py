"""
Response Projector - folds a primary contact and its cluster into the
consolidated identity returned by /identify
"""

from typing import Sequence

from models.contact import Contact
from schemas.identify import ContactResponse, IdentifyResponse


def _append_unique(values: list, value):
    if value and value not in values:
        values.append(value)


def project(primary: Contact, cluster: Sequence[Contact]) -> IdentifyResponse:
    """
    Build the consolidated response for a cluster

    The primary's own email and phone come first, followed by the other
    members' distinct values in cluster order (oldest first). Every cluster
    member except the primary is listed in secondaryContactIds, once.
    """
    emails = []
    phone_numbers = []
    secondary_ids = []

    _append_unique(emails, primary.email)
    _append_unique(phone_numbers, primary.phone_number)

    for contact in cluster:
        _append_unique(emails, contact.email)
        _append_unique(phone_numbers, contact.phone_number)
        if contact.id != primary.id:
            _append_unique(secondary_ids, contact.id)

    return IdentifyResponse(
        contact=ContactResponse(
            primaryContactId=primary.id,
            emails=emails,
            phoneNumbers=phone_numbers,
            secondaryContactIds=secondary_ids
        )
    )
