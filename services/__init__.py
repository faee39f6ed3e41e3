"""
Business logic services for Identity Reconciliation API
Contains the reconciliation engine, the contact store it runs against,
the response projector and the error taxonomy they share.
"""

from .exceptions import (
    ReconciliationError,
    InvalidInputError,
    ConstraintError,
    ConsistencyError,
    StoreUnavailableError
)
from .contact_store import ContactStore, translate_db_error
from .response_projector import project
from .identity_service import IdentityService, identity_service

__all__ = [
    "ReconciliationError",
    "InvalidInputError",
    "ConstraintError",
    "ConsistencyError",
    "StoreUnavailableError",
    "ContactStore",
    "translate_db_error",
    "project",
    "IdentityService",
    "identity_service"
]
