"""
Error taxonomy for identity reconciliation

Only InvalidInputError carries a message meant for API callers; every
other error is reported to them as an opaque internal failure.
"""


class ReconciliationError(Exception):
    """Base class for errors raised by the reconciliation engine and store"""


class InvalidInputError(ReconciliationError, ValueError):
    """Neither an email nor a phone number was supplied"""

    def __init__(self, message: str = "Either email or phoneNumber must be provided"):
        super().__init__(message)
        self.message = message


class ConstraintError(ReconciliationError):
    """
    A write lost a race: uniqueness violation or serialization failure
    The whole transaction is retried from the start
    """


class ConsistencyError(ReconciliationError):
    """Stored data violates an invariant the engine relies on; never retried"""


class StoreUnavailableError(ReconciliationError):
    """Transient connectivity or operational fault in the contact store"""
