"""
Pydantic schemas for Identity Reconciliation API
Contains request/response models and data validation schemas
for API endpoints and data transfer objects.
"""

from .identify import (
    MISSING_IDENTIFIERS_MESSAGE,
    IdentifyRequest,
    ContactResponse,
    IdentifyResponse,
    ErrorResponse
)

__all__ = [
    "MISSING_IDENTIFIERS_MESSAGE",
    "IdentifyRequest",
    "ContactResponse",
    "IdentifyResponse",
    "ErrorResponse"
]
