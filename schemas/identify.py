"""
Pydantic schemas for the /identify endpoint
Handles request validation and response serialization
"null" strings and blank values are treated as missing
"""

import re
from typing import List, Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MISSING_IDENTIFIERS_MESSAGE = "Either email or phoneNumber must be provided"


def _is_blank(v) -> bool:
    return isinstance(v, str) and v.strip().lower() in ("null", "")


class IdentifyRequest(BaseModel):
    """
    Request schema for the /identify endpoint
    Validates that at least one of email or phoneNumber is provided
    Numeric phone numbers are coerced to text
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"email": "customer@example.com", "phoneNumber": "+1234567890"},
                {"email": "customer@example.com", "phoneNumber": None},
                {"email": None, "phoneNumber": 123456},
            ]
        }
    )

    email: Optional[str] = Field(
        None,
        description="Customer email address",
        examples=["customer@example.com", None]
    )
    phoneNumber: Optional[Union[str, int, float]] = Field(
        None,
        description="Customer phone number, as text or number",
        examples=["+1234567890", 123456, None]
    )

    @field_validator('email', mode='before')
    @classmethod
    def validate_email(cls, v) -> Optional[str]:
        """
        Clean email input
        Converts "null" strings to None and requires an @
        """
        if v is None or _is_blank(v):
            return None

        if not isinstance(v, str):
            raise ValueError('Email must be a string')

        v = v.strip()
        if '@' not in v:
            raise ValueError('Invalid email format: email must contain @')
        return v

    @field_validator('phoneNumber', mode='before')
    @classmethod
    def validate_phone_number(cls, v) -> Optional[str]:
        """
        Validate phone number and coerce it to text
        The value is kept as supplied apart from surrounding whitespace
        """
        if v is None or _is_blank(v):
            return None

        if isinstance(v, bool):
            raise ValueError('Phone number must be a string or number')

        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError('Phone number must be a whole number')
            v = str(int(v))
        elif isinstance(v, int):
            v = str(v)

        if not isinstance(v, str):
            raise ValueError('Phone number must be a string or number')

        v = v.strip()

        digits_only = re.sub(r'[^\d]', '', v)
        if len(digits_only) < 3:
            raise ValueError('Phone number must contain at least 3 digits')

        return v

    @model_validator(mode='after')
    def validate_at_least_one_field(self):
        """
        Ensure at least one of email or phoneNumber is provided
        """
        if not self.email and not self.phoneNumber:
            raise ValueError(MISSING_IDENTIFIERS_MESSAGE)
        return self


class ContactResponse(BaseModel):
    """
    Consolidated contact data for one identity cluster
    """
    primaryContactId: int = Field(
        description="ID of the primary contact"
    )
    emails: List[str] = Field(
        description="All email addresses in the cluster, primary's first",
        examples=[["customer@example.com", "customer2@example.com"]]
    )
    phoneNumbers: List[str] = Field(
        description="All phone numbers in the cluster, primary's first",
        examples=[["+1234567890", "123-456-7890"]]
    )
    secondaryContactIds: List[int] = Field(
        description="IDs of all secondary contacts linked to the primary",
        examples=[[2, 3, 4]]
    )


class IdentifyResponse(BaseModel):
    """
    Response schema for the /identify endpoint
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "contact": {
                    "primaryContactId": 1,
                    "emails": ["customer@example.com", "customer2@example.com"],
                    "phoneNumbers": ["+1234567890", "123-456-7890"],
                    "secondaryContactIds": [2, 3]
                }
            }
        }
    )

    contact: ContactResponse = Field(
        description="Consolidated contact information"
    )


class ErrorResponse(BaseModel):
    """
    Error response schema for API errors
    """
    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "error": "ValidationError",
                    "message": MISSING_IDENTIFIERS_MESSAGE,
                    "details": {"errors": [{"field": "body", "message": MISSING_IDENTIFIERS_MESSAGE}]}
                },
                {
                    "error": "InternalServerError",
                    "message": "Unable to process identity reconciliation request"
                }
            ]
        }
    )

    error: str = Field(
        description="Error type or category"
    )
    message: str = Field(
        description="Human-readable error message"
    )
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error details"
    )
