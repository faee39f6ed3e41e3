"""
Database models package for Identity Reconciliation System
Contains SQLAlchemy models for contact information and relationships
"""

from .base import Base, BaseModel, utc_now
from .contact import Contact

__all__ = ['Base', 'BaseModel', 'Contact', 'utc_now']
