"""
Contact model for Identity Reconciliation API
This module defines the Contact database model for storing customer
contact information and managing identity linking relationships.
Supports primary/secondary contact hierarchy and soft delete functionality.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Index, CheckConstraint, func, text

from .base import BaseModel


class Contact(BaseModel):
    """
    Contact model representing customer contact information

    Stores email and phone number data with linking relationships
    to support identity reconciliation. Each contact is either
    'primary' (canonical for its cluster) or 'secondary' (linked
    directly to that primary, never to another secondary).

    Database Table: contacts
    """
    __tablename__ = "contacts"

    PRIMARY = "primary"
    SECONDARY = "secondary"

    # Contact information fields - at least one must be provided
    phone_number = Column(
        String(32),
        nullable=True,
        index=True,
        comment="Customer phone number, stored and compared as text"
    )

    email = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Customer email address"
    )

    # Identity linking fields
    linked_id = Column(
        Integer,
        ForeignKey("contacts.id"),
        nullable=True,
        index=True,
        comment="ID of the primary contact this secondary contact links to"
    )

    link_precedence = Column(
        String(10),
        nullable=False,
        default=PRIMARY,
        comment="Either 'primary' (canonical contact) or 'secondary' (linked contact)"
    )

    # Database constraints
    __table_args__ = (
        CheckConstraint(
            "link_precedence IN ('primary', 'secondary')",
            name="valid_link_precedence"
        ),

        CheckConstraint(
            "(phone_number IS NOT NULL) OR (email IS NOT NULL)",
            name="contact_info_required"
        ),

        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="secondary_must_have_linked_id"
        ),

        # A live (email, phone) pair exists at most once; concurrent first
        # observations of the same pair collide here and get retried
        Index(
            "uq_contacts_identity_pair",
            func.coalesce(email, ""),
            func.coalesce(phone_number, ""),
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),

        Index("ix_contact_precedence_linked", link_precedence, linked_id),
    )

    def __repr__(self):
        """String representation showing key contact information"""
        contact_info = []
        if self.email:
            contact_info.append(f"email={self.email}")
        if self.phone_number:
            contact_info.append(f"phone={self.phone_number}")

        return (
            f"<Contact(id={self.id}, "
            f"{', '.join(contact_info)}, "
            f"precedence={self.link_precedence}, linked_id={self.linked_id})>"
        )

    def is_primary(self):
        """Check if this is a primary contact"""
        return self.link_precedence == self.PRIMARY

    def is_secondary(self):
        """Check if this is a secondary contact"""
        return self.link_precedence == self.SECONDARY

    def owning_primary_id(self):
        """
        Id of the primary that owns this contact's cluster
        Itself when primary, otherwise the contact it links to
        """
        if self.is_primary() or self.linked_id is None:
            return self.id
        return self.linked_id

