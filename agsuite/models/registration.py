"""
Registration model - a participant's admission into an assembly.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import (
    String, Text, Boolean, Integer, ForeignKey, DateTime, Enum, JSON, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from agsuite.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from agsuite.models.assembly import Assembly
    from agsuite.models.modality import Modality


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that hold a modality slot and the identity's uniqueness
ACTIVE_STATUSES = (
    RegistrationStatus.PENDING,
    RegistrationStatus.PENDING_REVIEW,
    RegistrationStatus.APPROVED,
)

# Statuses an organizer may approve or reject from
REVIEWABLE_STATUSES = (
    RegistrationStatus.PENDING,
    RegistrationStatus.PENDING_REVIEW,
)


class ParticipantType(str, enum.Enum):
    """Category the registrant declares."""
    EXECUTIVE_BOARD = "executive_board"
    REGIONAL_COORDINATOR = "regional_coordinator"
    LOCAL_COMMITTEE = "local_committee"
    OTHER = "other"


class Registration(BaseModel):
    """Registration of one participant in an assembly."""
    __tablename__ = "registrations"
    __table_args__ = (
        Index(
            "uq_registrations_assembly_identity_active",
            "assembly_id",
            "identity_key",
            unique=True,
            sqlite_where=text("status IN ('pending', 'pending_review', 'approved')"),
            postgresql_where=text("status IN ('pending', 'pending_review', 'approved')"),
        ),
        # One active registration per user, whatever the category
        Index(
            "uq_registrations_assembly_participant_active",
            "assembly_id",
            "participant_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'pending_review', 'approved')"),
            postgresql_where=text("status IN ('pending', 'pending_review', 'approved')"),
        ),
        Index("ix_registrations_assembly_status", "assembly_id", "status"),
    )

    assembly_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("assemblies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    modality_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("modalities.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )

    # Identity
    participant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    participant_type: Mapped[ParticipantType] = mapped_column(
        Enum(ParticipantType, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    # Canonical external id the registrant claims (committee id for committee delegates)
    entity_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    committee_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    # NULL for "other" participants, who are exempt from entity uniqueness
    identity_key: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # Participant snapshot
    participant_name: Mapped[str] = mapped_column(String(300), nullable=False)
    participant_role: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    badge_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    birth_date: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    document_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    aspiring_committee: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    data_sharing_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    additional_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=RegistrationStatus.PENDING,
        index=True
    )
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    registered_by: Mapped[str] = mapped_column(String(100), nullable=False)

    # Payment
    is_payment_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_exempt_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receipt_storage_id: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    receipt_file_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    receipt_file_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    receipt_file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    receipt_uploaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    receipt_uploaded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Review
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resubmitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resubmission_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    assembly: Mapped["Assembly"] = relationship(
        "Assembly",
        back_populates="registrations"
    )
    modality: Mapped[Optional["Modality"]] = relationship("Modality")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<Registration {self.participant_name} ({self.status.value})>"
