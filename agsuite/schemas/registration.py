"""
Registration workflow schemas.
"""
import enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from agsuite.models.registration import RegistrationStatus, ParticipantType
from agsuite.schemas.common import BulkItemResult


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RegistrationForm(BaseModel):
    """Participant snapshot submitted with a registration or resubmission."""
    participant_type: ParticipantType
    participant_name: str = Field(..., min_length=1, max_length=300)
    participant_role: Optional[str] = Field(None, max_length=200)
    entity_id: Optional[str] = Field(
        None, max_length=200,
        description="Roster external id (board member, coordinator or committee)"
    )
    committee_name: Optional[str] = Field(None, max_length=300)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    badge_name: Optional[str] = Field(None, max_length=200)
    birth_date: Optional[str] = Field(None, max_length=20)
    document_number: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=200)
    state: Optional[str] = Field(None, max_length=10)
    aspiring_committee: Optional[str] = Field(None, max_length=300)
    data_sharing_consent: bool = False
    additional_info: Optional[dict[str, Any]] = None


class PaymentInfo(BaseModel):
    is_payment_exempt: bool = False
    payment_exempt_reason: Optional[str] = None


class RegistrationCreate(BaseModel):
    modality_id: str
    form: RegistrationForm
    payment: Optional[PaymentInfo] = None


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    notes: Optional[str] = None


class BulkReviewRequest(BaseModel):
    registration_ids: list[str] = Field(..., min_length=1)
    decision: ReviewDecision
    notes: Optional[str] = None


class ResubmitRequest(BaseModel):
    form: RegistrationForm
    resubmission_note: Optional[str] = None


class ReceiptAttach(BaseModel):
    storage_id: str = Field(..., min_length=1, max_length=300)
    file_name: str = Field(..., min_length=1, max_length=300)
    file_type: str = Field(..., max_length=100)
    file_size: int = Field(..., ge=0)


class ExemptionUpdate(BaseModel):
    is_payment_exempt: bool
    payment_exempt_reason: Optional[str] = None


class ChangeModalityRequest(BaseModel):
    modality_id: str


class BulkDeleteRequest(BaseModel):
    registration_ids: list[str] = Field(..., min_length=1)


class RegistrationResponse(BaseModel):
    id: str
    assembly_id: str
    modality_id: Optional[str] = None
    participant_id: str
    participant_type: ParticipantType
    entity_id: Optional[str] = None
    committee_name: Optional[str] = None
    participant_name: str
    participant_role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    badge_name: Optional[str] = None
    birth_date: Optional[str] = None
    document_number: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    aspiring_committee: Optional[str] = None
    data_sharing_consent: bool = False
    additional_info: Optional[dict[str, Any]] = None
    status: RegistrationStatus
    registered_at: datetime
    registered_by: str
    is_payment_exempt: bool = False
    payment_exempt_reason: Optional[str] = None
    has_receipt: bool = False
    receipt_file_name: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    resubmitted_at: Optional[datetime] = None
    resubmission_note: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class RegistrationCreateResponse(BaseModel):
    registration: RegistrationResponse
    is_auto_approved: bool


class BulkReviewResponse(BaseModel):
    succeeded: int
    failed: int
    results: list[BulkItemResult]


class DeleteResponse(BaseModel):
    deleted: int
    missing: list[str] = []
    artifact_failures: list[str] = []
