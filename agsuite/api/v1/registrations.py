"""
Registration endpoints - admission, review queue and payment handling.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.db.base import get_db
from agsuite.core.deps import get_current_user_id, get_notifier, get_receipt_storage
from agsuite.models.registration import Registration, RegistrationStatus
from agsuite.schemas.common import ListResponse
from agsuite.schemas.registration import (
    RegistrationCreate, RegistrationResponse, RegistrationCreateResponse,
    ReviewRequest, BulkReviewRequest, BulkReviewResponse, ResubmitRequest,
    ReceiptAttach, ExemptionUpdate, ChangeModalityRequest, BulkDeleteRequest, DeleteResponse,
)
from agsuite.services import ag_config, registrations
from agsuite.services.notifications import Notifier
from agsuite.services.storage import ReceiptStorage

router = APIRouter()


def registration_to_response(registration: Registration) -> RegistrationResponse:
    """Convert Registration model to RegistrationResponse schema."""
    response = RegistrationResponse.model_validate(registration)
    response.has_receipt = registration.receipt_storage_id is not None
    return response


@router.post(
    "/assemblies/{assembly_id}/registrations",
    response_model=RegistrationCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_registration(
    assembly_id: str,
    data: RegistrationCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    """Register the calling user in an assembly under the chosen modality."""
    config = await ag_config.get_admission_config(db)
    registration, is_auto_approved = await registrations.create(
        db, assembly_id, data.modality_id, current_user_id, data.form, config,
        notifier=notifier, payment=data.payment,
    )
    return RegistrationCreateResponse(
        registration=registration_to_response(registration),
        is_auto_approved=is_auto_approved,
    )


@router.get("/assemblies/{assembly_id}/registrations", response_model=ListResponse[RegistrationResponse])
async def list_registrations(
    assembly_id: str,
    status_filter: Optional[list[RegistrationStatus]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    items = await registrations.list_registrations(db, assembly_id, status_filter)
    return ListResponse(items=[registration_to_response(r) for r in items], total=len(items))


@router.get("/assemblies/{assembly_id}/registrations/pending", response_model=ListResponse[RegistrationResponse])
async def list_pending_registrations(assembly_id: str, db: AsyncSession = Depends(get_db)):
    """Review queue: pending and pending_review registrations."""
    items = await registrations.list_pending(db, assembly_id)
    return ListResponse(items=[registration_to_response(r) for r in items], total=len(items))


@router.get("/assemblies/{assembly_id}/registrations/me", response_model=Optional[RegistrationResponse])
async def get_my_registration(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """The calling user's current registration, or null."""
    registration = await registrations.get_user_registration(db, assembly_id, current_user_id)
    if registration is None:
        return None
    return registration_to_response(registration)


@router.post("/registrations/bulk-review", response_model=BulkReviewResponse)
async def bulk_review_registrations(
    data: BulkReviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    results = await registrations.bulk_review(
        db, data.registration_ids, data.decision, current_user_id, data.notes, notifier
    )
    succeeded = sum(1 for r in results if r.ok)
    return BulkReviewResponse(succeeded=succeeded, failed=len(results) - succeeded, results=results)


@router.post("/registrations/bulk-delete", response_model=DeleteResponse)
async def bulk_delete_registrations(
    data: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    storage: ReceiptStorage = Depends(get_receipt_storage),
):
    outcome = await registrations.bulk_delete(db, data.registration_ids, current_user_id, storage)
    return DeleteResponse(**outcome)


@router.get("/registrations/{registration_id}", response_model=RegistrationResponse)
async def get_registration(registration_id: str, db: AsyncSession = Depends(get_db)):
    registration = await registrations.get_registration(db, registration_id)
    return registration_to_response(registration)


@router.post("/registrations/{registration_id}/review", response_model=RegistrationResponse)
async def review_registration(
    registration_id: str,
    data: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    """Approve or reject. Rejections require notes."""
    registration = await registrations.review(
        db, registration_id, data.decision, current_user_id, data.notes, notifier
    )
    return registration_to_response(registration)


@router.post("/registrations/{registration_id}/resubmit", response_model=RegistrationCreateResponse)
async def resubmit_registration(
    registration_id: str,
    data: ResubmitRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    config = await ag_config.get_admission_config(db)
    registration, is_auto_approved = await registrations.resubmit(
        db, registration_id, data.form, config, data.resubmission_note, notifier
    )
    return RegistrationCreateResponse(
        registration=registration_to_response(registration),
        is_auto_approved=is_auto_approved,
    )


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration(
    registration_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    registration = await registrations.cancel(db, registration_id, current_user_id)
    return registration_to_response(registration)


@router.post("/registrations/{registration_id}/receipt", response_model=RegistrationResponse)
async def attach_receipt(
    registration_id: str,
    data: ReceiptAttach,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Attach an uploaded payment receipt; the registration goes to review."""
    registration = await registrations.attach_payment_receipt(db, registration_id, data, current_user_id)
    return registration_to_response(registration)


@router.put("/registrations/{registration_id}/exemption", response_model=RegistrationResponse)
async def update_exemption(
    registration_id: str,
    data: ExemptionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    registration = await registrations.update_payment_exemption(
        db, registration_id, data.is_payment_exempt, data.payment_exempt_reason
    )
    return registration_to_response(registration)


@router.put("/registrations/{registration_id}/modality", response_model=RegistrationResponse)
async def change_modality(
    registration_id: str,
    data: ChangeModalityRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    registration = await registrations.change_modality(db, registration_id, data.modality_id)
    return registration_to_response(registration)


@router.delete("/registrations/{registration_id}", response_model=DeleteResponse)
async def delete_registration(
    registration_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    storage: ReceiptStorage = Depends(get_receipt_storage),
):
    outcome = await registrations.delete(db, registration_id, current_user_id, storage)
    return DeleteResponse(**outcome)
