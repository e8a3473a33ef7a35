"""
Registration workflow for AG Suite.

Admission of participants into an assembly and the review lifecycle that
follows it:

    pending / pending_review -> approved | rejected
    rejected -> pending (resubmit)
    pending -> pending_review (receipt or payment exemption)
    pending / pending_review / approved / rejected -> cancelled

Admission (create, change_modality) runs in a per-assembly critical section:
the assembly and modality rows are locked, capacity and identity uniqueness
are checked, and the transaction is committed before the section is left.
Notifications are dispatched after commit.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.errors import (
    AGSuiteError,
    CapacityExceeded,
    DuplicateRegistration,
    InvalidStateTransition,
    NotFoundError,
    RegistrationClosed,
    ReviewNotesRequired,
)
from agsuite.models.assembly import Assembly, AssemblyStatus
from agsuite.models.base import as_utc, utcnow
from agsuite.models.modality import Modality
from agsuite.models.registration import (
    Registration,
    RegistrationStatus,
    ParticipantType,
    ACTIVE_STATUSES,
    REVIEWABLE_STATUSES,
)
from agsuite.schemas.ag_config import AdmissionConfig
from agsuite.schemas.common import BulkItemResult
from agsuite.schemas.registration import (
    PaymentInfo,
    ReceiptAttach,
    RegistrationForm,
    ReviewDecision,
)
from agsuite.services import modality_ledger
from agsuite.services.notifications import Notifier, NotificationKind, dispatch, registration_payload
from agsuite.services.storage import ReceiptStorage

logger = logging.getLogger(__name__)

SYSTEM_REVIEWER = "system"
AUTO_APPROVAL_NOTE = "Auto-approved by system"

# Participant types whose roster entity id identifies a single person
ENTITY_KEYED_TYPES = (ParticipantType.EXECUTIVE_BOARD, ParticipantType.REGIONAL_COORDINATOR)

SNAPSHOT_FIELDS = (
    "participant_name", "participant_role", "email", "phone", "badge_name",
    "birth_date", "document_number", "city", "state", "aspiring_committee",
    "data_sharing_consent", "additional_info",
)


def identity_key(
    participant_type: ParticipantType,
    entity_id: Optional[str],
    participant_id: str,
) -> Optional[str]:
    """
    Uniqueness key of a registrant within an assembly.

    Board members and coordinators are keyed by the roster entity they claim;
    everyone else with a category by their user id. "other" registrants have
    no key; like everyone else they are still limited to one active
    registration per user.
    """
    if participant_type == ParticipantType.OTHER:
        return None
    entity_id = (entity_id or "").strip()
    if participant_type in ENTITY_KEYED_TYPES and entity_id:
        return f"{participant_type.value}:{entity_id}"
    return f"user:{participant_id}"


def _apply_form(registration: Registration, form: RegistrationForm) -> None:
    registration.participant_type = form.participant_type
    registration.entity_id = (form.entity_id or "").strip() or None
    registration.committee_name = (form.committee_name or "").strip() or None
    registration.identity_key = identity_key(
        form.participant_type, form.entity_id, registration.participant_id
    )
    for name in SNAPSHOT_FIELDS:
        setattr(registration, name, getattr(form, name))


def _mark_auto_approved(registration: Registration) -> None:
    registration.status = RegistrationStatus.APPROVED
    registration.reviewed_at = utcnow()
    registration.reviewed_by = SYSTEM_REVIEWER
    registration.review_notes = AUTO_APPROVAL_NOTE


def _ensure_accepting(assembly: Assembly, config: AdmissionConfig) -> None:
    if not config.registration_enabled:
        raise RegistrationClosed("Registrations are currently disabled", assembly_id=assembly.id)
    if assembly.status != AssemblyStatus.ACTIVE:
        raise RegistrationClosed("Assembly is not active", assembly_id=assembly.id)
    if not assembly.registration_open:
        raise RegistrationClosed("Registration is closed for this assembly", assembly_id=assembly.id)
    if assembly.registration_deadline is not None and utcnow() > as_utc(assembly.registration_deadline):
        raise RegistrationClosed(
            "Registration deadline has passed",
            assembly_id=assembly.id,
            deadline=assembly.registration_deadline.isoformat(),
        )


async def _get_assembly(db: AsyncSession, assembly_id: str, for_update: bool = False) -> Assembly:
    query = select(Assembly).where(Assembly.id == assembly_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    assembly = result.scalar_one_or_none()
    if assembly is None:
        raise NotFoundError("Assembly", assembly_id)
    return assembly


async def get_registration(db: AsyncSession, registration_id: str) -> Registration:
    result = await db.execute(select(Registration).where(Registration.id == registration_id))
    registration = result.scalar_one_or_none()
    if registration is None:
        raise NotFoundError("Registration", registration_id)
    return registration


async def _ensure_identity_free(
    db: AsyncSession,
    assembly_id: str,
    key: Optional[str],
    exclude_registration_id: Optional[str] = None,
) -> None:
    if key is None:
        return
    query = select(Registration.id).where(
        Registration.assembly_id == assembly_id,
        Registration.identity_key == key,
        Registration.status.in_(ACTIVE_STATUSES),
    )
    if exclude_registration_id is not None:
        query = query.where(Registration.id != exclude_registration_id)
    result = await db.execute(query.limit(1))
    existing_id = result.scalar_one_or_none()
    if existing_id is not None:
        raise DuplicateRegistration(
            "Participant is already registered for this assembly",
            assembly_id=assembly_id, identity_key=key, existing_registration_id=existing_id,
        )


async def _ensure_participant_free(
    db: AsyncSession,
    assembly_id: str,
    participant_id: str,
    exclude_registration_id: Optional[str] = None,
) -> None:
    query = select(Registration.id).where(
        Registration.assembly_id == assembly_id,
        Registration.participant_id == participant_id,
        Registration.status.in_(ACTIVE_STATUSES),
    )
    if exclude_registration_id is not None:
        query = query.where(Registration.id != exclude_registration_id)
    result = await db.execute(query.limit(1))
    existing_id = result.scalar_one_or_none()
    if existing_id is not None:
        raise DuplicateRegistration(
            "User is already registered for this assembly",
            assembly_id=assembly_id, participant_id=participant_id, existing_registration_id=existing_id,
        )


async def _ensure_assembly_capacity(db: AsyncSession, assembly: Assembly) -> None:
    if assembly.max_participants is None:
        return
    result = await db.execute(
        select(func.count(Registration.id)).where(
            Registration.assembly_id == assembly.id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
    )
    count = result.scalar() or 0
    if count >= assembly.max_participants:
        raise CapacityExceeded(
            "Assembly has reached maximum participants",
            assembly_id=assembly.id, current=count, max_participants=assembly.max_participants,
        )


async def _commit_admission(db: AsyncSession, registration: Registration) -> None:
    """Commit, mapping a unique-index violation to DuplicateRegistration."""
    assembly_id = registration.assembly_id
    key = registration.identity_key
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Identity collision on commit in assembly {assembly_id}: {e.orig}")
        raise DuplicateRegistration(
            "Participant is already registered for this assembly",
            assembly_id=assembly_id, identity_key=key,
        )


async def create(
    db: AsyncSession,
    assembly_id: str,
    modality_id: str,
    participant_id: str,
    form: RegistrationForm,
    config: AdmissionConfig,
    notifier: Optional[Notifier] = None,
    payment: Optional[PaymentInfo] = None,
) -> tuple[Registration, bool]:
    """
    Admit a participant into an assembly.

    Args:
        db: Database session; committed before returning
        assembly_id: Target assembly
        modality_id: Chosen registration modality
        participant_id: Opaque id of the registering user
        form: Participant snapshot
        config: Admission switches (registration enabled, auto-approval)
        notifier: Notification port
        payment: Optional payment exemption request

    Returns:
        (registration, is_auto_approved)
    """
    async with modality_ledger.admission_lock(assembly_id):
        assembly = await _get_assembly(db, assembly_id, for_update=True)
        _ensure_accepting(assembly, config)

        modality = await modality_ledger.get_modality(db, modality_id, for_update=True)
        await modality_ledger.reserve(db, modality, assembly.id)
        await _ensure_assembly_capacity(db, assembly)

        registration = Registration(
            assembly_id=assembly.id,
            modality_id=modality.id,
            participant_id=participant_id,
            registered_by=participant_id,
            registered_at=utcnow(),
            status=RegistrationStatus.PENDING,
        )
        _apply_form(registration, form)
        if payment is not None:
            registration.is_payment_exempt = payment.is_payment_exempt
            registration.payment_exempt_reason = payment.payment_exempt_reason

        await _ensure_participant_free(db, assembly.id, participant_id)
        await _ensure_identity_free(db, assembly.id, registration.identity_key)

        is_auto_approved = config.auto_approval
        if is_auto_approved:
            _mark_auto_approved(registration)

        db.add(registration)
        await _commit_admission(db, registration)

    logger.info(
        f"Registration {registration.id} created in assembly {assembly_id} "
        f"({registration.status.value}, modality {modality.id})"
    )

    kind = (
        NotificationKind.REGISTRATION_AUTO_APPROVED if is_auto_approved
        else NotificationKind.REGISTRATION_CREATED
    )
    await dispatch(notifier, kind, registration_payload(registration, modality))
    return registration, is_auto_approved


async def review(
    db: AsyncSession,
    registration_id: str,
    decision: ReviewDecision,
    reviewer_id: str,
    notes: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """
    Approve or reject a pending registration.

    Rejections require notes, which are shown to the registrant.
    """
    if decision == ReviewDecision.REJECT and not (notes or "").strip():
        raise ReviewNotesRequired("Review notes are required when rejecting", registration_id=registration_id)

    registration = await get_registration(db, registration_id)
    if registration.status not in REVIEWABLE_STATUSES:
        raise InvalidStateTransition(
            f"Cannot {decision.value} a registration that is {registration.status.value}",
            registration_id=registration_id, current_status=registration.status.value,
        )

    registration.status = (
        RegistrationStatus.APPROVED if decision == ReviewDecision.APPROVE
        else RegistrationStatus.REJECTED
    )
    registration.reviewed_at = utcnow()
    registration.reviewed_by = reviewer_id
    registration.review_notes = notes
    await db.commit()

    logger.info(f"Registration {registration_id} {registration.status.value} by {reviewer_id}")

    modality = None
    if registration.modality_id is not None:
        modality = await db.get(Modality, registration.modality_id)
    payload = registration_payload(registration, modality)
    payload["review_notes"] = notes
    if decision == ReviewDecision.APPROVE:
        payload["is_payment_exempt"] = registration.is_payment_exempt
        payload["payment_exempt_reason"] = registration.payment_exempt_reason
        await dispatch(notifier, NotificationKind.REGISTRATION_APPROVED, payload)
    else:
        payload["can_resubmit"] = True
        await dispatch(notifier, NotificationKind.REGISTRATION_REJECTED, payload)

    return registration


async def bulk_review(
    db: AsyncSession,
    registration_ids: Sequence[str],
    decision: ReviewDecision,
    reviewer_id: str,
    notes: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> list[BulkItemResult]:
    """Review each registration independently; one failure does not stop the rest."""
    results = []
    for registration_id in registration_ids:
        try:
            await review(db, registration_id, decision, reviewer_id, notes, notifier)
        except AGSuiteError as e:
            results.append(BulkItemResult(id=registration_id, ok=False, code=e.code, detail=e.message))
            continue
        results.append(BulkItemResult(id=registration_id, ok=True))
    return results


async def resubmit(
    db: AsyncSession,
    registration_id: str,
    form: RegistrationForm,
    config: AdmissionConfig,
    note: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> tuple[Registration, bool]:
    """
    Resubmit a rejected registration with a corrected form.

    The modality is kept and its capacity is not re-checked.

    Returns:
        (registration, is_auto_approved)
    """
    registration = await get_registration(db, registration_id)
    if registration.status != RegistrationStatus.REJECTED:
        raise InvalidStateTransition(
            "Only rejected registrations can be resubmitted",
            registration_id=registration_id, current_status=registration.status.value,
        )

    async with modality_ledger.admission_lock(registration.assembly_id):
        assembly = await _get_assembly(db, registration.assembly_id, for_update=True)
        _ensure_accepting(assembly, config)

        await _ensure_participant_free(
            db, registration.assembly_id, registration.participant_id,
            exclude_registration_id=registration.id,
        )
        await _ensure_identity_free(
            db,
            registration.assembly_id,
            identity_key(form.participant_type, form.entity_id, registration.participant_id),
            exclude_registration_id=registration.id,
        )

        _apply_form(registration, form)
        registration.status = RegistrationStatus.PENDING
        registration.resubmitted_at = utcnow()
        registration.resubmission_note = note
        registration.reviewed_at = None
        registration.reviewed_by = None
        registration.review_notes = None

        is_auto_approved = config.auto_approval
        if is_auto_approved:
            _mark_auto_approved(registration)

        await _commit_admission(db, registration)

    logger.info(f"Registration {registration_id} resubmitted ({registration.status.value})")

    kind = (
        NotificationKind.REGISTRATION_AUTO_APPROVED if is_auto_approved
        else NotificationKind.REGISTRATION_CREATED
    )
    await dispatch(notifier, kind, registration_payload(registration))
    return registration, is_auto_approved


async def cancel(db: AsyncSession, registration_id: str, actor_id: str) -> Registration:
    """Cancel a registration, releasing its modality slot."""
    registration = await get_registration(db, registration_id)
    if registration.status == RegistrationStatus.CANCELLED:
        raise InvalidStateTransition(
            "Registration is already cancelled",
            registration_id=registration_id, current_status=registration.status.value,
        )

    registration.status = RegistrationStatus.CANCELLED
    registration.cancelled_at = utcnow()
    registration.cancelled_by = actor_id
    await db.flush()

    logger.info(f"Registration {registration_id} cancelled by {actor_id}")
    return registration


async def attach_payment_receipt(
    db: AsyncSession,
    registration_id: str,
    receipt: ReceiptAttach,
    actor_id: str,
) -> Registration:
    """Store the uploaded receipt reference and queue the registration for review."""
    registration = await get_registration(db, registration_id)
    if registration.status not in REVIEWABLE_STATUSES:
        raise InvalidStateTransition(
            f"Cannot attach a receipt to a registration that is {registration.status.value}",
            registration_id=registration_id, current_status=registration.status.value,
        )

    registration.receipt_storage_id = receipt.storage_id
    registration.receipt_file_name = receipt.file_name
    registration.receipt_file_type = receipt.file_type
    registration.receipt_file_size = receipt.file_size
    registration.receipt_uploaded_at = utcnow()
    registration.receipt_uploaded_by = actor_id
    registration.status = RegistrationStatus.PENDING_REVIEW
    await db.flush()

    logger.info(f"Receipt attached to registration {registration_id}")
    return registration


async def update_payment_exemption(
    db: AsyncSession,
    registration_id: str,
    is_payment_exempt: bool,
    reason: Optional[str] = None,
) -> Registration:
    registration = await get_registration(db, registration_id)
    if registration.status == RegistrationStatus.CANCELLED:
        raise InvalidStateTransition(
            "Cannot update a cancelled registration",
            registration_id=registration_id, current_status=registration.status.value,
        )

    registration.is_payment_exempt = is_payment_exempt
    registration.payment_exempt_reason = reason if is_payment_exempt else None

    if is_payment_exempt and registration.status == RegistrationStatus.PENDING:
        registration.status = RegistrationStatus.PENDING_REVIEW
    elif (
        not is_payment_exempt
        and registration.status == RegistrationStatus.PENDING_REVIEW
        and registration.receipt_storage_id is None
    ):
        registration.status = RegistrationStatus.PENDING

    await db.flush()
    return registration


async def change_modality(db: AsyncSession, registration_id: str, new_modality_id: str) -> Registration:
    """Move a registration to another modality of the same assembly."""
    registration = await get_registration(db, registration_id)
    if registration.status == RegistrationStatus.CANCELLED:
        raise InvalidStateTransition(
            "Cannot change modality for a cancelled registration",
            registration_id=registration_id, current_status=registration.status.value,
        )

    async with modality_ledger.admission_lock(registration.assembly_id):
        await _get_assembly(db, registration.assembly_id, for_update=True)
        modality = await modality_ledger.get_modality(db, new_modality_id, for_update=True)
        await modality_ledger.reserve(
            db, modality, registration.assembly_id, exclude_registration_id=registration.id
        )
        previous = registration.modality_id
        registration.modality_id = modality.id
        await db.commit()

    logger.info(f"Registration {registration_id} moved from modality {previous} to {modality.id}")
    return registration


async def remove_receipt(storage: Optional[ReceiptStorage], registration_id: str, storage_id: Optional[str]) -> bool:
    """Returns False if the stored receipt could not be removed."""
    if storage_id is None or storage is None:
        return True
    try:
        await storage.delete(storage_id)
        return True
    except Exception as e:
        logger.warning(f"Failed to delete receipt {storage_id} of registration {registration_id}: {e}")
        return False


async def delete(
    db: AsyncSession,
    registration_id: str,
    actor_id: str,
    storage: Optional[ReceiptStorage] = None,
) -> dict:
    """
    Hard-delete a registration and its receipt.

    Returns:
        {"deleted": 1, "missing": [], "artifact_failures": [...]}
    """
    registration = await get_registration(db, registration_id)
    storage_id = registration.receipt_storage_id

    await db.delete(registration)
    await db.commit()
    logger.info(f"Registration {registration_id} deleted by {actor_id}")

    failures = []
    if not await remove_receipt(storage, registration_id, storage_id):
        failures.append(registration_id)
    return {"deleted": 1, "missing": [], "artifact_failures": failures}


async def bulk_delete(
    db: AsyncSession,
    registration_ids: Sequence[str],
    actor_id: str,
    storage: Optional[ReceiptStorage] = None,
) -> dict:
    """Delete each registration independently, committing per item."""
    deleted = 0
    missing = []
    failures = []
    for registration_id in registration_ids:
        try:
            outcome = await delete(db, registration_id, actor_id, storage)
        except NotFoundError:
            missing.append(registration_id)
            continue
        deleted += outcome["deleted"]
        failures.extend(outcome["artifact_failures"])
    return {"deleted": deleted, "missing": missing, "artifact_failures": failures}


async def get_user_registration(db: AsyncSession, assembly_id: str, user_id: str) -> Optional[Registration]:
    """
    The user's registration in the assembly.

    An approved registration wins over an active one, and an active one over
    a rejected one; ties go to the latest. Cancelled registrations are ignored.
    """
    standing = case(
        (Registration.status == RegistrationStatus.APPROVED, 0),
        (Registration.status.in_(ACTIVE_STATUSES), 1),
        else_=2,
    )
    result = await db.execute(
        select(Registration)
        .where(
            Registration.assembly_id == assembly_id,
            Registration.participant_id == user_id,
            Registration.status != RegistrationStatus.CANCELLED,
        )
        .order_by(standing, Registration.registered_at.desc(), Registration.created.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_registrations(
    db: AsyncSession,
    assembly_id: str,
    statuses: Optional[Sequence[RegistrationStatus]] = None,
) -> list[Registration]:
    query = select(Registration).where(Registration.assembly_id == assembly_id)
    if statuses:
        query = query.where(Registration.status.in_(statuses))
    result = await db.execute(query.order_by(Registration.registered_at.asc()))
    return list(result.scalars().all())


async def list_pending(db: AsyncSession, assembly_id: str) -> list[Registration]:
    """Registrations waiting for an organizer decision."""
    return await list_registrations(db, assembly_id, REVIEWABLE_STATUSES)
