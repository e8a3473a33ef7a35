"""
Assembly lifecycle for AG Suite.

Assemblies are created active, archived when they are over (which closes
registration) and may then be deleted together with everything that belongs
to them.
"""
import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from agsuite.models.ag_session import AGSession
from agsuite.models.assembly import Assembly, AssemblyStatus, AssemblyType
from agsuite.models.attendance import AttendanceRecord
from agsuite.models.base import as_utc
from agsuite.models.modality import Modality
from agsuite.models.registration import Registration
from agsuite.models.roster_entry import RosterEntry
from agsuite.schemas.assembly import AssemblyCreate, AssemblyUpdate
from agsuite.services.registrations import remove_receipt
from agsuite.services.storage import ReceiptStorage

logger = logging.getLogger(__name__)


async def get_assembly(db: AsyncSession, assembly_id: str) -> Assembly:
    result = await db.execute(select(Assembly).where(Assembly.id == assembly_id))
    assembly = result.scalar_one_or_none()
    if assembly is None:
        raise NotFoundError("Assembly", assembly_id)
    return assembly


async def list_assemblies(db: AsyncSession, status: Optional[AssemblyStatus] = None) -> list[Assembly]:
    query = select(Assembly)
    if status is not None:
        query = query.where(Assembly.status == status)
    result = await db.execute(query.order_by(Assembly.start_time.desc()))
    return list(result.scalars().all())


async def create_assembly(db: AsyncSession, data: AssemblyCreate, created_by: str) -> Assembly:
    """Create an active assembly; payment is required by default only for AG."""
    payment_required = data.payment_required
    if payment_required is None:
        payment_required = data.kind == AssemblyType.AG

    assembly = Assembly(
        name=data.name,
        kind=data.kind,
        location=data.location,
        description=data.description,
        status=AssemblyStatus.ACTIVE,
        start_time=data.start_time,
        end_time=data.end_time,
        registration_open=data.registration_open,
        registration_deadline=data.registration_deadline,
        max_participants=data.max_participants,
        payment_required=payment_required,
        created_by=created_by,
        last_updated_by=created_by,
    )
    db.add(assembly)
    await db.flush()
    await db.refresh(assembly)

    logger.info(f"Created {assembly.kind.value} assembly {assembly.id} ({assembly.name})")
    return assembly


async def update_assembly(db: AsyncSession, assembly_id: str, data: AssemblyUpdate, updated_by: str) -> Assembly:
    assembly = await get_assembly(db, assembly_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(assembly, key, value)
    if as_utc(assembly.end_time) < as_utc(assembly.start_time):
        raise ValidationError("end_time must not be before start_time", assembly_id=assembly_id)
    assembly.last_updated_by = updated_by

    await db.flush()
    await db.refresh(assembly)
    return assembly


async def archive_assembly(db: AsyncSession, assembly_id: str, updated_by: str) -> Assembly:
    """Archive an active assembly and close its registration."""
    assembly = await get_assembly(db, assembly_id)
    if assembly.status != AssemblyStatus.ACTIVE:
        raise InvalidStateTransition(
            "Only active assemblies can be archived",
            assembly_id=assembly_id, current_status=assembly.status.value,
        )

    assembly.status = AssemblyStatus.ARCHIVED
    assembly.registration_open = False
    assembly.last_updated_by = updated_by
    await db.flush()
    await db.refresh(assembly)

    logger.info(f"Assembly {assembly_id} archived by {updated_by}")
    return assembly


async def delete_assembly(
    db: AsyncSession,
    assembly_id: str,
    confirmation_text: str,
    actor_id: str,
    storage: Optional[ReceiptStorage] = None,
) -> dict:
    """
    Permanently delete an archived assembly and all related data.

    The caller must confirm by passing the assembly name. Receipt artifacts
    are removed after the rows are gone; failures are reported, not raised.

    Returns:
        Deletion summary with per-table counts
    """
    assembly = await get_assembly(db, assembly_id)
    if assembly.status != AssemblyStatus.ARCHIVED:
        raise InvalidStateTransition(
            "Only archived assemblies can be deleted",
            assembly_id=assembly_id, current_status=assembly.status.value,
        )
    if confirmation_text != assembly.name:
        raise ValidationError("Confirmation text does not match assembly name", assembly_id=assembly_id)

    receipts_result = await db.execute(
        select(Registration.id, Registration.receipt_storage_id).where(
            Registration.assembly_id == assembly_id,
            Registration.receipt_storage_id.is_not(None),
        )
    )
    receipts = receipts_result.all()

    # Children first; SQLite does not enforce ON DELETE CASCADE by default
    attendance_result = await db.execute(
        delete(AttendanceRecord).where(AttendanceRecord.assembly_id == assembly_id)
    )
    sessions_result = await db.execute(delete(AGSession).where(AGSession.assembly_id == assembly_id))
    registrations_result = await db.execute(
        delete(Registration).where(Registration.assembly_id == assembly_id)
    )
    modalities_result = await db.execute(delete(Modality).where(Modality.assembly_id == assembly_id))
    roster_result = await db.execute(delete(RosterEntry).where(RosterEntry.assembly_id == assembly_id))
    await db.execute(delete(Assembly).where(Assembly.id == assembly_id))
    await db.commit()

    logger.info(
        f"Assembly {assembly_id} ({assembly.name}) deleted by {actor_id}: "
        f"{registrations_result.rowcount} registrations, {sessions_result.rowcount} sessions"
    )

    failures = []
    for registration_id, storage_id in receipts:
        if not await remove_receipt(storage, registration_id, storage_id):
            failures.append(registration_id)

    return {
        "assembly_id": assembly_id,
        "deleted_registrations": registrations_result.rowcount,
        "deleted_modalities": modalities_result.rowcount,
        "deleted_roster_entries": roster_result.rowcount,
        "deleted_sessions": sessions_result.rowcount,
        "deleted_attendance_records": attendance_result.rowcount,
        "artifact_failures": failures,
    }
