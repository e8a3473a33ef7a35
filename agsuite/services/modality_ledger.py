"""
Modality ledger for AG Suite.

Capacity accounting for the registration modalities of an assembly:
- current registration count (computed from registrations, never stored)
- capacity state (open / near full / full)
- reservation of a slot inside the admission critical section
- modality CRUD and the default modality sets for AG and AGE
"""
import asyncio
import enum
import logging
import weakref
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.config import settings
from agsuite.core.errors import ModalityFull, NotFoundError, ValidationError
from agsuite.models.assembly import Assembly, AssemblyType
from agsuite.models.modality import Modality
from agsuite.models.registration import Registration, ACTIVE_STATUSES
from agsuite.schemas.assembly import ModalityCreate, ModalityUpdate

logger = logging.getLogger(__name__)


class CapacityState(str, enum.Enum):
    OPEN = "open"
    NEAR_FULL = "near_full"
    FULL = "full"


# AG defaults; prices in cents
DEFAULT_AG_MODALITIES = [
    {
        "name": "Participante",
        "description": "Participação presencial na Assembleia Geral",
        "price": 15000,
        "max_participants": 100,
    },
    {
        "name": "Estudante",
        "description": "Participação presencial com desconto estudantil",
        "price": 10000,
        "max_participants": 50,
    },
    {
        "name": "Convidado",
        "description": "Participação presencial para convidados especiais",
        "price": 0,
        "max_participants": 20,
    },
]

DEFAULT_AGE_MODALITIES = [
    {
        "name": "AGE online",
        "description": "Participação online na Assembleia Geral Extraordinária",
        "price": 0,
        "max_participants": None,
    },
]


_admission_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def admission_lock(key: str) -> asyncio.Lock:
    """
    In-process lock serialising admissions for one assembly.

    Locks live only while someone holds a reference to them.
    """
    lock = _admission_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _admission_locks[key] = lock
    return lock


def capacity_state(count: int, max_participants: Optional[int]) -> CapacityState:
    """Capacity state for a count against an optional maximum."""
    if not max_participants:
        return CapacityState.OPEN
    if count >= max_participants:
        return CapacityState.FULL
    if count >= max_participants * settings.NEAR_FULL_RATIO:
        return CapacityState.NEAR_FULL
    return CapacityState.OPEN


async def get_modality(db: AsyncSession, modality_id: str, for_update: bool = False) -> Modality:
    query = select(Modality).where(Modality.id == modality_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    modality = result.scalar_one_or_none()
    if modality is None:
        raise NotFoundError("Modality", modality_id)
    return modality


async def current_count(
    db: AsyncSession,
    modality_id: str,
    exclude_registration_id: Optional[str] = None,
) -> int:
    """Registrations holding a slot in the modality (pending, pending_review, approved)."""
    query = select(func.count(Registration.id)).where(
        Registration.modality_id == modality_id,
        Registration.status.in_(ACTIVE_STATUSES),
    )
    if exclude_registration_id is not None:
        query = query.where(Registration.id != exclude_registration_id)
    result = await db.execute(query)
    return result.scalar() or 0


async def get_capacity_state(db: AsyncSession, modality_id: str) -> CapacityState:
    modality = await get_modality(db, modality_id)
    count = await current_count(db, modality_id)
    return capacity_state(count, modality.max_participants)


async def reserve(
    db: AsyncSession,
    modality: Modality,
    assembly_id: str,
    exclude_registration_id: Optional[str] = None,
) -> int:
    """
    Check that one more registration fits in the modality.

    Must run inside the admission critical section, in the same transaction
    as the insert/update that takes the slot.

    Returns:
        The count before admission
    """
    if modality.assembly_id != assembly_id:
        raise ValidationError(
            "Modality does not belong to this assembly",
            modality_id=modality.id, assembly_id=assembly_id,
        )
    if not modality.is_active:
        raise ValidationError("Selected registration modality is not available", modality_id=modality.id)

    count = await current_count(db, modality.id, exclude_registration_id)
    if modality.max_participants is not None and count + 1 > modality.max_participants:
        raise ModalityFull(
            "This registration modality is full",
            modality_id=modality.id, current=count, max_participants=modality.max_participants,
        )
    return count


async def modality_stats(db: AsyncSession, modality_id: str) -> dict:
    """Totals, per-status counts and capacity of one modality."""
    modality = await get_modality(db, modality_id)
    result = await db.execute(
        select(Registration.status, func.count(Registration.id))
        .where(Registration.modality_id == modality_id)
        .group_by(Registration.status)
    )
    by_status = {status.value: count for status, count in result.all()}
    active = sum(by_status.get(s.value, 0) for s in ACTIVE_STATUSES)
    state = capacity_state(active, modality.max_participants)

    return {
        "modality_id": modality.id,
        "name": modality.name,
        "price": modality.price,
        "max_participants": modality.max_participants,
        "total": sum(by_status.values()),
        "active": active,
        "capacity_state": state.value,
        "is_full": state == CapacityState.FULL,
        "is_near_full": state != CapacityState.OPEN,
        "by_status": by_status,
    }


async def list_modalities(db: AsyncSession, assembly_id: str, active_only: bool = False) -> list[Modality]:
    query = select(Modality).where(Modality.assembly_id == assembly_id)
    if active_only:
        query = query.where(Modality.is_active.is_(True))
    result = await db.execute(query.order_by(Modality.order.asc()))
    return list(result.scalars().all())


async def create_modality(
    db: AsyncSession,
    assembly_id: str,
    data: ModalityCreate,
    created_by: str,
) -> Modality:
    """Create a modality at the end of the assembly's ordering."""
    result = await db.execute(
        select(func.max(Modality.order)).where(Modality.assembly_id == assembly_id)
    )
    max_order = result.scalar() or 0

    modality = Modality(
        assembly_id=assembly_id,
        name=data.name,
        description=data.description,
        price=data.price,
        max_participants=data.max_participants,
        is_active=True,
        order=max_order + 1,
        created_by=created_by,
    )
    db.add(modality)
    await db.flush()
    await db.refresh(modality)
    return modality


async def update_modality(db: AsyncSession, modality_id: str, data: ModalityUpdate) -> Modality:
    modality = await get_modality(db, modality_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(modality, key, value)
    await db.flush()
    await db.refresh(modality)
    return modality


async def delete_modality(db: AsyncSession, modality_id: str) -> None:
    """Delete a modality that no registration references."""
    modality = await get_modality(db, modality_id)
    result = await db.execute(
        select(func.count(Registration.id)).where(Registration.modality_id == modality_id)
    )
    if (result.scalar() or 0) > 0:
        raise ValidationError(
            "Cannot delete modality with existing registrations", modality_id=modality_id
        )
    await db.delete(modality)
    await db.flush()


async def initialize_default_modalities(
    db: AsyncSession,
    assembly: Assembly,
    created_by: str,
) -> list[Modality]:
    """
    Create the default modality set for an assembly.

    AGE gets a single free, unlimited online modality; AG gets the three
    priced, capped defaults. Existing modalities are returned unchanged.
    """
    existing = await list_modalities(db, assembly.id)
    if existing:
        return existing

    defaults = DEFAULT_AGE_MODALITIES if assembly.kind == AssemblyType.AGE else DEFAULT_AG_MODALITIES
    modalities = []
    for i, values in enumerate(defaults):
        modality = Modality(
            assembly_id=assembly.id,
            is_active=True,
            order=i + 1,
            created_by=created_by,
            **values,
        )
        db.add(modality)
        modalities.append(modality)

    await db.flush()
    logger.info("Created %d default modalities for assembly %s", len(modalities), assembly.id)
    return modalities
