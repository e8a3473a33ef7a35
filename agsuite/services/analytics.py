"""
Registration analytics for AG Suite.

Compares an assembly's canonical roster with its active registrations.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.errors import DataIntegrityWarning, NotFoundError
from agsuite.models.assembly import Assembly
from agsuite.models.registration import Registration, ParticipantType, ACTIVE_STATUSES
from agsuite.models.roster_entry import EntityCategory
from agsuite.services import modality_ledger
from agsuite.services.modality_ledger import CapacityState
from agsuite.services.roster import CanonicalEntity, Eligibility, load_roster, sort_key

logger = logging.getLogger(__name__)

COVERAGE_CATEGORIES = (
    "executive_board",
    "regional_coordinator",
    "local_committee_full",
    "local_committee_limited",
)

PARTICIPANT_TO_CATEGORY = {
    ParticipantType.EXECUTIVE_BOARD: EntityCategory.EXECUTIVE_BOARD,
    ParticipantType.REGIONAL_COORDINATOR: EntityCategory.REGIONAL_COORDINATOR,
    ParticipantType.LOCAL_COMMITTEE: EntityCategory.LOCAL_COMMITTEE,
}


def _coverage_group(entity: CanonicalEntity) -> str:
    if entity.category == EntityCategory.LOCAL_COMMITTEE:
        if entity.eligibility == Eligibility.FULL_VOTING:
            return "local_committee_full"
        return "local_committee_limited"
    return entity.category.value


def _match_entity(
    registration: Registration,
    by_id: dict[tuple[EntityCategory, str], CanonicalEntity],
    committees_by_name: dict[str, CanonicalEntity],
) -> Optional[CanonicalEntity]:
    category = PARTICIPANT_TO_CATEGORY.get(registration.participant_type)
    if category is None:
        return None
    if registration.entity_id:
        entity = by_id.get((category, registration.entity_id.strip()))
        if entity is not None:
            return entity
    if category == EntityCategory.LOCAL_COMMITTEE and registration.committee_name:
        return committees_by_name.get(sort_key(registration.committee_name.strip()))
    return None


async def _active_registrations(db: AsyncSession, assembly_id: str) -> list[Registration]:
    result = await db.execute(
        select(Registration).where(
            Registration.assembly_id == assembly_id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
    )
    return list(result.scalars().all())


async def _get_assembly(db: AsyncSession, assembly_id: str) -> Assembly:
    assembly = await db.get(Assembly, assembly_id)
    if assembly is None:
        raise NotFoundError("Assembly", assembly_id)
    return assembly


async def registration_coverage(db: AsyncSession, assembly_id: str) -> dict:
    """
    How much of the roster has registered.

    An entity counts as registered when at least one active registration
    claims it (board members and coordinators by entity id, committees by id
    or name). Active registrations that match no entity are counted as others.
    Registered entities plus others must equal the active registrations; two
    registrations claiming one entity are reported in warnings.
    """
    await _get_assembly(db, assembly_id)
    roster = await load_roster(db, assembly_id)
    registrations = await _active_registrations(db, assembly_id)

    by_id = {entity.key: entity for entity in roster}
    committees_by_name: dict[str, CanonicalEntity] = {}
    for entity in roster:
        if entity.category == EntityCategory.LOCAL_COMMITTEE:
            committees_by_name.setdefault(sort_key(entity.external_id), entity)
            committees_by_name.setdefault(sort_key(entity.name), entity)

    registered_keys = set()
    others = 0
    for registration in registrations:
        entity = _match_entity(registration, by_id, committees_by_name)
        if entity is None:
            others += 1
            continue
        registered_keys.add(entity.key)

    categories = {}
    for group in COVERAGE_CATEGORIES:
        members = [e for e in roster if _coverage_group(e) == group]
        unregistered = [e.name for e in members if e.key not in registered_keys]
        total = len(members)
        registered = total - len(unregistered)
        categories[group] = {
            "total": total,
            "registered": registered,
            "unregistered": len(unregistered),
            "registration_rate": round(registered / total * 100, 2) if total > 0 else 0.0,
            "unregistered_names": unregistered,
        }

    # Each registered entity accounts for exactly one active registration
    predefined_matched = sum(c["registered"] for c in categories.values())
    expected_total = predefined_matched + others
    actual_total = len(registrations)
    warnings = []
    if expected_total != actual_total:
        warning = DataIntegrityWarning(
            "Registration totals do not add up",
            expected_total=expected_total, actual_total=actual_total,
        )
        logger.warning(
            f"Coverage mismatch in assembly {assembly_id}: "
            f"expected {expected_total}, actual {actual_total}"
        )
        warnings.append({"code": warning.code, "detail": warning.message})

    return {
        "assembly_id": assembly_id,
        "categories": categories,
        "others": others,
        "validation": {
            "expected_total": expected_total,
            "actual_total": actual_total,
            "predefined_matched": predefined_matched,
            "other_count": others,
            "is_consistent": expected_total == actual_total,
        },
        "warnings": warnings,
    }


async def registration_stats(db: AsyncSession, assembly_id: str) -> dict:
    """Registration totals, roster size and capacity of every modality."""
    assembly = await _get_assembly(db, assembly_id)
    roster = await load_roster(db, assembly_id)

    status_result = await db.execute(
        select(Registration.status, func.count(Registration.id))
        .where(Registration.assembly_id == assembly_id)
        .group_by(Registration.status)
    )
    by_status = {status.value: count for status, count in status_result.all()}

    type_result = await db.execute(
        select(Registration.participant_type, func.count(Registration.id))
        .where(
            Registration.assembly_id == assembly_id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
        .group_by(Registration.participant_type)
    )
    by_type = {ptype.value: count for ptype, count in type_result.all()}
    active = sum(by_status.get(s.value, 0) for s in ACTIVE_STATUSES)

    roster_by_category = {c.value: 0 for c in EntityCategory}
    for entity in roster:
        roster_by_category[entity.category.value] += 1

    modality_stats = []
    for modality in await modality_ledger.list_modalities(db, assembly_id):
        count = await modality_ledger.current_count(db, modality.id)
        state = modality_ledger.capacity_state(count, modality.max_participants)
        modality_stats.append({
            "modality_id": modality.id,
            "name": modality.name,
            "price": modality.price,
            "max_participants": modality.max_participants,
            "current_registrations": count,
            "is_full": state == CapacityState.FULL,
            "is_near_full": state != CapacityState.OPEN,
        })

    assembly_state = modality_ledger.capacity_state(active, assembly.max_participants)

    return {
        "total_roster_entities": len(roster),
        "total_registrations": sum(by_status.values()),
        "active_registrations": active,
        "registrations_by_type": by_type,
        "registrations_by_status": by_status,
        "roster_by_category": roster_by_category,
        "modality_stats": modality_stats,
        "assembly_capacity": {
            "max_participants": assembly.max_participants,
            "current_registrations": active,
            "is_full": assembly_state == CapacityState.FULL,
            "is_near_full": assembly_state != CapacityState.OPEN,
        },
    }
