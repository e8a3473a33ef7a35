"""
Roster service for AG Suite.

Builds the canonical list of registerable entities (executive-board members,
regional coordinators and local committees) from the raw participant-import
rows of an assembly, and stores new imports.
"""
import enum
import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.models.roster_entry import RosterEntry, EntityCategory

logger = logging.getLogger(__name__)


class Eligibility(str, enum.Enum):
    """Voting eligibility of a local committee."""
    FULL_VOTING = "full_voting"
    LIMITED_VOTING = "limited_voting"


# Import vocabulary -> category
CATEGORY_ALIASES = {
    "eb": EntityCategory.EXECUTIVE_BOARD,
    "executive_board": EntityCategory.EXECUTIVE_BOARD,
    "cr": EntityCategory.REGIONAL_COORDINATOR,
    "regional_coordinator": EntityCategory.REGIONAL_COORDINATOR,
    "comite": EntityCategory.LOCAL_COMMITTEE,
    "comite_local": EntityCategory.LOCAL_COMMITTEE,
    "local_committee": EntityCategory.LOCAL_COMMITTEE,
}

FULL_VOTING_ALIASES = {"pleno", "full", "fullvoting"}
LIMITED_VOTING_ALIASES = {"naopleno", "limited", "limitedvoting"}

CATEGORY_ORDER = [
    EntityCategory.EXECUTIVE_BOARD,
    EntityCategory.REGIONAL_COORDINATOR,
    EntityCategory.LOCAL_COMMITTEE,
]

OPTIONAL_FIELDS = ("name", "role", "status", "school", "regional", "city", "state", "affiliation")


@dataclass
class CanonicalEntity:
    """A deduplicated registerable identity."""
    external_id: str
    category: EntityCategory
    name: str = ""
    role: Optional[str] = None
    status: Optional[str] = None
    school: Optional[str] = None
    regional: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    affiliation: Optional[str] = None
    eligibility: Optional[Eligibility] = field(default=None)

    @property
    def key(self) -> tuple[EntityCategory, str]:
        return (self.category, self.external_id)


def sort_key(value: Optional[str]) -> str:
    """Case- and diacritic-insensitive comparison key."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def parse_category(value: Any) -> Optional[EntityCategory]:
    if isinstance(value, EntityCategory):
        return value
    if not isinstance(value, str):
        return None
    return CATEGORY_ALIASES.get(value.strip().lower())


def parse_eligibility(value: Optional[str]) -> Eligibility:
    """Map the import's committee status text to an eligibility value.

    Missing or unknown text is treated as limited voting.
    """
    normalized = "".join(ch for ch in sort_key(value) if ch.isalnum())
    if normalized in FULL_VOTING_ALIASES:
        return Eligibility.FULL_VOTING
    if normalized not in LIMITED_VOTING_ALIASES and normalized:
        logger.debug("Unknown committee status %r, treating as limited voting", value)
    return Eligibility.LIMITED_VOTING


def _get(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _ordering(entity: CanonicalEntity) -> tuple:
    category_rank = CATEGORY_ORDER.index(entity.category)
    if entity.category == EntityCategory.LOCAL_COMMITTEE:
        return (category_rank, "", sort_key(entity.external_id), entity.external_id)
    return (category_rank, sort_key(entity.role), sort_key(entity.external_id), entity.external_id)


def build_roster(
    rows: Iterable[Any],
    scope_filter: Optional[Callable[[Any], bool]] = None,
) -> list[CanonicalEntity]:
    """
    Deduplicate raw import rows into canonical entities.

    Rows are grouped by (category, trimmed external id). The first row of a
    group establishes the identity; later rows only fill optional fields the
    entity does not have yet (first non-empty value wins per field).

    Args:
        rows: RosterEntry objects or dicts with the same field names
        scope_filter: Optional predicate; rows it rejects are skipped

    Returns:
        Canonical entities, executive board and regional coordinators sorted
        by role, local committees by external id
    """
    entities: dict[tuple[EntityCategory, str], CanonicalEntity] = {}

    for row in rows:
        if scope_filter is not None and not scope_filter(row):
            continue
        category = parse_category(_get(row, "category"))
        external_id = _clean(_get(row, "external_id"))
        if category is None or external_id is None:
            continue

        entity = entities.get((category, external_id))
        if entity is None:
            entity = CanonicalEntity(external_id=external_id, category=category)
            entities[(category, external_id)] = entity

        for name in OPTIONAL_FIELDS:
            if getattr(entity, name):
                continue
            value = _clean(_get(row, name))
            if value is not None:
                setattr(entity, name, value)

    for entity in entities.values():
        if entity.category == EntityCategory.LOCAL_COMMITTEE:
            entity.eligibility = parse_eligibility(entity.status)
        if not entity.name:
            entity.name = entity.external_id

    return sorted(entities.values(), key=_ordering)


def group_by_category(roster: Iterable[CanonicalEntity]) -> dict[EntityCategory, list[CanonicalEntity]]:
    grouped: dict[EntityCategory, list[CanonicalEntity]] = {c: [] for c in CATEGORY_ORDER}
    for entity in roster:
        grouped[entity.category].append(entity)
    return grouped


async def load_roster(
    db: AsyncSession,
    assembly_id: str,
    scope_filter: Optional[Callable[[Any], bool]] = None,
) -> list[CanonicalEntity]:
    """Build the canonical roster from an assembly's imported rows."""
    result = await db.execute(
        select(RosterEntry)
        .where(RosterEntry.assembly_id == assembly_id)
        .order_by(RosterEntry.position.asc(), RosterEntry.created.asc())
    )
    return build_roster(result.scalars().all(), scope_filter)


async def import_roster(
    db: AsyncSession,
    assembly_id: str,
    rows: Iterable[dict],
    replace: bool = False,
) -> int:
    """
    Store raw participant rows for an assembly.

    Rows with an unknown category are skipped. With replace=True the
    previously imported rows are removed first.

    Returns:
        Number of rows stored
    """
    if replace:
        await db.execute(delete(RosterEntry).where(RosterEntry.assembly_id == assembly_id))

    position_result = await db.execute(
        select(func.max(RosterEntry.position)).where(RosterEntry.assembly_id == assembly_id)
    )
    next_position = (position_result.scalar() or 0) + 1

    stored = 0
    for row in rows:
        category = parse_category(row.get("category"))
        if category is None:
            logger.warning("Skipping roster row with unknown category %r", row.get("category"))
            continue
        db.add(RosterEntry(
            assembly_id=assembly_id,
            category=category,
            external_id=(row.get("external_id") or "").strip(),
            name=(row.get("name") or "").strip(),
            role=_clean(row.get("role")),
            status=_clean(row.get("status")),
            school=_clean(row.get("school")),
            regional=_clean(row.get("regional")),
            city=_clean(row.get("city")),
            state=_clean(row.get("state")),
            affiliation=_clean(row.get("affiliation")),
            position=next_position + stored,
        ))
        stored += 1

    await db.flush()
    logger.info("Imported %d roster rows into assembly %s", stored, assembly_id)
    return stored
