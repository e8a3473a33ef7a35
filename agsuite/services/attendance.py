"""
Attendance and quorum engine for AG Suite.

Sessions of an assembly track one presence record per participant; records
are keyed by (session, participant_id, participant_type) and written with a
last-write-wins upsert.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.errors import InvalidStateTransition, NotEligible, NotFoundError, SessionArchived
from agsuite.models.ag_session import AGSession, SessionStatus, SessionType
from agsuite.models.assembly import Assembly
from agsuite.models.attendance import AttendanceRecord, AttendanceState, AttendeeType
from agsuite.models.base import utcnow
from agsuite.models.registration import Registration, RegistrationStatus, ParticipantType
from agsuite.models.roster_entry import EntityCategory
from agsuite.schemas.session import SessionCreate
from agsuite.services.registrations import get_user_registration
from agsuite.services.roster import Eligibility, load_roster, sort_key

logger = logging.getLogger(__name__)


# Organizer click cycle
STATE_CYCLE = [
    AttendanceState.NOT_COUNTING,
    AttendanceState.PRESENT,
    AttendanceState.ABSENT,
    AttendanceState.EXCLUDED,
]

CATEGORY_TO_ATTENDEE = {
    EntityCategory.EXECUTIVE_BOARD: AttendeeType.EXECUTIVE_BOARD,
    EntityCategory.REGIONAL_COORDINATOR: AttendeeType.REGIONAL_COORDINATOR,
    EntityCategory.LOCAL_COMMITTEE: AttendeeType.LOCAL_COMMITTEE,
}

QUORUM_GROUPS = (
    "executive_board",
    "regional_coordinator",
    "local_committee_full",
    "local_committee_limited",
    "individual",
)


@dataclass
class AttendanceTarget:
    """The attendance row a participant marks for themselves."""
    participant_id: str
    participant_type: AttendeeType
    participant_name: str
    participant_role: Optional[str] = None
    committee_name: Optional[str] = None


def next_state(state: AttendanceState) -> AttendanceState:
    """not_counting -> present -> absent -> excluded -> not_counting"""
    return STATE_CYCLE[(STATE_CYCLE.index(state) + 1) % len(STATE_CYCLE)]


async def get_session(db: AsyncSession, session_id: str) -> AGSession:
    result = await db.execute(select(AGSession).where(AGSession.id == session_id))
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFoundError("Session", session_id)
    return session


def _ensure_active(session: AGSession) -> None:
    if session.status != SessionStatus.ACTIVE:
        raise SessionArchived(
            "Session is archived", session_id=session.id, current_status=session.status.value
        )


async def get_record(
    db: AsyncSession,
    session_id: str,
    participant_id: str,
    participant_type: AttendeeType,
) -> Optional[AttendanceRecord]:
    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.participant_id == participant_id,
            AttendanceRecord.participant_type == participant_type,
        )
    )
    return result.scalar_one_or_none()


def _insert_for(db: AsyncSession):
    """Dialect insert construct with ON CONFLICT support, or None."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    return None


async def _committee_eligibility(
    db: AsyncSession,
    assembly_id: str,
    participant_id: str,
    committee_name: Optional[str] = None,
) -> Optional[str]:
    """Eligibility of the roster committee a committee record stands for."""
    wanted = {sort_key(participant_id), sort_key(committee_name)} - {""}
    for entity in await load_roster(db, assembly_id):
        if entity.category != EntityCategory.LOCAL_COMMITTEE:
            continue
        if {sort_key(entity.external_id), sort_key(entity.name)} & wanted:
            return entity.eligibility.value if entity.eligibility else None
    return None


async def _merge_record(db: AsyncSession, values: dict) -> AttendanceRecord:
    """Select-then-update upsert for dialects without ON CONFLICT."""
    record = await get_record(db, values["session_id"], values["participant_id"], values["participant_type"])
    if record is None:
        record = AttendanceRecord(**values)
        db.add(record)
    else:
        record.state = values["state"]
        record.marked_by = values["marked_by"]
        record.marked_at = values["marked_at"]
    await db.flush()
    return record


async def mark_attendance(
    db: AsyncSession,
    session_id: str,
    participant_id: str,
    participant_type: AttendeeType,
    new_state: AttendanceState,
    actor_id: str,
    participant_name: str = "",
    participant_role: Optional[str] = None,
    committee_name: Optional[str] = None,
) -> AttendanceRecord:
    """
    Set a participant's presence state in an active session.

    Creates the record if it does not exist; otherwise overwrites state,
    marker and time (last write wins).
    """
    session = await get_session(db, session_id)
    _ensure_active(session)

    now = utcnow()
    values = dict(
        session_id=session.id,
        assembly_id=session.assembly_id,
        participant_id=participant_id,
        participant_type=participant_type,
        participant_name=participant_name or participant_id,
        participant_role=participant_role,
        committee_name=committee_name,
        state=new_state,
        marked_by=actor_id,
        marked_at=now,
    )
    if participant_type == AttendeeType.LOCAL_COMMITTEE:
        # Only used when the row is created; existing rows keep theirs
        values["eligibility"] = await _committee_eligibility(
            db, session.assembly_id, participant_id, committee_name
        )

    insert = _insert_for(db)
    if insert is None:
        record = await _merge_record(db, values)
    else:
        stmt = insert(AttendanceRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["session_id", "participant_id", "participant_type"],
            set_={
                "state": stmt.excluded.state,
                "marked_by": stmt.excluded.marked_by,
                "marked_at": stmt.excluded.marked_at,
                "updated": now,
            },
        ).returning(AttendanceRecord)
        result = await db.execute(stmt, execution_options={"populate_existing": True})
        record = result.scalar_one()

    logger.info(
        f"Attendance {participant_type.value}:{participant_id} in session {session_id} "
        f"set to {new_state.value} by {actor_id}"
    )
    return record


async def advance_attendance(
    db: AsyncSession,
    session_id: str,
    participant_id: str,
    participant_type: AttendeeType,
    actor_id: str,
    participant_name: str = "",
    participant_role: Optional[str] = None,
) -> AttendanceRecord:
    """Move a record one step along the state cycle; a missing record starts at not_counting."""
    record = await get_record(db, session_id, participant_id, participant_type)
    current = record.state if record is not None else AttendanceState.NOT_COUNTING
    return await mark_attendance(
        db, session_id, participant_id, participant_type, next_state(current), actor_id,
        participant_name=participant_name, participant_role=participant_role,
    )


def resolve_self_attendance_target(
    session: AGSession,
    registration: Optional[Registration],
) -> Optional[AttendanceTarget]:
    """
    Which attendance row a registrant marks when checking in themselves.

    Only approved registrations have a target. In dedicated sessions every
    registrant is an individual; in plenaries board members and coordinators
    mark themselves and committee delegates mark their committee. Ad-hoc
    sessions are organizer-only.
    """
    if registration is None or registration.status != RegistrationStatus.APPROVED:
        return None

    if session.type == SessionType.DEDICATED:
        return AttendanceTarget(
            participant_id=registration.id,
            participant_type=AttendeeType.INDIVIDUAL,
            participant_name=registration.participant_name,
            participant_role=registration.participant_role,
            committee_name=registration.committee_name,
        )

    if session.type != SessionType.PLENARY:
        return None

    if registration.participant_type in (ParticipantType.EXECUTIVE_BOARD, ParticipantType.REGIONAL_COORDINATOR):
        return AttendanceTarget(
            participant_id=registration.entity_id or registration.id,
            participant_type=AttendeeType(registration.participant_type.value),
            participant_name=registration.participant_name,
            participant_role=registration.participant_role,
        )

    if registration.participant_type == ParticipantType.LOCAL_COMMITTEE:
        committee_id = registration.entity_id or registration.committee_name
        if not committee_id:
            return None
        return AttendanceTarget(
            participant_id=committee_id,
            participant_type=AttendeeType.LOCAL_COMMITTEE,
            participant_name=registration.committee_name or committee_id,
            committee_name=registration.committee_name,
        )

    return None


async def mark_self_attendance(db: AsyncSession, session_id: str, user_id: str) -> AttendanceRecord:
    """Mark the calling participant (or their committee) present."""
    session = await get_session(db, session_id)
    _ensure_active(session)

    registration = await get_user_registration(db, session.assembly_id, user_id)
    target = resolve_self_attendance_target(session, registration)
    if target is None:
        raise NotEligible(
            "You are not eligible to mark attendance in this session",
            session_id=session_id, user_id=user_id,
        )

    existing = await get_record(db, session_id, target.participant_id, target.participant_type)
    if existing is not None and existing.state == AttendanceState.PRESENT:
        return existing

    return await mark_attendance(
        db, session_id, target.participant_id, target.participant_type, AttendanceState.PRESENT, user_id,
        participant_name=target.participant_name,
        participant_role=target.participant_role,
        committee_name=target.committee_name,
    )


def quorum_stats(records: Iterable) -> dict:
    """
    Presence counts and quorum over records (or bare states).

    Excluded records leave the denominator; not_counting ones stay in it.
    """
    counts = {state: 0 for state in AttendanceState}
    for record in records:
        state = record if isinstance(record, AttendanceState) else record.state
        counts[state] += 1

    total = sum(counts.values())
    eligible = total - counts[AttendanceState.EXCLUDED]
    percentage = round(counts[AttendanceState.PRESENT] / eligible * 100, 2) if eligible > 0 else 0.0

    return {
        "total": total,
        "present": counts[AttendanceState.PRESENT],
        "absent": counts[AttendanceState.ABSENT],
        "not_counting": counts[AttendanceState.NOT_COUNTING],
        "excluded": counts[AttendanceState.EXCLUDED],
        "eligible": eligible,
        "quorum_percentage": percentage,
    }


def _quorum_group(record: AttendanceRecord) -> str:
    if record.participant_type == AttendeeType.LOCAL_COMMITTEE:
        if record.eligibility == Eligibility.FULL_VOTING.value:
            return "local_committee_full"
        return "local_committee_limited"
    return record.participant_type.value


async def list_records(db: AsyncSession, session_id: str) -> list[AttendanceRecord]:
    result = await db.execute(
        select(AttendanceRecord).where(AttendanceRecord.session_id == session_id)
    )
    return list(result.scalars().all())


async def session_quorum(db: AsyncSession, session_id: str) -> dict:
    """Quorum per participant group plus overall."""
    await get_session(db, session_id)
    records = await list_records(db, session_id)

    grouped: dict[str, list[AttendanceRecord]] = {group: [] for group in QUORUM_GROUPS}
    for record in records:
        grouped[_quorum_group(record)].append(record)

    return {
        "session_id": session_id,
        "groups": {group: quorum_stats(items) for group, items in grouped.items()},
        "overall": quorum_stats(records),
    }


async def _initial_records(db: AsyncSession, session: AGSession) -> list[AttendanceRecord]:
    common = dict(
        session_id=session.id,
        assembly_id=session.assembly_id,
        state=AttendanceState.NOT_COUNTING,
        marked_by=session.created_by,
    )

    if session.type == SessionType.PLENARY:
        records = []
        for entity in await load_roster(db, session.assembly_id):
            is_committee = entity.category == EntityCategory.LOCAL_COMMITTEE
            records.append(AttendanceRecord(
                participant_id=entity.external_id,
                participant_type=CATEGORY_TO_ATTENDEE[entity.category],
                participant_name=entity.name,
                participant_role=entity.role,
                eligibility=entity.eligibility.value if entity.eligibility else None,
                committee_name=entity.name if is_committee else None,
                **common,
            ))
        return records

    if session.type == SessionType.DEDICATED:
        result = await db.execute(
            select(Registration).where(
                Registration.assembly_id == session.assembly_id,
                Registration.status == RegistrationStatus.APPROVED,
            )
        )
        return [
            AttendanceRecord(
                participant_id=registration.id,
                participant_type=AttendeeType.INDIVIDUAL,
                participant_name=registration.participant_name,
                participant_role=registration.participant_role,
                committee_name=registration.committee_name,
                **common,
            )
            for registration in result.scalars().all()
        ]

    return []


async def create_session(
    db: AsyncSession,
    assembly_id: str,
    data: SessionCreate,
    created_by: str,
) -> AGSession:
    """
    Create a session and its initial attendance.

    Plenaries start with every roster entity, dedicated sessions with every
    approved registrant, all not counting. Ad-hoc sessions start empty.
    """
    assembly = await db.get(Assembly, assembly_id)
    if assembly is None:
        raise NotFoundError("Assembly", assembly_id)

    session = AGSession(
        assembly_id=assembly_id,
        name=data.name,
        type=data.type,
        status=SessionStatus.ACTIVE,
        created_by=created_by,
    )
    db.add(session)
    await db.flush()

    records = await _initial_records(db, session)
    db.add_all(records)
    await db.flush()
    await db.refresh(session)

    logger.info(
        f"Created {session.type.value} session {session.id} in assembly {assembly_id} "
        f"with {len(records)} attendance records"
    )
    return session


async def list_sessions(db: AsyncSession, assembly_id: str) -> list[AGSession]:
    result = await db.execute(
        select(AGSession)
        .where(AGSession.assembly_id == assembly_id)
        .order_by(AGSession.created.desc())
    )
    return list(result.scalars().all())


async def archive_session(db: AsyncSession, session_id: str, actor_id: str) -> AGSession:
    session = await get_session(db, session_id)
    if session.status != SessionStatus.ACTIVE:
        raise InvalidStateTransition(
            "Session is already archived", session_id=session_id, current_status=session.status.value
        )
    session.status = SessionStatus.ARCHIVED
    session.archived_at = utcnow()
    session.archived_by = actor_id
    await db.flush()
    logger.info(f"Session {session_id} archived by {actor_id}")
    return session


async def reopen_session(db: AsyncSession, session_id: str, actor_id: str) -> AGSession:
    session = await get_session(db, session_id)
    if session.status != SessionStatus.ARCHIVED:
        raise InvalidStateTransition(
            "Session is not archived", session_id=session_id, current_status=session.status.value
        )
    session.status = SessionStatus.ACTIVE
    session.archived_at = None
    session.archived_by = None
    await db.flush()
    logger.info(f"Session {session_id} reopened by {actor_id}")
    return session


async def delete_session(db: AsyncSession, session_id: str) -> int:
    """
    Delete a session and its attendance records.

    Returns:
        Number of attendance records removed
    """
    session = await get_session(db, session_id)
    result = await db.execute(
        delete(AttendanceRecord).where(AttendanceRecord.session_id == session.id)
    )
    await db.delete(session)
    await db.flush()
    logger.info(f"Session {session_id} deleted with {result.rowcount} attendance records")
    return result.rowcount


async def reset_session_attendance(db: AsyncSession, session_id: str, actor_id: str) -> int:
    """Set every record of an active session back to not_counting."""
    session = await get_session(db, session_id)
    _ensure_active(session)

    now = utcnow()
    result = await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.session_id == session_id)
        .values(state=AttendanceState.NOT_COUNTING, marked_by=actor_id, marked_at=now, updated=now)
    )
    await db.flush()
    logger.info(f"Reset {result.rowcount} attendance records in session {session_id}")
    return result.rowcount


async def get_session_attendance(db: AsyncSession, session_id: str) -> dict[str, list[AttendanceRecord]]:
    """Records grouped by participant type, each group sorted by name."""
    await get_session(db, session_id)
    records = await list_records(db, session_id)

    grouped: dict[str, list[AttendanceRecord]] = {t.value: [] for t in AttendeeType}
    for record in sorted(records, key=lambda r: (sort_key(r.participant_name), r.participant_id)):
        grouped[record.participant_type.value].append(record)
    return grouped


async def user_attendance_stats(db: AsyncSession, assembly_id: str, participant_id: str) -> dict:
    """Sessions a participant appears in and how many they attended."""
    result = await db.execute(
        select(AttendanceRecord, AGSession)
        .join(AGSession, AGSession.id == AttendanceRecord.session_id)
        .where(
            AGSession.assembly_id == assembly_id,
            AttendanceRecord.participant_id == participant_id,
        )
        .order_by(AGSession.created.asc())
    )
    rows = result.all()

    sessions = [
        {
            "session_id": session.id,
            "session_name": session.name,
            "session_type": session.type,
            "session_status": session.status,
            "state": record.state,
            "marked_at": record.marked_at,
        }
        for record, session in rows
    ]
    attended = sum(1 for s in sessions if s["state"] == AttendanceState.PRESENT)
    total = len(sessions)

    return {
        "sessions": sessions,
        "total_sessions": total,
        "attended_sessions": attended,
        "attendance_percentage": round(attended / total * 100, 2) if total > 0 else 0.0,
    }
