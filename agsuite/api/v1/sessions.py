"""
Session endpoints - attendance marking and quorum.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.db.base import get_db
from agsuite.core.deps import get_current_user_id
from agsuite.models.ag_session import AGSession
from agsuite.models.attendance import AttendanceRecord
from agsuite.schemas.common import ListResponse, MessageResponse
from agsuite.schemas.session import (
    SessionCreate, SessionResponse, AttendanceMark, AttendanceRecordResponse,
    SessionAttendanceResponse, SessionQuorumResponse, UserAttendanceStatsResponse, ResetResponse,
)
from agsuite.services import attendance

router = APIRouter()


def session_to_response(session: AGSession) -> SessionResponse:
    return SessionResponse.model_validate(session)


def record_to_response(record: AttendanceRecord) -> AttendanceRecordResponse:
    return AttendanceRecordResponse.model_validate(record)


@router.post(
    "/assemblies/{assembly_id}/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    assembly_id: str,
    data: SessionCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Create a session; plenary and dedicated sessions come with their attendance list."""
    session = await attendance.create_session(db, assembly_id, data, current_user_id)
    return session_to_response(session)


@router.get("/assemblies/{assembly_id}/sessions", response_model=ListResponse[SessionResponse])
async def list_sessions(assembly_id: str, db: AsyncSession = Depends(get_db)):
    sessions = await attendance.list_sessions(db, assembly_id)
    return ListResponse(items=[session_to_response(s) for s in sessions], total=len(sessions))


@router.get(
    "/assemblies/{assembly_id}/attendance/{participant_id}",
    response_model=UserAttendanceStatsResponse,
)
async def get_participant_attendance(
    assembly_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await attendance.user_attendance_stats(db, assembly_id, participant_id)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await attendance.get_session(db, session_id)
    return session_to_response(session)


@router.post("/sessions/{session_id}/archive", response_model=SessionResponse)
async def archive_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    session = await attendance.archive_session(db, session_id, current_user_id)
    return session_to_response(session)


@router.post("/sessions/{session_id}/reopen", response_model=SessionResponse)
async def reopen_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    session = await attendance.reopen_session(db, session_id, current_user_id)
    return session_to_response(session)


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def delete_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    removed = await attendance.delete_session(db, session_id)
    return MessageResponse(message=f"Session deleted with {removed} attendance records")


@router.post("/sessions/{session_id}/reset", response_model=ResetResponse)
async def reset_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Set every attendance record of the session back to not counting."""
    reset = await attendance.reset_session_attendance(db, session_id, current_user_id)
    return ResetResponse(reset=reset)


@router.post("/sessions/{session_id}/attendance", response_model=AttendanceRecordResponse)
async def mark_attendance(
    session_id: str,
    data: AttendanceMark,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """
    Organizer mark. With `state` the record is set to it; without, the record
    advances one step (not counting -> present -> absent -> excluded).
    """
    if data.state is None:
        record = await attendance.advance_attendance(
            db, session_id, data.participant_id, data.participant_type, current_user_id,
            participant_name=data.participant_name, participant_role=data.participant_role,
        )
    else:
        record = await attendance.mark_attendance(
            db, session_id, data.participant_id, data.participant_type, data.state, current_user_id,
            participant_name=data.participant_name, participant_role=data.participant_role,
        )
    return record_to_response(record)


@router.post("/sessions/{session_id}/attendance/self", response_model=AttendanceRecordResponse)
async def mark_self_attendance(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Check in the calling participant (or, in plenaries, their committee)."""
    record = await attendance.mark_self_attendance(db, session_id, current_user_id)
    return record_to_response(record)


@router.get("/sessions/{session_id}/attendance", response_model=SessionAttendanceResponse)
async def get_session_attendance(session_id: str, db: AsyncSession = Depends(get_db)):
    grouped = await attendance.get_session_attendance(db, session_id)
    return SessionAttendanceResponse(
        **{kind: [record_to_response(r) for r in records] for kind, records in grouped.items()}
    )


@router.get("/sessions/{session_id}/quorum", response_model=SessionQuorumResponse)
async def get_session_quorum(session_id: str, db: AsyncSession = Depends(get_db)):
    return await attendance.session_quorum(db, session_id)
