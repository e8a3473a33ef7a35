"""
Session and attendance schemas.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from agsuite.models.ag_session import SessionType, SessionStatus
from agsuite.models.attendance import AttendeeType, AttendanceState


class SessionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    type: SessionType


class SessionResponse(BaseModel):
    id: str
    assembly_id: str
    name: str
    type: SessionType
    status: SessionStatus
    created_by: str
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class AttendanceMark(BaseModel):
    """Organizer mark. Without `state` the record advances one step in the cycle."""
    participant_id: str = Field(..., min_length=1, max_length=200)
    participant_type: AttendeeType
    participant_name: str = Field("", max_length=300)
    participant_role: Optional[str] = Field(None, max_length=200)
    state: Optional[AttendanceState] = None


class AttendanceRecordResponse(BaseModel):
    id: str
    session_id: str
    participant_id: str
    participant_type: AttendeeType
    participant_name: str
    participant_role: Optional[str] = None
    eligibility: Optional[str] = None
    committee_name: Optional[str] = None
    state: AttendanceState
    marked_by: str
    marked_at: datetime

    class Config:
        from_attributes = True


class SessionAttendanceResponse(BaseModel):
    """Records grouped by participant type, each group sorted by name."""
    executive_board: list[AttendanceRecordResponse]
    regional_coordinator: list[AttendanceRecordResponse]
    local_committee: list[AttendanceRecordResponse]
    individual: list[AttendanceRecordResponse]


class QuorumStatsResponse(BaseModel):
    total: int
    present: int
    absent: int
    not_counting: int
    excluded: int
    eligible: int
    quorum_percentage: float


class SessionQuorumResponse(BaseModel):
    session_id: str
    groups: dict[str, QuorumStatsResponse]
    overall: QuorumStatsResponse


class SelfTargetResponse(BaseModel):
    participant_id: str
    participant_type: AttendeeType
    participant_name: str


class UserSessionAttendance(BaseModel):
    session_id: str
    session_name: str
    session_type: SessionType
    session_status: SessionStatus
    state: AttendanceState
    marked_at: datetime


class UserAttendanceStatsResponse(BaseModel):
    sessions: list[UserSessionAttendance]
    total_sessions: int
    attended_sessions: int
    attendance_percentage: float


class ResetResponse(BaseModel):
    reset: int
