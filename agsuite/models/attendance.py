"""
Attendance record model - presence state of one participant in one session.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from agsuite.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from agsuite.models.ag_session import AGSession


class AttendeeType(str, enum.Enum):
    """Kind of participant an attendance row refers to."""
    EXECUTIVE_BOARD = "executive_board"
    REGIONAL_COORDINATOR = "regional_coordinator"
    LOCAL_COMMITTEE = "local_committee"
    INDIVIDUAL = "individual"


class AttendanceState(str, enum.Enum):
    NOT_COUNTING = "not_counting"
    PRESENT = "present"
    ABSENT = "absent"
    EXCLUDED = "excluded"


class AttendanceRecord(BaseModel):
    """Presence state keyed by (session, participant_id, participant_type)."""
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "participant_id", "participant_type",
            name="uq_attendance_records_session_participant"
        ),
    )

    session_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("ag_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    assembly_id: Mapped[str] = mapped_column(String(15), nullable=False, index=True)

    participant_id: Mapped[str] = mapped_column(String(200), nullable=False)
    participant_type: Mapped[AttendeeType] = mapped_column(
        Enum(AttendeeType, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    participant_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    participant_role: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # "full_voting" / "limited_voting" for committees
    eligibility: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    committee_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    state: Mapped[AttendanceState] = mapped_column(
        Enum(AttendanceState, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=AttendanceState.NOT_COUNTING
    )
    marked_by: Mapped[str] = mapped_column(String(100), nullable=False)
    marked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    session: Mapped["AGSession"] = relationship(
        "AGSession",
        back_populates="attendance_records"
    )

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.participant_type.value}:{self.participant_id} {self.state.value}>"
