"""
Session model - a sub-event of an assembly against which attendance is tracked.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from agsuite.models.base import BaseModel

if TYPE_CHECKING:
    from agsuite.models.assembly import Assembly
    from agsuite.models.attendance import AttendanceRecord


class SessionType(str, enum.Enum):
    PLENARY = "plenary"
    DEDICATED = "dedicated"
    AD_HOC = "ad_hoc"


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class AGSession(BaseModel):
    """Assembly session (plenary, dedicated session or ad-hoc roll call)."""
    __tablename__ = "ag_sessions"

    assembly_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("assemblies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=SessionStatus.ACTIVE,
        index=True
    )
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    assembly: Mapped["Assembly"] = relationship(
        "Assembly",
        back_populates="sessions"
    )
    attendance_records: Mapped[list["AttendanceRecord"]] = relationship(
        "AttendanceRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<AGSession {self.name} ({self.type.value})>"
