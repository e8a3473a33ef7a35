"""
Assembly model - a governance meeting instance (AG or AGE).
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Text, Boolean, Integer, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from agsuite.models.base import BaseModel

if TYPE_CHECKING:
    from agsuite.models.modality import Modality
    from agsuite.models.registration import Registration
    from agsuite.models.roster_entry import RosterEntry
    from agsuite.models.ag_session import AGSession


class AssemblyType(str, enum.Enum):
    """Statutory (AG) or extraordinary (AGE) assembly."""
    AG = "AG"
    AGE = "AGE"


class AssemblyStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Assembly(BaseModel):
    """Assembly model."""
    __tablename__ = "assemblies"

    name: Mapped[str] = mapped_column(String(300), nullable=False)
    kind: Mapped[AssemblyType] = mapped_column(
        Enum(AssemblyType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=AssemblyType.AG
    )
    location: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[AssemblyStatus] = mapped_column(
        Enum(AssemblyStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=AssemblyStatus.ACTIVE,
        index=True
    )

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Registration window
    registration_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    registration_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payment_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    last_updated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships (children are removed explicitly on cascade delete)
    modalities: Mapped[list["Modality"]] = relationship(
        "Modality",
        back_populates="assembly",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Modality.order"
    )
    registrations: Mapped[list["Registration"]] = relationship(
        "Registration",
        back_populates="assembly",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    roster_entries: Mapped[list["RosterEntry"]] = relationship(
        "RosterEntry",
        back_populates="assembly",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    sessions: Mapped[list["AGSession"]] = relationship(
        "AGSession",
        back_populates="assembly",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Assembly {self.name} ({self.kind.value})>"
