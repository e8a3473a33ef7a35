"""
Roster entry model - one raw participant-import row for an assembly.

Rows are stored as imported; the canonical (deduplicated) roster is computed
by agsuite.services.roster.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from agsuite.models.base import BaseModel

if TYPE_CHECKING:
    from agsuite.models.assembly import Assembly


class EntityCategory(str, enum.Enum):
    """Categories of registerable canonical entities."""
    EXECUTIVE_BOARD = "executive_board"
    REGIONAL_COORDINATOR = "regional_coordinator"
    LOCAL_COMMITTEE = "local_committee"


class RosterEntry(BaseModel):
    """Imported participant row."""
    __tablename__ = "roster_entries"

    assembly_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("assemblies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    category: Mapped[EntityCategory] = mapped_column(
        Enum(EntityCategory, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    role: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # Raw eligibility text for committees ("Pleno" / "Não-pleno")
    status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    school: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    regional: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    affiliation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # Import order, used for first-non-empty-wins merging
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    assembly: Mapped["Assembly"] = relationship(
        "Assembly",
        back_populates="roster_entries"
    )

    def __repr__(self) -> str:
        return f"<RosterEntry {self.category.value}:{self.external_id}>"
