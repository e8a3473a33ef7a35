"""
Registration modality model - a priced, capacity-bounded registration category.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Text, Boolean, Integer, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from agsuite.models.base import BaseModel

if TYPE_CHECKING:
    from agsuite.models.assembly import Assembly


class Modality(BaseModel):
    """
    Registration category of an assembly.

    Price is in minor currency units (cents); 0 means free.
    The current registration count is always computed, never stored.
    """
    __tablename__ = "modalities"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
    )

    assembly_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("assemblies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    assembly: Mapped["Assembly"] = relationship(
        "Assembly",
        back_populates="modalities"
    )

    def __repr__(self) -> str:
        return f"<Modality {self.name} in assembly {self.assembly_id}>"
