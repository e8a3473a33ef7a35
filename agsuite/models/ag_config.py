"""
AG configuration model - organisation-wide registration switches.

There is a single logical row; the most recently updated one wins.
"""
from typing import Optional
from sqlalchemy import String, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from agsuite.models.base import BaseModel


class AGConfig(BaseModel):
    """Registration configuration shared by every assembly."""
    __tablename__ = "ag_configs"

    registration_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    code_of_conduct_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payment_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pix_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    updated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<AGConfig registration_enabled={self.registration_enabled} auto_approval={self.auto_approval}>"
