"""
Assembly, roster and modality schemas.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from agsuite.models.assembly import AssemblyType, AssemblyStatus


class AssemblyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    kind: AssemblyType = AssemblyType.AG
    location: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    registration_open: bool = True
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)
    # Defaults to True for AG and False for AGE
    payment_required: Optional[bool] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class AssemblyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    kind: Optional[AssemblyType] = None
    location: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    registration_open: Optional[bool] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)
    payment_required: Optional[bool] = None


class AssemblyDelete(BaseModel):
    """Deletion must be confirmed by typing the assembly name."""
    confirmation_text: str


class AssemblyResponse(BaseModel):
    id: str
    name: str
    kind: AssemblyType
    location: Optional[str] = None
    description: Optional[str] = None
    status: AssemblyStatus
    start_time: datetime
    end_time: datetime
    registration_open: bool
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    payment_required: bool
    created_by: str
    last_updated_by: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class AssemblyDeleteResponse(BaseModel):
    assembly_id: str
    deleted_registrations: int
    deleted_modalities: int
    deleted_roster_entries: int
    deleted_sessions: int
    deleted_attendance_records: int
    artifact_failures: list[str] = []


# ============================================================================
# ROSTER
# ============================================================================

class RosterRow(BaseModel):
    """One raw participant-import row."""
    category: str = Field(..., description="eb | cr | comite (or the long names)")
    external_id: str = ""
    name: str = ""
    role: Optional[str] = None
    status: Optional[str] = None
    school: Optional[str] = None
    regional: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    affiliation: Optional[str] = None


class RosterImport(BaseModel):
    rows: list[RosterRow]
    replace: bool = False


class RosterImportResponse(BaseModel):
    imported: int


class CanonicalEntityResponse(BaseModel):
    external_id: str
    category: str
    name: str
    role: Optional[str] = None
    eligibility: Optional[str] = None
    school: Optional[str] = None
    regional: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    affiliation: Optional[str] = None

    class Config:
        from_attributes = True


# ============================================================================
# MODALITIES
# ============================================================================

class ModalityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: int = Field(0, ge=0, description="Minor currency units; 0 = free")
    max_participants: Optional[int] = Field(None, ge=1)


class ModalityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    max_participants: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    order: Optional[int] = Field(None, ge=1)


class ModalityResponse(BaseModel):
    id: str
    assembly_id: str
    name: str
    description: Optional[str] = None
    price: int
    max_participants: Optional[int] = None
    is_active: bool
    order: int
    current_registrations: Optional[int] = None
    capacity_state: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class ModalityStatsResponse(BaseModel):
    modality_id: str
    name: str
    price: int
    max_participants: Optional[int] = None
    total: int
    active: int
    capacity_state: str
    is_full: bool
    is_near_full: bool
    by_status: dict[str, int]
