"""
Analytics schemas.
"""
from typing import Optional
from pydantic import BaseModel


class CategoryCoverage(BaseModel):
    total: int
    registered: int
    unregistered: int
    registration_rate: float
    unregistered_names: list[str] = []


class CoverageValidation(BaseModel):
    expected_total: int
    actual_total: int
    predefined_matched: int
    other_count: int
    is_consistent: bool


class IntegrityWarning(BaseModel):
    code: str
    detail: str


class RegistrationCoverageResponse(BaseModel):
    assembly_id: str
    categories: dict[str, CategoryCoverage]
    others: int
    validation: CoverageValidation
    warnings: list[IntegrityWarning] = []


class ModalityCapacity(BaseModel):
    modality_id: str
    name: str
    price: int
    max_participants: Optional[int] = None
    current_registrations: int
    is_full: bool
    is_near_full: bool


class AssemblyCapacity(BaseModel):
    max_participants: Optional[int] = None
    current_registrations: int
    is_full: bool
    is_near_full: bool


class RegistrationStatsResponse(BaseModel):
    total_roster_entities: int
    total_registrations: int
    active_registrations: int
    registrations_by_type: dict[str, int]
    registrations_by_status: dict[str, int]
    roster_by_category: dict[str, int]
    modality_stats: list[ModalityCapacity]
    assembly_capacity: AssemblyCapacity
