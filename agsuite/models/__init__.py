"""
SQLAlchemy models for AG Suite.

- Assemblies and their registration modalities
- Imported roster rows (canonical entities are computed from them)
- Registrations
- Sessions and attendance records
- Organisation-wide registration config
"""
from agsuite.models.assembly import Assembly, AssemblyType, AssemblyStatus
from agsuite.models.modality import Modality
from agsuite.models.roster_entry import RosterEntry, EntityCategory
from agsuite.models.registration import (
    Registration,
    RegistrationStatus,
    ParticipantType,
    ACTIVE_STATUSES,
    REVIEWABLE_STATUSES,
)
from agsuite.models.ag_session import AGSession, SessionType, SessionStatus
from agsuite.models.attendance import AttendanceRecord, AttendeeType, AttendanceState
from agsuite.models.ag_config import AGConfig

__all__ = [
    "Assembly",
    "AssemblyType",
    "AssemblyStatus",
    "Modality",
    "RosterEntry",
    "EntityCategory",
    "Registration",
    "RegistrationStatus",
    "ParticipantType",
    "ACTIVE_STATUSES",
    "REVIEWABLE_STATUSES",
    "AGSession",
    "SessionType",
    "SessionStatus",
    "AttendanceRecord",
    "AttendeeType",
    "AttendanceState",
    "AGConfig",
]
