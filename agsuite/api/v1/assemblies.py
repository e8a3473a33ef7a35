"""
Assembly endpoints - lifecycle, roster import and analytics.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.db.base import get_db
from agsuite.core.deps import get_current_user_id, get_receipt_storage
from agsuite.models.assembly import Assembly, AssemblyStatus
from agsuite.schemas.assembly import (
    AssemblyCreate, AssemblyUpdate, AssemblyDelete, AssemblyResponse, AssemblyDeleteResponse,
    RosterImport, RosterImportResponse, CanonicalEntityResponse,
)
from agsuite.schemas.analytics import RegistrationCoverageResponse, RegistrationStatsResponse
from agsuite.schemas.common import ListResponse
from agsuite.services import analytics, assemblies, roster
from agsuite.services.roster import CanonicalEntity
from agsuite.services.storage import ReceiptStorage

router = APIRouter()


def assembly_to_response(assembly: Assembly) -> AssemblyResponse:
    """Convert Assembly model to AssemblyResponse schema."""
    return AssemblyResponse.model_validate(assembly)


def entity_to_response(entity: CanonicalEntity) -> CanonicalEntityResponse:
    return CanonicalEntityResponse(
        external_id=entity.external_id,
        category=entity.category.value,
        name=entity.name,
        role=entity.role,
        eligibility=entity.eligibility.value if entity.eligibility else None,
        school=entity.school,
        regional=entity.regional,
        city=entity.city,
        state=entity.state,
        affiliation=entity.affiliation,
    )


@router.get("", response_model=ListResponse[AssemblyResponse])
async def list_assemblies(
    status_filter: Optional[AssemblyStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """List assemblies, newest first."""
    items = await assemblies.list_assemblies(db, status_filter)
    return ListResponse(items=[assembly_to_response(a) for a in items], total=len(items))


@router.post("", response_model=AssemblyResponse, status_code=status.HTTP_201_CREATED)
async def create_assembly(
    data: AssemblyCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    assembly = await assemblies.create_assembly(db, data, current_user_id)
    return assembly_to_response(assembly)


@router.get("/{assembly_id}", response_model=AssemblyResponse)
async def get_assembly(assembly_id: str, db: AsyncSession = Depends(get_db)):
    assembly = await assemblies.get_assembly(db, assembly_id)
    return assembly_to_response(assembly)


@router.patch("/{assembly_id}", response_model=AssemblyResponse)
async def update_assembly(
    assembly_id: str,
    data: AssemblyUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    assembly = await assemblies.update_assembly(db, assembly_id, data, current_user_id)
    return assembly_to_response(assembly)


@router.post("/{assembly_id}/archive", response_model=AssemblyResponse)
async def archive_assembly(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Archive an active assembly. Registration is closed as part of archiving."""
    assembly = await assemblies.archive_assembly(db, assembly_id, current_user_id)
    return assembly_to_response(assembly)


@router.delete("/{assembly_id}", response_model=AssemblyDeleteResponse)
async def delete_assembly(
    assembly_id: str,
    data: AssemblyDelete,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    storage: ReceiptStorage = Depends(get_receipt_storage),
):
    """
    Permanently delete an archived assembly and everything that belongs to it.
    The body must repeat the assembly name as confirmation_text.
    """
    summary = await assemblies.delete_assembly(
        db, assembly_id, data.confirmation_text, current_user_id, storage
    )
    return AssemblyDeleteResponse(**summary)


# ============================================================================
# ROSTER
# ============================================================================

@router.post("/{assembly_id}/roster", response_model=RosterImportResponse, status_code=status.HTTP_201_CREATED)
async def import_roster(
    assembly_id: str,
    data: RosterImport,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Store raw participant rows; duplicates are merged when the roster is read."""
    await assemblies.get_assembly(db, assembly_id)
    imported = await roster.import_roster(
        db, assembly_id, [row.model_dump() for row in data.rows], replace=data.replace
    )
    return RosterImportResponse(imported=imported)


@router.get("/{assembly_id}/roster", response_model=ListResponse[CanonicalEntityResponse])
async def get_roster(assembly_id: str, db: AsyncSession = Depends(get_db)):
    """Canonical (deduplicated, sorted) roster."""
    await assemblies.get_assembly(db, assembly_id)
    entities = await roster.load_roster(db, assembly_id)
    return ListResponse(items=[entity_to_response(e) for e in entities], total=len(entities))


# ============================================================================
# ANALYTICS
# ============================================================================

@router.get("/{assembly_id}/stats", response_model=RegistrationStatsResponse)
async def get_registration_stats(assembly_id: str, db: AsyncSession = Depends(get_db)):
    return await analytics.registration_stats(db, assembly_id)


@router.get("/{assembly_id}/coverage", response_model=RegistrationCoverageResponse)
async def get_registration_coverage(assembly_id: str, db: AsyncSession = Depends(get_db)):
    return await analytics.registration_coverage(db, assembly_id)
