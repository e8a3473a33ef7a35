"""
Registration modality endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.db.base import get_db
from agsuite.core.deps import get_current_user_id
from agsuite.models.modality import Modality
from agsuite.schemas.assembly import ModalityCreate, ModalityUpdate, ModalityResponse, ModalityStatsResponse
from agsuite.schemas.common import ListResponse, MessageResponse
from agsuite.services import assemblies, modality_ledger

router = APIRouter()


async def modality_to_response(db: AsyncSession, modality: Modality) -> ModalityResponse:
    """Convert Modality model to ModalityResponse, with its live capacity."""
    count = await modality_ledger.current_count(db, modality.id)
    response = ModalityResponse.model_validate(modality)
    response.current_registrations = count
    response.capacity_state = modality_ledger.capacity_state(count, modality.max_participants).value
    return response


@router.get("/assemblies/{assembly_id}/modalities", response_model=ListResponse[ModalityResponse])
async def list_modalities(
    assembly_id: str,
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    await assemblies.get_assembly(db, assembly_id)
    modalities = await modality_ledger.list_modalities(db, assembly_id, active_only=active_only)
    items = [await modality_to_response(db, m) for m in modalities]
    return ListResponse(items=items, total=len(items))


@router.post(
    "/assemblies/{assembly_id}/modalities",
    response_model=ModalityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_modality(
    assembly_id: str,
    data: ModalityCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    await assemblies.get_assembly(db, assembly_id)
    modality = await modality_ledger.create_modality(db, assembly_id, data, current_user_id)
    return await modality_to_response(db, modality)


@router.post(
    "/assemblies/{assembly_id}/modalities/defaults",
    response_model=ListResponse[ModalityResponse],
    status_code=status.HTTP_201_CREATED,
)
async def initialize_default_modalities(
    assembly_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Create the default modalities for the assembly type (no-op if any exist)."""
    assembly = await assemblies.get_assembly(db, assembly_id)
    modalities = await modality_ledger.initialize_default_modalities(db, assembly, current_user_id)
    items = [await modality_to_response(db, m) for m in modalities]
    return ListResponse(items=items, total=len(items))


@router.get("/modalities/{modality_id}", response_model=ModalityResponse)
async def get_modality(modality_id: str, db: AsyncSession = Depends(get_db)):
    modality = await modality_ledger.get_modality(db, modality_id)
    return await modality_to_response(db, modality)


@router.patch("/modalities/{modality_id}", response_model=ModalityResponse)
async def update_modality(
    modality_id: str,
    data: ModalityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    modality = await modality_ledger.update_modality(db, modality_id, data)
    return await modality_to_response(db, modality)


@router.delete("/modalities/{modality_id}", response_model=MessageResponse)
async def delete_modality(
    modality_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    """Delete a modality. Refused while registrations reference it."""
    await modality_ledger.delete_modality(db, modality_id)
    return MessageResponse(message="Modality deleted")


@router.get("/modalities/{modality_id}/stats", response_model=ModalityStatsResponse)
async def get_modality_stats(modality_id: str, db: AsyncSession = Depends(get_db)):
    return await modality_ledger.modality_stats(db, modality_id)
