"""
AG configuration endpoints - registration switches and payment information.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.db.base import get_db
from agsuite.core.deps import get_current_user_id
from agsuite.models.ag_config import AGConfig
from agsuite.schemas.ag_config import AGConfigResponse, AGConfigUpsert, AGConfigToggle
from agsuite.services import ag_config

router = APIRouter()


def config_to_response(row: AGConfig) -> AGConfigResponse:
    return AGConfigResponse.model_validate(row)


@router.get("", response_model=AGConfigResponse)
async def get_config(db: AsyncSession = Depends(get_db)):
    """Current configuration; defaults when nothing has been saved yet."""
    row = await ag_config.get_ag_config_row(db)
    if row is None:
        admission = await ag_config.get_admission_config(db)
        return AGConfigResponse(
            registration_enabled=admission.registration_enabled,
            auto_approval=admission.auto_approval,
        )
    return config_to_response(row)


@router.put("", response_model=AGConfigResponse)
async def upsert_config(
    data: AGConfigUpsert,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    row = await ag_config.upsert_ag_config(db, data, current_user_id)
    return config_to_response(row)


@router.post("/registration-enabled", response_model=AGConfigResponse)
async def toggle_registration_enabled(
    data: AGConfigToggle,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    row = await ag_config.toggle_ag_config(db, current_user_id, registration_enabled=data.enabled)
    return config_to_response(row)


@router.post("/auto-approval", response_model=AGConfigResponse)
async def toggle_auto_approval(
    data: AGConfigToggle,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
):
    row = await ag_config.toggle_ag_config(db, current_user_id, auto_approval=data.enabled)
    return config_to_response(row)
