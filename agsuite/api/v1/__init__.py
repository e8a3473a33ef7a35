"""
AG Suite v1 API.

All endpoints live under /api/v1:
- /assemblies: lifecycle, roster, stats and coverage
- modalities, registrations and sessions nested under an assembly
  plus top-level routes for single records
- /config: registration switches
"""
from fastapi import APIRouter

from agsuite.api.v1.assemblies import router as assemblies_router
from agsuite.api.v1.modalities import router as modalities_router
from agsuite.api.v1.registrations import router as registrations_router
from agsuite.api.v1.sessions import router as sessions_router
from agsuite.api.v1.config import router as config_router

api_router = APIRouter()

api_router.include_router(assemblies_router, prefix="/assemblies", tags=["assemblies"])
api_router.include_router(modalities_router, tags=["modalities"])
api_router.include_router(registrations_router, tags=["registrations"])
api_router.include_router(sessions_router, tags=["sessions"])
api_router.include_router(config_router, prefix="/config", tags=["config"])
