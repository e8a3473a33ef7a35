"""
AG configuration service.

Reads and writes the organisation-wide registration switches. Routers load the
config here and pass it explicitly (as an AdmissionConfig) into the
registration workflow, which never reads it on its own.
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from agsuite.core.config import settings
from agsuite.models.ag_config import AGConfig
from agsuite.schemas.ag_config import AdmissionConfig, AGConfigUpsert


async def get_ag_config_row(db: AsyncSession) -> Optional[AGConfig]:
    """Most recently updated config row, if any."""
    result = await db.execute(
        select(AGConfig).order_by(AGConfig.updated.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_admission_config(db: AsyncSession) -> AdmissionConfig:
    """
    Get the admission switches.

    Returns the configured defaults if no config row exists yet.
    """
    row = await get_ag_config_row(db)
    if row is None:
        return AdmissionConfig(
            registration_enabled=settings.DEFAULT_REGISTRATION_ENABLED,
            auto_approval=settings.DEFAULT_AUTO_APPROVAL,
        )
    return AdmissionConfig(
        registration_enabled=row.registration_enabled,
        auto_approval=row.auto_approval,
    )


async def upsert_ag_config(db: AsyncSession, data: AGConfigUpsert, updated_by: str) -> AGConfig:
    """Create the config row or update the existing one."""
    row = await get_ag_config_row(db)
    if row is None:
        row = AGConfig()
        db.add(row)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    row.updated_by = updated_by

    await db.flush()
    await db.refresh(row)
    return row


async def toggle_ag_config(
    db: AsyncSession,
    updated_by: str,
    registration_enabled: Optional[bool] = None,
    auto_approval: Optional[bool] = None,
) -> AGConfig:
    """Flip one switch, creating the row with defaults if needed."""
    row = await get_ag_config_row(db)
    if row is None:
        row = AGConfig(
            registration_enabled=settings.DEFAULT_REGISTRATION_ENABLED,
            auto_approval=settings.DEFAULT_AUTO_APPROVAL,
        )
        db.add(row)

    if registration_enabled is not None:
        row.registration_enabled = registration_enabled
    if auto_approval is not None:
        row.auto_approval = auto_approval
    row.updated_by = updated_by

    await db.flush()
    await db.refresh(row)
    return row
