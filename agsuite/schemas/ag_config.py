"""
AG configuration schemas.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class AdmissionConfig(BaseModel):
    """Switches the registration workflow needs, passed in explicitly."""
    registration_enabled: bool = True
    auto_approval: bool = False


class AGConfigUpsert(BaseModel):
    registration_enabled: Optional[bool] = None
    auto_approval: Optional[bool] = None
    code_of_conduct_url: Optional[str] = Field(None, max_length=500)
    payment_info: Optional[str] = None
    payment_instructions: Optional[str] = None
    bank_details: Optional[str] = None
    pix_key: Optional[str] = Field(None, max_length=200)


class AGConfigToggle(BaseModel):
    enabled: bool


class AGConfigResponse(BaseModel):
    id: Optional[str] = None
    registration_enabled: bool
    auto_approval: bool
    code_of_conduct_url: Optional[str] = None
    payment_info: Optional[str] = None
    payment_instructions: Optional[str] = None
    bank_details: Optional[str] = None
    pix_key: Optional[str] = None
    updated_by: Optional[str] = None
    updated: Optional[datetime] = None

    class Config:
        from_attributes = True
