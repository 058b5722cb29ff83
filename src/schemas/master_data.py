"""
Read-only views of externally owned master data.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class PatientRecord(BaseModel):
    """Patient as needed on the wire."""

    patient_id: str
    name: str
    identifier: str = Field(..., description="National ID / Iqama / passport number")
    identifier_type: str = Field(default="NI", description="NI, PRC or PPN")
    gender: str = Field(default="unknown")
    birth_date: Optional[date] = None
    phone: Optional[str] = None
    member_id: Optional[str] = Field(None, description="Insurance membership number")


class ProviderRecord(BaseModel):
    provider_id: str
    name: str
    license: str = Field(..., description="Provider license on the exchange")
    provider_type: str = Field(default="1", description="Provider type code")


class InsurerRecord(BaseModel):
    insurer_id: str
    name: str
    license: str = Field(..., description="Payer license on the exchange")
