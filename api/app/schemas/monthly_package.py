import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.monthly_package import InstitutionType, PackageStatus


class MonthCreate(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020, le=2100)


class StatementMetadata(BaseModel):
    """Form fields accompanying an uploaded statement file."""

    institution_name: str = Field(min_length=1, max_length=200)
    account_last4: str = Field(pattern=r"^\d{4}$")
    institution_type: InstitutionType


class StatementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    monthly_package_id: uuid.UUID
    institution_name: str
    account_last4: str
    institution_type: InstitutionType
    file_url: str
    file_name: str
    file_size: int
    uploaded_at: datetime


class PackageSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    month: int
    year: int
    status: PackageStatus
    statement_count: int


class PackageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    month: int
    year: int
    status: PackageStatus
    submitted_at: datetime | None
    created_at: datetime
    statements: list[StatementResponse] = []


class StatusUpdate(BaseModel):
    status: PackageStatus


class StatusUpdateResponse(BaseModel):
    success: bool = True
    status: PackageStatus


class ClientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str | None
    email: str
    company_name: str | None
    latest_activity: datetime | None
    latest_package_status: PackageStatus | None
    statement_count: int
