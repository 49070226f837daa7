import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import UserRole


class SignInRequest(BaseModel):
    email: EmailStr


class VerifyRequest(BaseModel):
    token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    company_name: str | None = None
    qbo_name: str | None = None
    phone: str | None = None
    role: UserRole
    onboarding_complete: bool
    created_at: datetime


class UserProfileUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    company_name: str = Field(min_length=1, max_length=200)
    qbo_name: str = Field(default="", max_length=200)
    phone: str = Field(default="", max_length=20)
