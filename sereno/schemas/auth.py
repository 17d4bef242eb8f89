"""Auth schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class EmergencyContact(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone_number: str = Field(min_length=3, max_length=32)
    relationship: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str
    first_name: str | None = None
    country: str | None = Field(default=None, min_length=2, max_length=2)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    mental_health_conditions: list[str] = []
    emergency_contacts: list[EmergencyContact] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserMe(BaseModel):
    id: int
    email: str
    full_name: str
    first_name: str | None = None
    role: str
    is_active: bool
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    mental_health_conditions: list[str] = []
    emergency_contacts: list[EmergencyContact] = []
    created_at: datetime

    model_config = {"from_attributes": True}


class UpdateProfileRequest(BaseModel):
    full_name: str | None = None
    first_name: str | None = None
    country: str | None = Field(default=None, min_length=2, max_length=2)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    mental_health_conditions: list[str] | None = None
    emergency_contacts: list[EmergencyContact] | None = None
