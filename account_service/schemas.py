"""Modelos Pydantic (schemas) para validación de datos de entrada/salida en el Account Service."""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, StringConstraints, field_validator

from account_service.utils import MAX_PASSWORD_BYTES, password_too_long

PHONE_PATTERN = r"^\+?[0-9 ()\-]{5,20}$"

Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Country = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, pattern=PHONE_PATTERN)]


def _fits_bcrypt(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# Contraseña que se va a guardar: bcrypt ignora lo que pasa de 72 bytes
Password = Annotated[str, StringConstraints(min_length=1, max_length=128), AfterValidator(_fits_bcrypt)]
# Contraseña candidata en el login: se acepta y el store la rechaza al verificar
CandidatePassword = Annotated[str, StringConstraints(min_length=1, max_length=128)]


# --- Schemas de entrada ---

class RegisterRequest(BaseModel):
    username: Username
    country: Country
    phone: Phone
    password: Password


class LoginRequest(BaseModel):
    username: Username
    password: CandidatePassword


class UserUpdate(BaseModel):
    """Todos los campos son opcionales; solo se actualizan los presentes."""
    country: Optional[Country] = None
    phone: Optional[Phone] = None
    password: Optional[Password] = None

    @field_validator("password", mode="before")
    @classmethod
    def empty_password_means_unchanged(cls, value):
        # El formulario envía "" cuando el usuario no cambia la contraseña
        if value == "":
            return None
        return value


class ForgotPasswordRequest(BaseModel):
    username: Username


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: Password
    confirm_password: Password


# --- Schemas de salida ---

class UserResponse(BaseModel):
    """Proyección pública de una cuenta: nunca incluye campos de contraseña."""
    username: str
    country: str
    phone: str
    created_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )

    model_config = ConfigDict(from_attributes=True)


class AccountResponse(BaseModel):
    success: bool = True
    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    error: str
    fields: Optional[List[str]] = None


class HealthResponse(BaseModel):
    status: str
    database: str
    timestamp: datetime
