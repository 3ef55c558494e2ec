"""Auth request schemas."""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator

from authcore.exceptions import ValidationFailed
from authcore.models import OtpPurpose
from authcore.security import normalize_email

ModelT = TypeVar("ModelT", bound=BaseModel)


class _EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="after")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)


class RegisterRequest(_EmailRequest):
    password: str = Field(min_length=1, max_length=128)
    given_name: str | None = Field(default=None, max_length=100)
    family_name: str | None = Field(default=None, max_length=100)


class LoginRequest(_EmailRequest):
    password: str = Field(min_length=1, max_length=128)
    second_factor_code: str | None = Field(default=None, max_length=32)
    remember_me: bool = False


class FederatedLoginRequest(BaseModel):
    assertion: str = Field(min_length=1)
    second_factor_code: str | None = Field(default=None, max_length=32)
    remember_me: bool = False


class OtpRequest(_EmailRequest):
    purpose: OtpPurpose = OtpPurpose.LOGIN


class OtpVerifyRequest(_EmailRequest):
    code: str = Field(pattern=r"^\d{4,10}$")
    purpose: OtpPurpose = OtpPurpose.LOGIN
    second_factor_code: str | None = Field(default=None, max_length=32)
    remember_me: bool = False


class PasswordResetRequest(_EmailRequest):
    pass


class PasswordResetComplete(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=1, max_length=128)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


def parse(model: type[ModelT], **data) -> ModelT:
    """Build ``model`` from keyword data, translating pydantic errors to :class:`ValidationFailed`."""
    try:
        return model(**data)
    except ValidationError as exc:
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            errors.setdefault(field, []).append(error["msg"])
        raise ValidationFailed(errors) from exc
