from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel


class RegisterIn(BaseModel):
    name: str
    email: EmailStr
    password: str
    honeypot: str = ""
    ts: Optional[float] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError("Password must be at least 6 characters long")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Jane Shopper",
                "email": "jane@example.com",
                "password": "password123",
                "honeypot": "",
                "ts": 1767225600000,
            }
        }
    )


class LoginIn(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("password is required")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"email": "jane@example.com", "password": "password123"}
        }
    )


class UserOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: EmailStr
    role: str
    is_admin: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AuthUserOut(BaseModel):
    success: bool = True
    user: UserOut
