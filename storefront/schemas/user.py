from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
import re

import bleach

PHONE_RE = re.compile(r"^[6-9]\d{9}$")
PINCODE_RE = re.compile(r"^\d{6}$")


def validate_indian_phone(value: str) -> str:
    value = (value or "").strip()
    if not PHONE_RE.match(value):
        raise ValueError("Invalid Indian phone number")
    return value


def validate_pincode(value: str) -> str:
    value = (value or "").strip()
    if not PINCODE_RE.match(value):
        raise ValueError("Pincode must be 6 digits")
    return value


def clean_text(value: Optional[str], max_length: int, field: str) -> Optional[str]:
    if value is None:
        return value
    sanitized = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
    if len(sanitized) > max_length:
        raise ValueError(f"{field} too long (max {max_length} chars)")
    return sanitized


class UserResponse(BaseModel):
    id: int
    discord_id: str
    username: str
    avatar_url: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    pincode: Optional[str] = None
    is_admin: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    pincode: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        return clean_text(v, 100, "Full name")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return clean_text(v, 500, "Address")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_indian_phone(v) if v is not None else v

    @field_validator("pincode")
    @classmethod
    def validate_pin(cls, v):
        return validate_pincode(v) if v is not None else v
