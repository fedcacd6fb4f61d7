from pydantic import BaseModel, Field, field_validator

from storefront.schemas.user import validate_indian_phone


class OTPRequestCreate(BaseModel):
    phone: str

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_indian_phone(v)


class OTPVerify(BaseModel):
    phone: str
    otp: str = Field(..., min_length=4, max_length=8, pattern=r"^\d+$")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_indian_phone(v)
