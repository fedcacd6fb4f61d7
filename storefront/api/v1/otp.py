from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user
from storefront.core.config import settings
from storefront.core.rate_limiter import limiter
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.otp import OTPRequestCreate, OTPVerify
from storefront.services.otp_service import OTPService
from storefront.utils.response import success

router = APIRouter()


@router.post("/request")
@limiter.limit("10/minute")
def request_otp(
    request: Request,
    payload: OTPRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Send a one-time code to the phone used for a COD order."""
    otp_request = OTPService.request_otp(db, payload.phone)
    return success(
        data={
            "phone": otp_request.phone,
            "expires_at": otp_request.expires_at,
            "expires_in_seconds": settings.OTP_EXPIRY_MINUTES * 60,
        },
        message="OTP sent successfully",
    )


@router.post("/verify")
@limiter.limit("20/minute")
def verify_otp(
    request: Request,
    payload: OTPVerify,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    otp_request = OTPService.verify_otp(db, payload.phone, payload.otp)
    return success(
        data={"phone": otp_request.phone, "verified": True},
        message="Phone number verified",
    )
