from datetime import datetime, timedelta

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import OTPRateLimited, OTPVerificationFailed
from storefront.core.security import generate_otp_code, hash_otp_code, verify_otp_code
from storefront.models.otp import OTPRequest

logger = structlog.get_logger()


def send_otp(phone: str, code: str) -> None:
    """Hand the code to the SMS provider. Outside production it is only logged."""
    if settings.ENVIRONMENT != "production":
        logger.info("otp_issued_dev", phone=phone, otp=code)
        return
    # No SMS provider is wired in; the code is never logged in production.
    logger.info("otp_issued", phone=phone)


class OTPService:

    @staticmethod
    def _latest_open_request(db: Session, phone: str, now: datetime):
        return (
            db.query(OTPRequest)
            .filter(
                OTPRequest.phone == phone,
                OTPRequest.is_used.is_(False),
                OTPRequest.expires_at > now,
            )
            .order_by(OTPRequest.created_at.desc(), OTPRequest.id.desc())
            .first()
        )

    @staticmethod
    def request_otp(db: Session, phone: str) -> OTPRequest:
        """Issue a new code for a phone, at most OTP_MAX_REQUESTS_PER_HOUR per hour."""
        now = datetime.utcnow()
        recent = (
            db.query(OTPRequest)
            .filter(
                OTPRequest.phone == phone,
                OTPRequest.created_at > now - timedelta(hours=1),
            )
            .count()
        )
        if recent >= settings.OTP_MAX_REQUESTS_PER_HOUR:
            logger.warning("otp_rate_limited", phone=phone, recent_requests=recent)
            raise OTPRateLimited()

        code = generate_otp_code()
        otp_request = OTPRequest(
            phone=phone,
            code_hash=hash_otp_code(phone, code),
            expires_at=now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
            created_at=now,
        )
        db.add(otp_request)
        db.commit()
        db.refresh(otp_request)

        send_otp(phone, code)
        return otp_request

    @staticmethod
    def verify_otp(db: Session, phone: str, code: str) -> OTPRequest:
        now = datetime.utcnow()
        otp_request = OTPService._latest_open_request(db, phone, now)
        if not otp_request:
            raise OTPVerificationFailed("OTP expired or not found")

        if otp_request.verified_at is not None:
            return otp_request

        if otp_request.attempts >= settings.OTP_MAX_ATTEMPTS:
            raise OTPVerificationFailed("Too many incorrect attempts. Request a new OTP.")

        if not verify_otp_code(phone, code, otp_request.code_hash):
            otp_request.attempts += 1
            db.commit()
            logger.info("otp_verification_failed", phone=phone, attempts=otp_request.attempts)
            raise OTPVerificationFailed("Invalid OTP")

        otp_request.verified_at = now
        db.commit()
        db.refresh(otp_request)
        logger.info("otp_verified", phone=phone)
        return otp_request

    @staticmethod
    def consume_verified_phone(db: Session, phone: str) -> OTPRequest:
        """Mark the phone's verified code as used. The caller commits."""
        otp_request = (
            db.query(OTPRequest)
            .filter(
                OTPRequest.phone == phone,
                OTPRequest.is_used.is_(False),
                OTPRequest.verified_at.isnot(None),
                OTPRequest.expires_at > datetime.utcnow(),
            )
            .order_by(OTPRequest.verified_at.desc(), OTPRequest.id.desc())
            .first()
        )
        if not otp_request:
            raise OTPVerificationFailed("Phone number not verified. Please verify with OTP first.")

        otp_request.is_used = True
        return otp_request

    @staticmethod
    def cleanup_expired_otps(db: Session) -> int:
        """Delete dead requests once they no longer count towards the hourly limit."""
        now = datetime.utcnow()
        deleted = (
            db.query(OTPRequest)
            .filter(
                OTPRequest.created_at < now - timedelta(hours=1),
                or_(
                    OTPRequest.expires_at < now,
                    OTPRequest.is_used.is_(True),
                ),
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("otp_cleanup_completed", deleted=deleted)
        return deleted
