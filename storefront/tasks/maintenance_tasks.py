from datetime import datetime

from celery import shared_task

from storefront.db.session import SessionLocal
from storefront.models.token_blacklist import TokenBlacklist
from storefront.services import backup_service
from storefront.services.otp_service import OTPService


@shared_task(bind=True, max_retries=3)
def cleanup_expired_otps(self):
    """Drop expired or consumed OTP requests."""
    db = SessionLocal()
    try:
        deleted = OTPService.cleanup_expired_otps(db)
        return {"deleted": deleted}
    except Exception as exc:
        db.rollback()
        raise self.retry(exc=exc, countdown=60)
    finally:
        db.close()


@shared_task(bind=True, max_retries=3)
def cleanup_expired_blacklisted_tokens(self):
    """Delete expired token blacklist rows to keep the table bounded."""
    db = SessionLocal()
    try:
        deleted = (
            db.query(TokenBlacklist)
            .filter(TokenBlacklist.expires_at < datetime.utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
        return {"deleted": deleted}
    except Exception as exc:
        db.rollback()
        raise self.retry(exc=exc, countdown=60)
    finally:
        db.close()


@shared_task(bind=True, max_retries=2)
def backup_database(self):
    try:
        path = backup_service.backup_database()
    except backup_service.BackupError:
        raise
    except Exception as exc:
        raise self.retry(exc=exc, countdown=300)
    return {"path": path}
