import hashlib
import hmac
import secrets
import uuid
from datetime import datetime, timedelta

from jose import JWTError, jwt
from fastapi import HTTPException, status
from storefront.core.config import settings


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    """Create the JWT carried in the session cookie"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access", "jti": uuid.uuid4().hex})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> dict:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    return payload


def generate_oauth_state() -> str:
    return secrets.token_urlsafe(24)


def generate_otp_code(length: int = None) -> str:
    length = length or settings.OTP_LENGTH
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_otp_code(phone: str, code: str) -> str:
    """Keyed hash of an OTP so plaintext codes never reach the database."""
    message = f"{phone}:{code}".encode()
    return hmac.new(settings.SECRET_KEY.encode(), message, hashlib.sha256).hexdigest()


def verify_otp_code(phone: str, code: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_otp_code(phone, code), code_hash)
