import structlog
import ipaddress
from datetime import datetime
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import decode_token
from storefront.db.session import get_db
from storefront.models.token_blacklist import TokenBlacklist
from storefront.models.user import User

logger = structlog.get_logger()


def _is_token_revoked(db: Session, jti: str) -> bool:
    if not jti:
        return True
    return (
        db.query(TokenBlacklist)
        .filter(
            TokenBlacklist.jti == jti,
            TokenBlacklist.expires_at > datetime.utcnow(),
        )
        .first()
        is not None
    )


def get_real_client_ip(request: Request) -> tuple[str | None, list[str]]:
    """Return client IP and full proxy chain if provided."""
    direct_ip = request.client.host if request.client else None
    trust_proxy_headers = (
        settings.ENVIRONMENT == "production"
        and settings.TRUST_PROXY_HEADERS
        and settings.is_trusted_proxy(direct_ip)
    )

    if not trust_proxy_headers:
        return direct_ip, []

    chain: list[str] = []
    cf_connecting_ip = request.headers.get("CF-Connecting-IP")
    if cf_connecting_ip:
        candidate = cf_connecting_ip.strip()
        try:
            ipaddress.ip_address(candidate)
            return candidate, [candidate]
        except ValueError:
            pass

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        chain = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]

    for candidate in chain:
        try:
            ipaddress.ip_address(candidate)
            return candidate, chain
        except ValueError:
            continue

    return direct_ip, chain


def extract_session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from the session cookie or bearer token."""
    token = extract_session_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = decode_token(token)
    if _is_token_revoked(db, payload.get("jti")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has been revoked",
        )

    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    request.state.token_payload = payload
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not extract_session_token(request):
        return None
    try:
        return get_current_user(request, db)
    except HTTPException:
        return None


def require_admin(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> User:
    action_name = f"{request.method} {request.url.path}"

    if not settings.is_admin_discord_id(current_user.discord_id):
        logger.warning(
            "admin_access_denied",
            action=action_name,
            user_id=current_user.id,
            reason="not_in_allow_list",
        )
        raise HTTPException(
            status_code=403,
            detail="Admin access required",
        )

    client_ip, ip_chain = get_real_client_ip(request)
    if settings.admin_allowed_ips and client_ip not in settings.admin_allowed_ips:
        logger.warning(
            "admin_access_denied",
            action=action_name,
            admin_user_id=current_user.id,
            client_ip=client_ip,
            ip_chain=ip_chain,
        )
        raise HTTPException(
            status_code=403,
            detail="Access denied",
        )

    logger.info(
        "admin_action",
        action=action_name,
        admin_user_id=current_user.id,
        client_ip=client_ip,
        ip_chain=ip_chain,
    )
    return current_user
