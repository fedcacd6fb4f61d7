from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.api.deps import extract_session_token, get_current_user, get_real_client_ip
from storefront.core.config import settings
from storefront.core.rate_limiter import limiter
from storefront.core.security import create_access_token, decode_token, generate_oauth_state
from storefront.db.session import get_db
from storefront.middleware.csrf import CSRF_COOKIE_NAME, issue_csrf_token
from storefront.models.token_blacklist import TokenBlacklist
from storefront.models.user import User
from storefront.schemas.user import UserResponse
from storefront.services import discord_oauth, notifications
from storefront.utils.response import success

router = APIRouter()
logger = structlog.get_logger()

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 600


def _blacklist_token(db: Session, token: str, reason: str) -> None:
    payload = decode_token(token)
    jti = payload.get("jti")
    user_id = payload.get("sub")
    exp = payload.get("exp")
    if not jti or not user_id or not exp:
        return

    existing = db.query(TokenBlacklist).filter(TokenBlacklist.jti == jti).first()
    if existing:
        return

    db.add(
        TokenBlacklist(
            jti=jti,
            user_id=int(user_id),
            expires_at=datetime.utcfromtimestamp(exp),
            reason=reason,
        )
    )


def _should_use_secure_cookies(request: Request) -> bool:
    if settings.ENVIRONMENT != "production":
        return False
    return request.url.scheme == "https"


def _login_failed_redirect() -> RedirectResponse:
    response = RedirectResponse(url=f"{settings.FRONTEND_URL}/?login=failed", status_code=302)
    response.delete_cookie(key=OAUTH_STATE_COOKIE, path="/")
    return response


def user_payload(user: User) -> dict:
    data = UserResponse.model_validate(user).model_dump()
    data["is_admin"] = settings.is_admin_discord_id(user.discord_id)
    return data


@router.get("/discord")
@limiter.limit("20/minute")
def discord_login(request: Request):
    """Start the Discord OAuth2 flow."""
    state = generate_oauth_state()
    response = RedirectResponse(url=discord_oauth.build_authorize_url(state), status_code=302)
    response.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state,
        httponly=True,
        secure=_should_use_secure_cookies(request),
        samesite="lax",
        max_age=OAUTH_STATE_MAX_AGE,
        path="/",
    )
    return response


@router.get("/discord/callback")
@limiter.limit("20/minute")
def discord_callback(
    request: Request,
    code: str = None,
    state: str = None,
    db: Session = Depends(get_db),
):
    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or not expected_state or state != expected_state:
        logger.warning("discord_login_rejected", reason="missing_code_or_state_mismatch")
        return _login_failed_redirect()

    try:
        access_token = discord_oauth.exchange_code(code)
        profile = discord_oauth.fetch_discord_user(access_token)
    except HTTPException as exc:
        logger.warning("discord_login_failed", detail=exc.detail)
        return _login_failed_redirect()

    user = discord_oauth.upsert_user(db, profile)
    if not user.is_active:
        logger.warning("discord_login_inactive_user", user_id=user.id)
        return _login_failed_redirect()

    session_token = create_access_token({"sub": str(user.id)})
    client_ip, _ = get_real_client_ip(request)
    notifications.notify_login(user, ip=client_ip, user_agent=request.headers.get("user-agent"))

    response = RedirectResponse(url=settings.FRONTEND_URL, status_code=302)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_token,
        httponly=True,
        secure=_should_use_secure_cookies(request),
        samesite="lax",
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        path="/",
    )
    response.delete_cookie(key=OAUTH_STATE_COOKIE, path="/")
    return response


@router.get("/csrf-token")
def get_csrf_token():
    response = JSONResponse(content=success(message="CSRF token set"))
    issue_csrf_token(response)
    return response


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    return success(data=user_payload(current_user), message="Current user")


@router.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    token = extract_session_token(request)
    if token:
        try:
            _blacklist_token(db, token, reason="logout")
            db.commit()
        except HTTPException:
            pass
        except IntegrityError:
            db.rollback()

    response = JSONResponse(content=success(message="Logout successful"))
    secure = _should_use_secure_cookies(request)
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/", samesite="lax", secure=secure)
    response.delete_cookie(key=CSRF_COOKIE_NAME, path="/", samesite="lax", secure=secure)
    return response
