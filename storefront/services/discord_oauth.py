from datetime import datetime
from typing import Any, Dict
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.models.user import User

logger = structlog.get_logger()

AUTHORIZE_URL = "https://discord.com/oauth2/authorize"


class DiscordOAuthError(HTTPException):
    def __init__(self, message: str = "Discord login failed"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


def build_authorize_url(state: str) -> str:
    params = {
        "client_id": settings.DISCORD_CLIENT_ID,
        "redirect_uri": settings.DISCORD_REDIRECT_URI,
        "response_type": "code",
        "scope": settings.DISCORD_OAUTH_SCOPE,
        "state": state,
        "prompt": "none",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code(code: str) -> str:
    """Trade the authorisation code for a user access token."""
    data = {
        "client_id": settings.DISCORD_CLIENT_ID,
        "client_secret": settings.DISCORD_CLIENT_SECRET,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.DISCORD_REDIRECT_URI,
    }
    try:
        response = httpx.post(
            f"{settings.DISCORD_API_BASE}/oauth2/token",
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=settings.DISCORD_HTTP_TIMEOUT,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("discord_token_exchange_failed", error=str(exc))
        raise DiscordOAuthError()

    try:
        access_token = response.json().get("access_token")
    except ValueError:
        logger.warning("discord_token_exchange_failed", error="non-JSON response")
        raise DiscordOAuthError()
    if not access_token:
        raise DiscordOAuthError()
    return access_token


def fetch_discord_user(access_token: str) -> Dict[str, Any]:
    try:
        response = httpx.get(
            f"{settings.DISCORD_API_BASE}/users/@me",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=settings.DISCORD_HTTP_TIMEOUT,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("discord_profile_fetch_failed", error=str(exc))
        raise DiscordOAuthError()

    try:
        profile = response.json()
    except ValueError:
        logger.warning("discord_profile_fetch_failed", error="non-JSON response")
        raise DiscordOAuthError()
    if not profile.get("id") or not profile.get("username"):
        raise DiscordOAuthError()
    return profile


def upsert_user(db: Session, profile: Dict[str, Any]) -> User:
    """Create or refresh the local user for a Discord profile."""
    discord_id = str(profile["id"])
    user = db.query(User).filter(User.discord_id == discord_id).first()
    if not user:
        user = User(discord_id=discord_id)
        db.add(user)

    user.username = profile.get("global_name") or profile["username"]
    user.avatar = profile.get("avatar")
    user.last_login_at = datetime.utcnow()

    db.commit()
    db.refresh(user)
    return user
