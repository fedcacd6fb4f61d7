from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import create_access_token
from storefront.models.token_blacklist import TokenBlacklist
from storefront.models.user import User
from storefront.services import discord_oauth

ADMIN_DISCORD_ID = "900000000000000001"


def _create_user(db: Session, discord_id: str = "123456789012345678", username: str = "moonfan",
                 is_active: bool = True) -> User:
    user = User(discord_id=discord_id, username=username, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _login(client: TestClient, user: User) -> str:
    token = create_access_token({"sub": str(user.id)})
    client.cookies.set("access_token", token)
    return token


def _mock_discord(monkeypatch, profile: dict):
    monkeypatch.setattr(discord_oauth, "exchange_code", lambda code: "discord-access-token")
    monkeypatch.setattr(discord_oauth, "fetch_discord_user", lambda access_token: profile)


def test_discord_login_redirects_with_state(client: TestClient):
    response = client.get("/api/v1/auth/discord", follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    params = parse_qs(location.query)
    assert location.netloc == "discord.com"
    assert params["response_type"] == ["code"]
    assert params["scope"] == ["identify"]
    assert params["state"] == [response.cookies.get("oauth_state")]


def test_callback_with_mismatched_state_fails(client: TestClient, db_session: Session):
    client.cookies.set("oauth_state", "expected-state")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"code": "abc", "state": "other-state"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == f"{settings.FRONTEND_URL}/?login=failed"
    assert db_session.query(User).count() == 0


def test_callback_without_code_fails(client: TestClient):
    client.cookies.set("oauth_state", "expected-state")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"state": "expected-state"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"].endswith("login=failed")


def test_callback_creates_user_and_session(client: TestClient, db_session: Session, monkeypatch):
    _mock_discord(monkeypatch, {"id": "222333444555666777", "username": "stargazer", "avatar": "abc123"})
    client.cookies.set("oauth_state", "state-1")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"code": "good-code", "state": "state-1"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == settings.FRONTEND_URL
    token = response.cookies.get("access_token")
    assert token is not None

    user = db_session.query(User).filter(User.discord_id == "222333444555666777").one()
    assert user.username == "stargazer"
    assert user.last_login_at is not None

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    payload = me.json()
    assert payload["data"]["discord_id"] == "222333444555666777"
    assert payload["data"]["avatar_url"] == "https://cdn.discordapp.com/avatars/222333444555666777/abc123.png"
    assert payload["data"]["is_admin"] is False


def test_callback_updates_existing_user(client: TestClient, db_session: Session, monkeypatch):
    existing = _create_user(db_session, discord_id="222333444555666777", username="old-name")
    created_at = existing.created_at
    _mock_discord(monkeypatch, {"id": "222333444555666777", "username": "new-name", "avatar": None})
    client.cookies.set("oauth_state", "state-2")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"code": "good-code", "state": "state-2"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert db_session.query(User).count() == 1
    db_session.refresh(existing)
    assert existing.username == "new-name"
    assert existing.created_at == created_at


def test_callback_provider_error_redirects(client: TestClient, monkeypatch):
    def failing_exchange(code):
        raise discord_oauth.DiscordOAuthError()

    monkeypatch.setattr(discord_oauth, "exchange_code", failing_exchange)
    client.cookies.set("oauth_state", "state-3")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"code": "bad-code", "state": "state-3"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"].endswith("login=failed")


def _html_response(method: str):
    def respond(url, **kwargs):
        return httpx.Response(200, text="<html>maintenance</html>", request=httpx.Request(method, url))
    return respond


def test_token_exchange_with_html_body_fails_cleanly(monkeypatch):
    monkeypatch.setattr(discord_oauth.httpx, "post", _html_response("POST"))

    with pytest.raises(discord_oauth.DiscordOAuthError):
        discord_oauth.exchange_code("abc")


def test_profile_fetch_with_html_body_fails_cleanly(monkeypatch):
    monkeypatch.setattr(discord_oauth.httpx, "get", _html_response("GET"))

    with pytest.raises(discord_oauth.DiscordOAuthError):
        discord_oauth.fetch_discord_user("discord-access-token")


def test_callback_with_html_token_response_redirects(client: TestClient, monkeypatch):
    monkeypatch.setattr(discord_oauth.httpx, "post", _html_response("POST"))
    client.cookies.set("oauth_state", "state-4")

    response = client.get(
        "/api/v1/auth/discord/callback",
        params={"code": "abc", "state": "state-4"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"].endswith("login=failed")


def test_me_requires_session(client: TestClient):
    response = client.get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.json()["message"] == "Not authenticated"


def test_me_flags_admin(client: TestClient, db_session: Session):
    admin = _create_user(db_session, discord_id=ADMIN_DISCORD_ID, username="owner")
    _login(client, admin)

    response = client.get("/api/v1/auth/me")

    assert response.status_code == 200
    assert response.json()["data"]["is_admin"] is True


def test_inactive_user_rejected(client: TestClient, db_session: Session):
    user = _create_user(db_session, is_active=False)
    _login(client, user)

    response = client.get("/api/v1/auth/me")

    assert response.status_code == 403
    assert response.json()["message"] == "Account is inactive"


def test_expired_token_rejected(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    token = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(minutes=-1))

    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_logout_revokes_token(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    token = _login(client, user)

    response = client.post("/api/v1/auth/logout")
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"

    revoked = db_session.query(TokenBlacklist).filter(TokenBlacklist.user_id == user.id).one()
    assert revoked.reason == "logout"
    assert revoked.expires_at > datetime.utcnow()

    reuse = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert reuse.status_code == 401
    assert reuse.json()["message"] == "Session has been revoked"


def test_csrf_token_cookie_issued(client: TestClient):
    response = client.get("/api/v1/auth/csrf-token")

    assert response.status_code == 200
    assert response.cookies.get("csrf_token")
