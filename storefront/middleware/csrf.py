"""Double-submit cookie CSRF protection for cookie-authenticated requests."""
from secrets import token_urlsafe
import hmac

from fastapi import Request, Response

from storefront.core.config import settings

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_COOKIE_MAX_AGE = 60 * 60 * 24
CSRF_PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# The OAuth callback is a top-level GET redirect; logout only clears state.
CSRF_EXEMPT_PATHS = {
    f"{settings.API_V1_STR}/auth/logout",
}


def issue_csrf_token(response: Response) -> str:
    token = token_urlsafe(32)
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
    )
    return token


def verify_csrf_token(request: Request) -> bool:
    csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)
    csrf_header = request.headers.get(CSRF_HEADER_NAME)

    if not csrf_cookie or not csrf_header:
        return False

    return hmac.compare_digest(csrf_cookie, csrf_header)


def requires_csrf_check(request: Request) -> bool:
    if request.method not in CSRF_PROTECTED_METHODS:
        return False
    if settings.ENVIRONMENT != "production" and request.url.path.startswith("/api/"):
        return False
    path = request.url.path.rstrip("/") or "/"
    if path in CSRF_EXEMPT_PATHS:
        return False
    # Bearer-token clients are not exposed to cross-site cookie replay.
    if request.headers.get("Authorization", "").startswith("Bearer "):
        return False
    return True
