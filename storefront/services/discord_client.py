from typing import Any, Dict, Optional

import httpx
import structlog

from storefront.core.config import settings

logger = structlog.get_logger()

CHANNEL_SETTINGS = {
    "login": "LOGIN_LOG_CHANNEL",
    "orders": "ORDER_LOG_CHANNEL",
    "payments": "PAYMENT_LOG_CHANNEL",
    "deliveries": "DELIVERY_LOG_CHANNEL",
    "admin": "ADMIN_LOG_CHANNEL",
}


class DiscordAPIError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"Discord API error {status_code}: {message}")
        self.status_code = status_code


def resolve_channel_id(channel: str) -> Optional[str]:
    setting_name = CHANNEL_SETTINGS.get(channel)
    if not setting_name:
        raise ValueError(f"Unknown Discord channel: {channel}")
    return getattr(settings, setting_name) or None


class DiscordBotClient:
    """Minimal REST client for the bot actions the storefront needs."""

    def __init__(self, token: str = None, api_base: str = None, timeout: float = None):
        self.token = token if token is not None else settings.DISCORD_BOT_TOKEN
        self.api_base = (api_base or settings.DISCORD_API_BASE).rstrip("/")
        self.timeout = timeout or settings.DISCORD_HTTP_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        headers = {
            "Authorization": f"Bot {self.token}",
            "User-Agent": f"DiscordBot ({settings.BASE_URL}, 1.0)",
        }
        with httpx.Client(base_url=self.api_base, timeout=self.timeout) as client:
            response = client.request(method, path, json=json, headers=headers)
        if response.status_code >= 400:
            raise DiscordAPIError(response.status_code, response.text[:200])
        return response

    def send_message(self, channel_id: str, message: Dict[str, Any]) -> Optional[str]:
        response = self._request("POST", f"/channels/{channel_id}/messages", json=message)
        return response.json().get("id")

    def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        self._request("PUT", f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}")
