from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import List
import json
import ipaddress


class Settings(BaseSettings):
    # Project Info
    PROJECT_NAME: str = "Moonlit Promise Storefront"
    API_V1_STR: str = "/api/v1"

    # Database
    DATABASE_URL: str = "sqlite:///./moonlit.db"

    # Session
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60 * 24 * 7
    SESSION_COOKIE_NAME: str = "access_token"

    # Discord OAuth2
    DISCORD_CLIENT_ID: str = ""
    DISCORD_CLIENT_SECRET: str = ""
    DISCORD_REDIRECT_URI: str = "http://localhost:8000/api/v1/auth/discord/callback"
    DISCORD_API_BASE: str = "https://discord.com/api/v10"
    DISCORD_OAUTH_SCOPE: str = "identify"
    DISCORD_HTTP_TIMEOUT: float = 10.0

    # Discord bot
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_GUILD_ID: str = ""
    LOGIN_LOG_CHANNEL: str = ""
    ORDER_LOG_CHANNEL: str = ""
    PAYMENT_LOG_CHANNEL: str = ""
    DELIVERY_LOG_CHANNEL: str = ""
    ADMIN_LOG_CHANNEL: str = ""
    AUTO_ROLE_ID: str = ""

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
    ]

    # Storefront
    BASE_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:3000"
    CURRENCY: str = "₹"
    UPI_ID: str = "payments@moonlitpromise"
    MERCHANT_NAME: str = "Moonlit Promise"
    MAX_CART_QUANTITY: int = 10

    # OTP
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_MAX_REQUESTS_PER_HOUR: int = 3
    OTP_MAX_ATTEMPTS: int = 5

    # File Upload
    MAX_UPLOAD_SIZE: int = 5242880  # 5MB
    ALLOWED_EXTENSIONS: List[str] = ["jpg", "jpeg", "png"]
    PRODUCT_UPLOAD_DIR: str = "static/uploads/products"
    PROOF_UPLOAD_DIR: str = "uploads/proofs"

    # Environment
    ENVIRONMENT: str = "development"

    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""

    # Monitoring (Optional - Add to .env for production)
    SENTRY_DSN: str = ""

    # Celery & Redis (Task Queue)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Backups
    BACKUP_DIR: str = "backups"
    BACKUP_RETENTION: int = 28

    # Admin Security
    ADMIN_DISCORD_IDS: str = ""
    ADMIN_ALLOWED_IPS: str = ""
    TRUST_PROXY_HEADERS: bool = True
    TRUSTED_PROXY_IPS: str = "127.0.0.1,::1"

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        return value.lower().strip()

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper().strip()

    @classmethod
    def _parse_list(cls, value, name: str) -> List[str]:
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError as exc:
                    raise ValueError(f"{name} must be valid JSON or a comma-separated list") from exc
            return [item.strip() for item in raw.split(",") if item.strip()]
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        return value

    @field_validator("ADMIN_DISCORD_IDS")
    @classmethod
    def validate_admin_discord_ids(cls, value: str) -> str:
        normalized = cls._parse_list(value, "ADMIN_DISCORD_IDS")
        for discord_id in normalized:
            if not discord_id.isdigit():
                raise ValueError(f"Invalid Discord id: {discord_id}")
        return ",".join(normalized)

    @field_validator("ADMIN_ALLOWED_IPS")
    @classmethod
    def validate_admin_ip_format(cls, value: str) -> str:
        normalized = cls._parse_list(value, "ADMIN_ALLOWED_IPS")
        for ip in normalized:
            try:
                ipaddress.ip_address(ip)
            except ValueError as exc:
                raise ValueError(f"Invalid IP address: {ip}") from exc
        return ",".join(normalized)

    @field_validator("TRUSTED_PROXY_IPS")
    @classmethod
    def validate_trusted_proxy_ip_format(cls, value: str) -> str:
        normalized = cls._parse_list(value, "TRUSTED_PROXY_IPS")
        for ip in normalized:
            try:
                ipaddress.ip_address(ip)
            except ValueError as exc:
                raise ValueError(f"Invalid proxy IP address: {ip}") from exc
        return ",".join(normalized)

    @model_validator(mode="after")
    def validate_production_settings(self):
        if self.ENVIRONMENT == "production":
            normalized_secret = (self.SECRET_KEY or "").strip()
            if len(normalized_secret) < 32 or "change-this" in normalized_secret.lower():
                raise ValueError("SECRET_KEY must be at least 32 chars and not use placeholders in production")
            if not self.admin_discord_ids:
                raise ValueError("ADMIN_DISCORD_IDS must be set in production")
        return self

    @property
    def admin_discord_ids(self) -> List[str]:
        return self._parse_list(self.ADMIN_DISCORD_IDS, "ADMIN_DISCORD_IDS")

    @property
    def admin_allowed_ips(self) -> List[str]:
        return self._parse_list(self.ADMIN_ALLOWED_IPS, "ADMIN_ALLOWED_IPS")

    @property
    def trusted_proxy_ips(self) -> List[str]:
        return self._parse_list(self.TRUSTED_PROXY_IPS, "TRUSTED_PROXY_IPS")

    def is_admin_discord_id(self, discord_id: str | None) -> bool:
        if not discord_id:
            return False
        return str(discord_id) in self.admin_discord_ids

    def is_trusted_proxy(self, ip: str | None) -> bool:
        if not ip:
            return False
        if ip in {"127.0.0.1", "::1"}:
            return True
        return ip in self.trusted_proxy_ips

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()
