import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BAN_STORE_MODES = {"split", "shared"}


class Settings(BaseSettings):
    app_name: str = "ShopGuard Backend"
    env: str = "dev"
    jwt_secret: str

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # SESSION
    session_cookie_name: str = "auth-token"
    session_token_expire_days: int = Field(default=7, ge=1, le=365)

    # ADMIN PROTECTION
    admin_ban_max_attempts: int = Field(default=1, ge=1)
    admin_attempt_window_seconds: int = Field(default=10 * 60, ge=1)
    admin_ban_duration_seconds: int = Field(default=365 * 24 * 60 * 60, ge=1)
    ban_store_mode: str = "split"
    trusted_proxy_ips: List[str] = Field(default_factory=list)

    # AUTH HARDENING
    auth_login_rate_limit_requests: int = Field(default=5, ge=1)
    auth_login_rate_limit_window_seconds: int = Field(default=15 * 60, ge=1)
    auth_register_rate_limit_requests: int = Field(default=3, ge=1)
    auth_register_rate_limit_window_seconds: int = Field(default=60 * 60, ge=1)
    register_min_fill_seconds: int = Field(default=3, ge=0, le=600)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", "trusted_proxy_ips", mode="before")
    @classmethod
    def assemble_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("ban_store_mode", mode="before")
    @classmethod
    def normalize_ban_store_mode(cls, value: str) -> str:
        cleaned = str(value or "split").strip().lower()
        if cleaned not in BAN_STORE_MODES:
            raise ValueError(f"BAN_STORE_MODE must be one of {sorted(BAN_STORE_MODES)}")
        return cleaned

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("JWT_SECRET environment variable is required")
        return cleaned

    @property
    def is_production(self) -> bool:
        return self.env.lower().strip() in {"prod", "production"}

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        if not self.is_production:
            return self

        weak_secrets = {
            "change_me",
            "your-jwt-secret-key",
            "dev-secret-key-change-before-prod",
        }
        if self.jwt_secret in weak_secrets or len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be a strong random value in production")

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
