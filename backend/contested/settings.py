from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="NODE_ENV")
    port: int = Field(default=5000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    # "json" for CloudWatch, "console" for a readable local terminal.
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS / Frontend
    frontend_base_url: str = Field(
        default="https://contested.app", validation_alias="FRONTEND_BASE_URL"
    )
    frontend_urls: str | None = Field(default=None, validation_alias="FRONTEND_URLS")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")
    # DynamoDB Local or LocalStack; unset in deployed environments.
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")

    # Custom sessions
    session_secret: str | None = Field(default=None, validation_alias="SESSION_SECRET")
    session_ttl_seconds: int = Field(default=86400, validation_alias="SESSION_TTL_SECONDS")
    session_cookie_name: str = Field(default="auth-token", validation_alias="SESSION_COOKIE_NAME")

    # Supabase auth
    supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_jwt_secret: str | None = Field(default=None, validation_alias="SUPABASE_JWT_SECRET")
    supabase_jwt_audience: str = Field(
        default="authenticated", validation_alias="SUPABASE_JWT_AUDIENCE"
    )

    # External matching service (optional; local scoring is used when unset)
    matching_svc_url: str | None = Field(default=None, validation_alias="MATCHING_SVC_URL")
    matching_svc_timeout_seconds: float = Field(
        default=10.0, validation_alias="MATCHING_SVC_TIMEOUT_SECONDS"
    )

    # Stripe
    stripe_secret_key: str | None = Field(default=None, validation_alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str | None = Field(
        default=None, validation_alias="STRIPE_WEBHOOK_SECRET"
    )
    stripe_basic_price_id: str = Field(default="price_basic", validation_alias="STRIPE_BASIC_PRICE_ID")
    stripe_pro_price_id: str = Field(default="price_pro", validation_alias="STRIPE_PRO_PRICE_ID")
    stripe_enterprise_price_id: str = Field(
        default="price_enterprise", validation_alias="STRIPE_ENTERPRISE_PRICE_ID"
    )

    # Public auth endpoint hardening
    login_rate_limit_rpm: int = Field(default=20, validation_alias="LOGIN_RATE_LIMIT_RPM")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        if v == "test":
            return "test"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def supabase_configured(self) -> bool:
        return bool((self.supabase_jwt_secret or "").strip() or (self.supabase_url or "").strip())

    @property
    def stripe_configured(self) -> bool:
        return bool((self.stripe_secret_key or "").strip())

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Development/staging may run with partial config (local matching, no
        Stripe), production must be fully configured.
        """
        if not self.is_production:
            return

        missing: list[str] = []

        if not self.ddb_table_name:
            missing.append("DDB_TABLE_NAME")

        # Session tokens are peppered and cursors encrypted with this secret.
        if not self.session_secret:
            missing.append("SESSION_SECRET")

        if not self.supabase_configured:
            missing.append("SUPABASE_JWT_SECRET (or SUPABASE_URL)")

        if not self.stripe_secret_key:
            missing.append("STRIPE_SECRET_KEY")
        if not self.stripe_webhook_secret:
            missing.append("STRIPE_WEBHOOK_SECRET")

        if missing:
            raise RuntimeError(
                "Missing required production environment variables: "
                + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "port": self.port,
            "log": {"level": self.log_level, "format": self.log_format},
            "frontend": {
                "frontend_base_url": self.frontend_base_url,
                "frontend_urls": self.frontend_urls,
            },
            "aws": {
                "aws_region": self.aws_region,
                "ddb_table_name": self.ddb_table_name,
                "ddb_endpoint_url": self.ddb_endpoint_url,
            },
            "auth": {
                "session_secret_configured": _has(self.session_secret),
                "session_ttl_seconds": self.session_ttl_seconds,
                "session_cookie_name": self.session_cookie_name,
                "supabase_url": self.supabase_url,
                "supabase_jwt_secret_configured": _has(self.supabase_jwt_secret),
                "supabase_jwt_audience": self.supabase_jwt_audience,
            },
            "integrations": {
                "matching_svc_url": self.matching_svc_url if _has(self.matching_svc_url) else None,
                "matching_svc_timeout_seconds": self.matching_svc_timeout_seconds,
                "stripe_secret_key_configured": _has(self.stripe_secret_key),
                "stripe_webhook_secret_configured": _has(self.stripe_webhook_secret),
                "stripe_price_ids": {
                    "basic": self.stripe_basic_price_id,
                    "pro": self.stripe_pro_price_id,
                    "enterprise": self.stripe_enterprise_price_id,
                },
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s


# Module-level singleton; tests mutate attributes on it directly.
settings = get_settings()
