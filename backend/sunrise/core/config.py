from functools import lru_cache
from typing import List, Optional

from json import loads as json_loads, JSONDecodeError

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Sunrise backend.

    All values come from environment variables or backend/.env.
    This is the single source of truth for:
    - environment (dev/staging/prod)
    - database URL
    - CORS / allowed origins
    - auth / token settings
    - invitation lifetime
    - outbound email
    """

    # - env_file: backend/.env
    # - extra="ignore": tolerate unrelated env vars on shared hosts
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # High-level environment flags
    environment: str = Field(
        default="dev",
        description="Deployment environment identifier (dev|staging|prod)",
    )
    debug: bool = Field(default=True)
    app_name: str = Field(default="Sunrise")
    version: str = Field(default="dev")

    # Database
    database_url: str = Field(
        default="sqlite:///./sunrise.db",
        description="SQLAlchemy-style DB URL (SQLite for dev, Postgres in prod).",
    )

    # Auth / tokens
    jwt_secret: str = Field(
        default="supersecret",
        description="JWT signing secret; override in all non-dev environments.",
    )
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(
        default=60,
        description="Access token lifetime in minutes.",
    )

    # Invitations
    invitation_expiry_days: int = Field(
        default=7,
        description="How long an issued invitation token stays valid.",
    )

    # Public URL used to build links inside emails
    app_url: str = Field(default="http://localhost:3000")

    # Outbound email
    email_provider: str = Field(
        default="log",
        description="log | smtp | resend. 'log' writes the message to the application log.",
    )
    email_from: str = Field(default="Sunrise <no-reply@sunrise.local>")
    resend_api_key: Optional[str] = Field(default=None)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=True)

    # CORS / frontends
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description=(
            "Allowed frontend origins. Either a comma-separated string or a JSON list like "
            '["http://localhost:3000","http://127.0.0.1:3000"].'
        ),
    )

    # API docs toggle
    enable_docs: bool = Field(
        default=False,
        description="If true, exposes /api/v1/docs and /api/v1/redoc.",
    )

    # Performance budgets (warn-level logs only)
    slow_http_ms: float = Field(default=1500.0)
    slow_db_query_ms: float = Field(default=250.0)
    slow_db_total_ms: float = Field(default=800.0)
    log_db_sql: bool = Field(default=False)

    def origins_list(self) -> List[str]:
        """ALLOWED_ORIGINS as a list; accepts "a,b" or a JSON array string."""
        raw = str(self.allowed_origins or "").strip()
        if not raw:
            return []

        candidates: list = []
        if raw.startswith("["):
            try:
                parsed = json_loads(raw)
            except JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                candidates = parsed

        if not candidates:
            candidates = raw.strip("[]").split(",")

        return [str(o).strip().strip('"') for o in candidates if str(o).strip().strip('"')]

    @property
    def is_prod(self) -> bool:
        return self.environment.lower() in {"prod", "production"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
