"""
TenantGuard — Configuration
============================
Pydantic-based settings loaded from environment variables.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # ---- Application ----
    app_name: str = "TenantGuard"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    debug: bool = False

    # ---- PostgreSQL ----
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "tenantguard"
    postgres_user: str = "tg_admin"
    postgres_password: str = "changeme"

    # Overrides the assembled PostgreSQL URL (e.g. sqlite+aiosqlite for tests)
    database_url_override: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ---- Policies ----
    policy_file: Optional[str] = None
    policy_file_has_header: bool = False
    reset_domain_zero_on_startup: bool = True

    # ---- Decisions ----
    lookup_timeout_seconds: float = 2.0
    public_actor: str = "public"
    # Object guarding the administration routes
    authorization_object: str = "authorization"

    # ---- Trust tiers (roles held in domain 0) ----
    internal_roles: List[str] = ["admin", "admindata", "officer", "agent", "administrator"]
    customer_roles: List[str] = ["customer_admin"]
    external_role: str = "enduser"
    public_role: str = "public"

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
