from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Portal settings.

    Notes:
    - Defaults are local (SQLite next to the repo, dummy bearer auth) so the
      portal runs without any Azure resources.
    - Everything can be overridden with `PORTAL_*` environment variables.
    """

    model_config = SettingsConfigDict(env_prefix="PORTAL_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"

    # Role name that turns a user into a portal administrator (case-insensitive).
    admin_role: str = "Admin"

    # Azure Entra ID (only used when auth.provider is "entra").
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_audience: str | None = None
    azure_client_secret: str | None = None
    clock_skew_seconds: int = 120
    jwks_cache_ttl_seconds: int = 3600

    # Power BI service principal. Falls back to the Entra app registration.
    powerbi_tenant_id: str | None = None
    powerbi_client_id: str | None = None
    powerbi_client_secret: str | None = None
    powerbi_api_url: str = "https://api.powerbi.com"
    powerbi_timeout_seconds: float = 10.0

    ssrs_proxy_path: str = "/reports/{report_id}/render"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "portal.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
