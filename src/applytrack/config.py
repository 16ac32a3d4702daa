from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Applytrack"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/applytrack.db"
    data_dir: Path = Path("./data")
    local_store_path: Path = Path("./data/local_store.json")

    api_auth_mode: str = "token"
    demo_user_email: str = "demo@applytrack.local"
    cors_origins: str = "http://127.0.0.1:8787"

    api_base_url: str = "http://127.0.0.1:8787"
    api_token: str = ""
    http_timeout_sec: int = 30

    offline_fallback_enabled: bool = True
    consistency_poll_attempts: int = 5
    consistency_poll_interval_sec: float = 0.2

    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    adzuna_country: str = "us"
    adzuna_base_url: str = "https://api.adzuna.com/v1/api/jobs"
    job_search_page_size: int = 10

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("api_auth_mode")
    @classmethod
    def validate_auth_mode(cls, value: str) -> str:
        allowed = {"token", "open"}
        if value not in allowed:
            raise ValueError(f"api_auth_mode must be one of {sorted(allowed)}")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def adzuna_enabled(self) -> bool:
        return bool(self.adzuna_app_id and self.adzuna_app_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
