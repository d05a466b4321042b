from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LINENOTE_", env_file=".env", extra="ignore")

    # Server
    host: str = "127.0.0.1"
    base_port: int = 3000
    max_port_attempts: int = 100
    open_browser: bool = True

    # Input
    encoding: str | None = None
    collapse_threshold: int = 50

    # Live reload
    heartbeat_interval: float = 25.0
    watch_interval: float = 0.5

    # Defaults
    max_payload_bytes: int = 2 * 1024 * 1024
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
