from typing import Optional

from pydantic_settings import BaseSettings

DEFAULT_RECEIVER_URL = "https://receiver.otel2.etendo.cloud/process"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./analytics_exporter.db"
    receiver_url: str = DEFAULT_RECEIVER_URL
    source_instance: str = ""  # overrides the identifier stored in the host DB
    sync_hour: int = 3
    sync_minute: int = 0
    connect_timeout_seconds: float = 30.0
    read_timeout_seconds: float = 60.0
    log_level: str = "INFO"

    class Config:
        env_prefix = "ANALYTICS_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
