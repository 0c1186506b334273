from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "aps"
    db_username: str = "aps"
    db_password: str = "secret"

    max_job_attempts: int = 3
    job_poll_interval_seconds: int = 5
    max_concurrent_files: int = 3

    files_root: str = "/app/files"
    record_store: str = "postgres"

    max_file_size_bytes: int = 100 * 1024 * 1024
    encoding_fallbacks: list[str] = ["utf-8", "iso-8859-1", "windows-1252"]

    strict_mode: bool = False
    allow_quarantine: bool = True
    perform_deep_scan: bool = False
    quality_warning_threshold: float = 80.0
