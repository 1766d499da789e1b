from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///:memory:"
    event_log_path: Path = Path(__file__).resolve().parents[1] / "event_log.jsonl"
    provisioning_path: Path = Path(__file__).resolve().parents[1] / "provisioning/lockers.yaml"
    seed_on_startup: bool = True

    # Every storage call fails instead of hanging past this deadline
    persistence_timeout_seconds: float = 5.0
    retry_max_attempts: int = 3
    retry_initial_delay: float = 0.05
    retry_max_delay: float = 0.5

    # Occupied lockers younger than this are never treated as orphans
    recovery_grace_seconds: float = 60.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LOCKRENT_", env_file=".env", extra="ignore")


settings = Settings()
