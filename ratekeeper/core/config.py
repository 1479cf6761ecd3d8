from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratekeeper import __version__
from ratekeeper.models.constants import DEFAULT_TARGETS, MIN_DEFAULT_TARGETS


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., API_KEY, DEBUG,
    DATA_DIR, DB_PATH, SCHEDULER_INTERVAL_SECONDS, DEFAULT_TARGETS as JSON list).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Ratekeeper"
    debug: bool = False
    version: str = __version__

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "rates.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Shared secret for /rates/*; unset means every guarded request is refused
    api_key: Optional[str] = None

    # Upstream (Frankfurter latest-rates API)
    upstream_base_url: AnyHttpUrl = "https://api.frankfurter.app"
    http_timeout_seconds: float = 5.0
    upstream_max_attempts: int = 3
    upstream_backoff_seconds: float = 1.0

    # Ingestion
    default_base: str = "USD"
    default_targets: List[str] = list(DEFAULT_TARGETS)

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_interval_seconds: float = 3 * 60 * 60

    # Fixed-window rate limiting per caller
    rate_limit_requests: int = 60
    rate_limit_window_seconds: float = 60.0

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.default_base = self.default_base.upper()
        self.default_targets = [t.upper() for t in self.default_targets]
        if len(set(self.default_targets)) < MIN_DEFAULT_TARGETS:
            raise ValueError(
                f"default_targets needs at least {MIN_DEFAULT_TARGETS} distinct currencies"
            )
        if self.upstream_max_attempts < 1:
            raise ValueError("upstream_max_attempts must be >= 1")
        if self.scheduler_interval_seconds <= 0:
            raise ValueError("scheduler_interval_seconds must be positive")
        if self.rate_limit_requests < 1 or self.rate_limit_window_seconds <= 0:
            raise ValueError("rate limit must allow at least one request per window")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
