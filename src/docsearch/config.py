"""Search service configuration loaded from environment variables."""
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Search service configuration loaded from environment variables.

    Attributes:
        host: Bind address for the API server.
        port: Port number for the API server.
        debug: Enable debug logging and API documentation.
        database_path: SQLite file holding shards, analytics and read model.
        shutdown_timeout: Seconds to wait for background writes on shutdown.
        default_page_size: Page size used when a caller sends no limit.
        max_page_size: Hard upper bound applied to every page size.
        score_tie_epsilon: Score gap at or below which results are ordered
            by recency instead of relevance.
        facet_author_limit: Number of authors reported in facets.
        history_limit: Per-user cap on saved search history rows.
        retention_days: Age in days after which query logs are swept.
        retention_interval_seconds: Seconds between retention sweeps
            (0 disables the sweeper).
        analytics_timezone: IANA zone used for hour-of-day metrics.
        rebuild_on_startup: Rebuild every shard when the app starts.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    database_path: str = "docsearch.db"
    shutdown_timeout: float = 30.0

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    score_tie_epsilon: float = Field(default=0.1, ge=0.0)
    facet_author_limit: int = Field(default=10, ge=1)

    history_limit: int = Field(default=100, ge=1)
    retention_days: int = Field(default=90, ge=1)
    retention_interval_seconds: float = Field(default=0.0, ge=0.0)
    analytics_timezone: str = "UTC"

    rebuild_on_startup: bool = False

    @property
    def tzinfo(self) -> ZoneInfo:
        """Resolve the analytics timezone.

        Returns:
            Zone used for hour-of-day bucketing.
        """
        return ZoneInfo(self.analytics_timezone)
