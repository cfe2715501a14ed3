"""
Application configuration using Pydantic Settings.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # Application
    ENVIRONMENT: str = Field(default="development", description="Environment name")
    DEBUG: bool = Field(default=False, description="Debug mode")
    SECRET_KEY: str = Field(..., description="Secret key for signing tokens")

    # Database
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string")

    # Security
    BCRYPT_ROUNDS: int = Field(default=12, description="Bcrypt work factor")

    # CORS
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Allowed CORS origins (comma-separated)",
    )

    # Retailer catalog endpoints
    CATALOG_CONFIG_URL: str = Field(
        default="https://www.uniqlo.cn/data/config_1/zh_CN/super-u_951462.json",
        description="Listing configuration (ordered section list)",
    )
    CATALOG_DETAIL_URL: str = Field(
        default="https://www.uniqlo.cn/data/products/spu/zh_CN",
        description="Per-product detail base URL ({base}/{product_id}.json)",
    )
    CATALOG_STOCK_URL: str = Field(
        default="https://d.uniqlo.cn/p/stock/stock/query/zh_CN",
        description="Per-product stock query endpoint",
    )
    CATALOG_SEARCH_URL: str = Field(
        default=(
            "https://d.uniqlo.cn/p/hmall-sc-service/search/"
            "searchWithDescriptionAndConditions/zh_CN"
        ),
        description="Catalog search endpoint (6-digit code lookup)",
    )
    CATALOG_PRODUCT_PAGE_URL: str = Field(
        default="https://www.uniqlo.cn/product-detail.html?productCode={product_id}",
        description="Public product page template used as push link",
    )

    # Crawling
    CATALOG_MAX_CONCURRENCY: int = Field(
        default=20, description="Max in-flight detail/stock requests per crawl"
    )
    CATALOG_JITTER_MS: int = Field(
        default=50, description="Upper bound of random delay before each request (ms)"
    )
    CATALOG_HTTP_TIMEOUT: float = Field(
        default=30.0, description="Upstream HTTP timeout (seconds)"
    )

    # Reconciliation
    RECONCILE_BATCH_SIZE: int = Field(default=50, description="Rows per mutation batch")
    RECONCILE_PAGE_SIZE: int = Field(default=1000, description="Rows per load page")

    # Scheduling
    SCHEDULER_TIMEZONE: str = Field(
        default="Asia/Shanghai", description="Timezone for cron triggers and monitor windows"
    )
    SCHEDULE_STARTUP_DELAY_SECONDS: float = Field(
        default=5.0, description="Delay before persisted schedules are loaded on startup"
    )
    SCHEDULE_MIN_INTERVAL_MINUTES: int = Field(
        default=15, description="Smallest accepted crawl interval (minutes)"
    )

    # Per-favorite monitors
    MONITOR_MIN_INTERVAL_SECONDS: int = Field(
        default=2, description="Smallest accepted monitor poll interval (seconds)"
    )
    MONITOR_LOG_SIZE: int = Field(default=5, description="Rolling in-memory monitor log size")
    DEFAULT_NOTIFY_FREQUENCY_MINUTES: int = Field(
        default=60, description="Default per-account favorite push frequency (minutes)"
    )
    TASK_LOG_HISTORY_LIMIT: int = Field(
        default=50, description="Max execution log rows returned per task"
    )

    # WeChat push transport
    WXPUSH_URL: str = Field(
        default="https://mniqlo-wxpush.pittlucy9.workers.dev/wxsend",
        description="WxPush relay endpoint",
    )
    WXPUSH_TEMPLATE_ID: str = Field(default="", description="WeChat template id")
    WXPUSH_BASE_URL: str = Field(default="", description="Landing base URL for pushes")
    WXPUSH_TOKEN: str = Field(default="", description="WxPush relay token")
    WXPUSH_TIMEOUT: float = Field(default=10.0, description="Push delivery timeout (seconds)")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json or text)")

    # Rate Limiting
    RATE_LIMIT_PER_API_KEY_PER_HOUR: int = Field(
        default=1000, description="Rate limit per API key per hour"
    )

    # Health Check
    HEALTH_CHECK_TIMEOUT: int = Field(default=5, description="Health check timeout (seconds)")

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v: str) -> List[str]:
        """Parse comma-separated CORS origins into list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v_upper

    @field_validator("CATALOG_MAX_CONCURRENCY", "RECONCILE_BATCH_SIZE", "RECONCILE_PAGE_SIZE")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject non-positive sizes."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"


# Global settings instance
settings = Settings()
