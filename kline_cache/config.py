"""Configuration management."""

import os
from dataclasses import dataclass


@dataclass
class CacheConfig:
    """Service configuration from environment variables."""

    cache_dir: str = "tickers"
    binance_base_url: str = "https://api.binance.com"
    max_page: int = 999
    request_timeout_seconds: float = 10.0
    min_request_interval_seconds: float = 0.1
    symbols_refresh_seconds: float = 30.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Load configuration from environment variables.

        Unset variables fall back to the defaults above. Fails immediately if a
        numeric variable cannot be parsed.
        """
        defaults = cls()

        def number(name: str, default, kind):
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return kind(raw)
            except ValueError as e:
                raise ValueError(
                    f"Invalid value for {name}: {raw!r}\n"
                    f"  - Expected a {kind.__name__}"
                ) from e

        return cls(
            cache_dir=os.getenv("CACHE_DIR", defaults.cache_dir),
            binance_base_url=os.getenv("BINANCE_BASE_URL", defaults.binance_base_url),
            max_page=number("MAX_PAGE", defaults.max_page, int),
            request_timeout_seconds=number(
                "REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds, float
            ),
            min_request_interval_seconds=number(
                "MIN_REQUEST_INTERVAL_SECONDS", defaults.min_request_interval_seconds, float
            ),
            symbols_refresh_seconds=number(
                "SYMBOLS_REFRESH_SECONDS", defaults.symbols_refresh_seconds, float
            ),
            host=os.getenv("HOST", defaults.host),
            port=number("PORT", defaults.port, int),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )

    def validate(self) -> None:
        """Validate configuration."""
        if not self.cache_dir:
            raise ValueError("CACHE_DIR is required")
        if not 1 <= self.max_page <= 1000:
            raise ValueError("MAX_PAGE must be between 1 and 1000")
        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")
        if self.min_request_interval_seconds < 0:
            raise ValueError("MIN_REQUEST_INTERVAL_SECONDS must not be negative")
        if self.symbols_refresh_seconds <= 0:
            raise ValueError("SYMBOLS_REFRESH_SECONDS must be positive")
        if not 0 < self.port < 65536:
            raise ValueError("PORT must be between 1 and 65535")
        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("LOG_LEVEL must be DEBUG, INFO, WARNING, ERROR or CRITICAL")
