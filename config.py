"""Configuration management for the daily digest service.

This module provides centralized configuration for all service components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Required:
        LLM_API_KEY: API key for the OpenAI-compatible completion endpoint

    Models:
        LLM_BASE_URL: Base URL of the completion endpoint (default: OpenRouter)
        SUMMARY_MODEL: Primary model for digest generation
        FALLBACK_MODELS: Comma-separated models tried after the primary fails
        MAX_TOKENS: Completion token ceiling

    Data Sources:
        NEWS_API_KEY: Key for the headline provider
        NEWS_API_URL: Top-headlines endpoint
        TRENDS_URL: Trending-searches RSS endpoint
        QUOTE_URL: Per-symbol quote endpoint ({symbol} placeholder)
        FINANCE_SYMBOLS: Comma-separated symbols collected for the market section
        PRIMARY_INDEX: Symbol reported as the headline index (default: ^IXIC)
        COLLECTOR_TIMEOUT: Per-request timeout in seconds
        TRENDS_RETRIES: Extra attempts on empty/failed trends responses
        TRENDS_RETRY_DELAY: Fixed delay between trends attempts

    Region & Schedule:
        LANGUAGE / COUNTRY: Region of the scheduled digest (default: en / US)
        MARKET_TIMEZONE: Exchange time zone (default: America/New_York)
        DAILY_RUN_TIME: HH:MM of the scheduled pass (default: 23:00)
        CHECKPOINT_TIMES: Comma-separated HH:MM re-attempts (default: 23:05,23:30,23:50)

    Manual Refresh:
        MANUAL_TIMEOUT_SECONDS: Ceiling for one manual pass (default: 60)
        DEV_MODE: Bypass the once-per-day manual refresh quota

    Server:
        HOST / PORT: HTTP bind address
        ADMIN_IPS: Comma-separated allow-list for admin endpoints
        TRUST_PROXY: Use X-Forwarded-For for client addresses

    Storage:
        DATA_DIR: Directory holding the summary archive and refresh markers

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_DIR: Directory for log files
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)

    Tracing:
        ENABLE_LOGFIRE: Enable Logfire spans and PydanticAI instrumentation
        LOGFIRE_TOKEN: Logfire write token (spans are exported only with a token)
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(key: str, default: list[str]) -> list[str]:
    """Get comma-separated list environment variable with default."""
    val = os.environ.get(key)
    if not val:
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


def parse_clock_time(value: str) -> tuple[int, int]:
    """Parse an 'HH:MM' string into (hour, minute).

    Raises:
        ValueError: If the string is not a valid 24-hour time
    """
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}' - expected HH:MM")
    return int(match.group(1)), int(match.group(2))


# Symbols collected for the market section, grouped the way the prompt reports them
DEFAULT_FINANCE_SYMBOLS = [
    # === Indices ===
    "^IXIC",     # Nasdaq Composite (primary index)
    "^GSPC",     # S&P 500
    "^DJI",      # Dow Jones Industrial Average
    "^N225",     # Nikkei 225
    "^HSI",      # Hang Seng Index

    # === Large-cap US equities ===
    "AAPL", "MSFT", "GOOGL", "AMZN", "NVDA",
    "META", "TSLA", "BRK-B", "V", "UNH",
    "JPM", "JNJ", "PG", "HD", "MA",
    "XOM", "AVGO", "PEP",

    # === Crypto (USD-quoted pairs) ===
    "BTC-USD", "ETH-USD", "SOL-USD", "XRP-USD", "BNB-USD",

    # === Major USD forex pairs ===
    "EURUSD=X", "USDJPY=X", "GBPUSD=X", "USDCNY=X",
]

# Tried in order after the requested model fails (duplicates removed at call time)
DEFAULT_FALLBACK_MODELS = [
    "openai/gpt-oss-20b:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "qwen/qwen3-235b-a22b:free",
]


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    All settings can be overridden via environment variables. Use Config.load()
    to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Required ===
    llm_api_key: str = ""  # LLM_API_KEY - completion endpoint key

    # === AI Models ===
    llm_base_url: str = "https://openrouter.ai/api/v1"  # LLM_BASE_URL
    summary_model: str = "z-ai/glm-4.5-air:free"  # SUMMARY_MODEL - primary digest model
    fallback_models: list[str] = field(default_factory=lambda: DEFAULT_FALLBACK_MODELS.copy())
    max_tokens: int = 5000  # MAX_TOKENS - completion ceiling

    # === Data Sources ===
    news_api_key: str = ""  # NEWS_API_KEY
    news_api_url: str = "https://newsapi.org/v2/top-headlines"  # NEWS_API_URL
    trends_url: str = "https://trends.google.com/trending/rss"  # TRENDS_URL
    quote_url: str = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"  # QUOTE_URL
    finance_symbols: list[str] = field(default_factory=lambda: DEFAULT_FINANCE_SYMBOLS.copy())
    primary_index: str = "^IXIC"  # PRIMARY_INDEX
    collector_timeout: int = 15  # COLLECTOR_TIMEOUT - seconds per request
    trends_retries: int = 2  # TRENDS_RETRIES - extra attempts after the first
    trends_retry_delay: float = 3.0  # TRENDS_RETRY_DELAY - seconds between attempts

    # === Region & Schedule ===
    language: str = "en"  # LANGUAGE - scheduled digest language
    country: str = "US"  # COUNTRY - scheduled digest country
    market_timezone: str = "America/New_York"  # MARKET_TIMEZONE
    daily_run_time: str = "23:00"  # DAILY_RUN_TIME - always-generate pass
    checkpoint_times: list[str] = field(default_factory=lambda: ["23:05", "23:30", "23:50"])

    # === Manual Refresh ===
    manual_timeout_seconds: float = 60.0  # MANUAL_TIMEOUT_SECONDS
    dev_mode: bool = False  # DEV_MODE - bypass the daily manual quota

    # === Server ===
    host: str = "0.0.0.0"  # HOST
    port: int = 3000  # PORT
    admin_ips: list[str] = field(default_factory=lambda: ["127.0.0.1", "::1"])  # ADMIN_IPS
    trust_proxy: bool = True  # TRUST_PROXY - honor X-Forwarded-For

    # === Storage ===
    data_dir: Path = field(default_factory=lambda: Path("data"))  # DATA_DIR

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Tracing (Optional) ===
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @property
    def summary_file(self) -> Path:
        """Path of the JSON summary archive."""
        return self.data_dir / "daily-summaries.json"

    @property
    def refresh_marker_file(self) -> Path:
        """Path of the per-client manual refresh markers."""
        return self.data_dir / "refresh-markers.json"

    @property
    def tz(self) -> ZoneInfo:
        """Exchange time zone used for dates and schedules."""
        return ZoneInfo(self.market_timezone)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            llm_api_key=_env("LLM_API_KEY"),
            llm_base_url=_env("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
            summary_model=_env("SUMMARY_MODEL", "z-ai/glm-4.5-air:free"),
            fallback_models=_env_list("FALLBACK_MODELS", DEFAULT_FALLBACK_MODELS),
            max_tokens=_env_int("MAX_TOKENS", 5000),
            news_api_key=_env("NEWS_API_KEY"),
            news_api_url=_env("NEWS_API_URL", "https://newsapi.org/v2/top-headlines"),
            trends_url=_env("TRENDS_URL", "https://trends.google.com/trending/rss"),
            quote_url=_env("QUOTE_URL", "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"),
            finance_symbols=_env_list("FINANCE_SYMBOLS", DEFAULT_FINANCE_SYMBOLS),
            primary_index=_env("PRIMARY_INDEX", "^IXIC"),
            collector_timeout=_env_int("COLLECTOR_TIMEOUT", 15),
            trends_retries=_env_int("TRENDS_RETRIES", 2),
            trends_retry_delay=_env_float("TRENDS_RETRY_DELAY", 3.0),
            language=_env("LANGUAGE", "en"),
            country=_env("COUNTRY", "US").upper(),
            market_timezone=_env("MARKET_TIMEZONE", "America/New_York"),
            daily_run_time=_env("DAILY_RUN_TIME", "23:00"),
            checkpoint_times=_env_list("CHECKPOINT_TIMES", ["23:05", "23:30", "23:50"]),
            manual_timeout_seconds=_env_float("MANUAL_TIMEOUT_SECONDS", 60.0),
            dev_mode=_env_bool("DEV_MODE", False),
            host=_env("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
            admin_ips=_env_list("ADMIN_IPS", ["127.0.0.1", "::1"]),
            trust_proxy=_env_bool("TRUST_PROXY", True),
            data_dir=Path(_env("DATA_DIR", "data")),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.llm_api_key:
            return "LLM_API_KEY environment variable is required"
        if not self.summary_model:
            return "SUMMARY_MODEL must not be empty"
        if not self.finance_symbols:
            return "No FINANCE_SYMBOLS configured"
        try:
            ZoneInfo(self.market_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return f"Invalid MARKET_TIMEZONE '{self.market_timezone}'"
        for value in [self.daily_run_time, *self.checkpoint_times]:
            try:
                parse_clock_time(value)
            except ValueError as e:
                return str(e)
        if self.manual_timeout_seconds <= 0:
            return "MANUAL_TIMEOUT_SECONDS must be positive"
        if self.collector_timeout <= 0:
            return "COLLECTOR_TIMEOUT must be positive"
        if self.trends_retries < 0:
            return "TRENDS_RETRIES must be non-negative"
        if self.max_tokens <= 0:
            return "MAX_TOKENS must be positive"
        if not 0 < self.port < 65536:
            return f"Invalid PORT {self.port}"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
