"""Configuration management with environment variable support."""

import os
import secrets
from dataclasses import dataclass, field


def _parse_cors_origins() -> list[str]:
    """Parse CORS_ORIGINS environment variable."""
    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [o.strip() for o in origins.split(",") if o.strip()]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class CORSConfig:
    """CORS configuration."""

    allowed_origins: list[str] = field(default_factory=_parse_cors_origins)
    allow_credentials: bool = True
    allow_methods: list[str] = field(default_factory=lambda: ["*"])
    allow_headers: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    enabled: bool = field(default_factory=lambda: _env_flag("RATE_LIMIT_ENABLED", "true"))
    requests_per_minute: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT_RPM", "120"))
    )


@dataclass(frozen=True)
class SecurityConfig:
    """Security configuration."""

    secret_key: str = field(
        default_factory=lambda: os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    )


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection configuration."""

    enabled: bool = field(default_factory=lambda: _env_flag("REDIS_ENABLED", "true"))
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    password: str | None = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))

    @property
    def url(self) -> str:
        """Build Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class GameConfig:
    """Table configuration."""

    starting_chips: int = field(
        default_factory=lambda: int(os.getenv("STARTING_CHIPS", "500"))
    )
    dealer_draw_delay: float = field(
        default_factory=lambda: float(os.getenv("DEALER_DRAW_DELAY", "0.6"))
    )
    history_limit: int = 50


@dataclass(frozen=True)
class OutboxConfig:
    """Retry policy for persisting settled rounds."""

    max_attempts: int = field(
        default_factory=lambda: int(os.getenv("OUTBOX_MAX_ATTEMPTS", "3"))
    )
    base_delay: float = field(
        default_factory=lambda: float(os.getenv("OUTBOX_BASE_DELAY", "0.5"))
    )


@dataclass(frozen=True)
class AdviceConfig:
    """Strategy advice endpoint configuration."""

    api_key: str | None = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    endpoint: str = field(
        default_factory=lambda: os.getenv(
            "GEMINI_ENDPOINT",
            "https://generativelanguage.googleapis.com/v1/models/gemini-2.5-flash:generateContent",
        )
    )
    timeout: float = field(
        default_factory=lambda: float(os.getenv("ADVICE_TIMEOUT", "15"))
    )
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024


@dataclass(frozen=True)
class LogConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    debug: bool = field(default_factory=lambda: _env_flag("DEBUG", "false"))
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    session_ttl: int = 3600  # Session timeout in seconds

    redis: RedisConfig = field(default_factory=RedisConfig)
    game: GameConfig = field(default_factory=GameConfig)
    outbox: OutboxConfig = field(default_factory=OutboxConfig)
    advice: AdviceConfig = field(default_factory=AdviceConfig)
    log: LogConfig = field(default_factory=LogConfig)
    cors: CORSConfig = field(default_factory=CORSConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)


# Global configuration instance
config = AppConfig()
