"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration_ms, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _validated_duration(value: str, min_ms: int, max_ms: int, label: str) -> str:
    try:
        duration_ms = parse_duration_ms(value)
        validate_duration_range(duration_ms, min_ms=min_ms, max_ms=max_ms, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class MatchingConfig(BaseModel):
    """Keyword matching options applied to inbound webhook events."""

    cache_ttl: str = Field("5m", description="How long a post's rule list stays cached")
    enable_fuzzy_matching: bool = Field(True, description="Allow edit-distance matches")
    fuzzy_threshold: float = Field(
        0.8, ge=0.0, le=1.0, description="Minimum similarity for a fuzzy match"
    )
    enable_word_boundary: bool = Field(
        True, description="CONTAINS rules must match whole words"
    )
    max_matches: int = Field(3, ge=1, le=50, description="Matches kept per message")
    min_confidence: float = Field(
        0.7, ge=0.0, le=1.0, description="Matches below this confidence are dropped"
    )
    priority_weighting: bool = Field(
        True, description="Sort matches by rule priority before confidence"
    )

    cache_ttl_seconds: Optional[float] = None

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: str) -> str:
        return _validated_duration(v, min_ms=1000, max_ms=86_400_000, label="cache_ttl")

    @model_validator(mode="after")
    def compute_ttl(self):
        self.cache_ttl_seconds = parse_duration_ms(self.cache_ttl) / 1000.0
        return self


class QueueConfig(BaseModel):
    """Retry, timeout and priority policy for queued webhook events."""

    max_retries: int = Field(3, ge=0, le=10, description="Retries after the first attempt")
    retry_delay: str = Field("3s", description="Fixed delay before a retry is requeued")
    timeout: str = Field("30s", description="Per-attempt processing timeout")
    comment_priority: int = Field(1, ge=0, le=100, description="Priority of comment events")
    message_priority: int = Field(2, ge=0, le=100, description="Priority of DM events")
    history_limit: int = Field(
        1000, ge=0, description="Terminal items kept in memory for status polling"
    )

    retry_delay_ms: Optional[int] = None
    timeout_ms: Optional[int] = None

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: str) -> str:
        return _validated_duration(v, min_ms=1, max_ms=3_600_000, label="retry_delay")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        return _validated_duration(v, min_ms=10, max_ms=600_000, label="timeout")

    @model_validator(mode="after")
    def compute_durations(self):
        self.retry_delay_ms = parse_duration_ms(self.retry_delay)
        self.timeout_ms = parse_duration_ms(self.timeout)
        return self


class ResponderConfig(BaseModel):
    """Settings for the simulated delivery channel used by the CLI."""

    dm_success_rate: float = Field(0.85, ge=0.0, le=1.0)
    comment_success_rate: float = Field(0.95, ge=0.0, le=1.0)
    min_latency_ms: int = Field(500, ge=0)
    max_latency_ms: int = Field(1500, ge=0)
    seed: Optional[int] = Field(None, description="Random seed for reproducible runs")

    @model_validator(mode="after")
    def validate_latency_range(self):
        if self.max_latency_ms < self.min_latency_ms:
            raise ValueError("max_latency_ms must be greater than or equal to min_latency_ms")
        return self


class MaintenanceConfig(BaseModel):
    """Periodic queue sweeping and statistics logging."""

    enabled: bool = Field(True, description="Run the maintenance job")
    interval: str = Field("1m", description="Interval between maintenance runs")

    interval_seconds: Optional[float] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        return _validated_duration(v, min_ms=1000, max_ms=86_400_000, label="interval")

    @model_validator(mode="after")
    def compute_interval(self):
        self.interval_seconds = parse_duration_ms(self.interval) / 1000.0
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the auto-responder."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    responder: ResponderConfig = Field(default_factory=ResponderConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

