"""Configuration data models using Pydantic."""

from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..resilience import RetryConfig


class RetryConfigModel(BaseModel):
    """Retry logic configuration."""
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total attempts per operation, including the first"
    )
    base_delay: float = Field(
        default=0.1,
        gt=0.0,
        le=60.0,
        description="Delay in seconds before the first retry"
    )
    max_delay: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Maximum delay in seconds between retries"
    )
    backoff_multiplier: float = Field(
        default=2.0,
        gt=1.0,
        le=10.0,
        description="Exponential backoff multiplier"
    )
    jitter_fraction: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Jitter band (0.1 = +/-5% randomness)"
    )

    @model_validator(mode="after")
    def validate_delays(self):
        """Ensure the cap is not below the first delay."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class CircuitBreakerConfigModel(BaseModel):
    """Circuit breaker configuration."""
    enabled: bool = Field(
        default=True,
        description="Fail fast after sustained failures"
    )
    failure_threshold: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Consecutive failures before opening circuit"
    )
    success_threshold: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Successes to close circuit from half-open"
    )
    recovery_timeout: float = Field(
        default=60.0,
        ge=0.0,
        le=3600.0,
        description="Seconds after the last failure before probing"
    )


class RateLimitConfigModel(BaseModel):
    """Token bucket configuration (provider quota)."""
    requests: int = Field(
        default=200,
        ge=1,
        description="Requests allowed per period"
    )
    period: float = Field(
        default=60.0,
        gt=0.0,
        description="Quota window in seconds"
    )
    max_wait: float = Field(
        default=5.0,
        ge=0.0,
        le=60.0,
        description="Longest rate limit wait worth sleeping for"
    )


class TransportConfig(BaseModel):
    """HTTP transport configuration."""
    base_url: str = Field(
        default="https://paper-api.alpaca.markets",
        description="Trading API base URL"
    )
    data_url: str = Field(
        default="https://data.alpaca.markets",
        description="Market data API base URL"
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Per-request timeout in seconds"
    )
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (e.g. API key headers)"
    )

    @field_validator('base_url', 'data_url')
    @classmethod
    def validate_url(cls, v):
        """Ensure URLs are absolute http(s) URLs."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")


class WorkersConfig(BaseModel):
    """Worker group configuration."""
    count: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Number of concurrent workers, each with its own transport"
    )
    max_transports: Optional[int] = Field(
        default=None,
        ge=1,
        description="Upper bound on simultaneously leased transports"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    file: Optional[str] = Field(
        default=None,
        description="JSON log file path (disabled when unset)"
    )
    console: bool = Field(
        default=True,
        description="Enable console logging"
    )
    rotation: str = Field(
        default="daily",
        description="Log rotation strategy (daily, none)"
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Number of days to retain logs"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v

    @field_validator('rotation')
    @classmethod
    def validate_rotation(cls, v):
        """Ensure rotation strategy is valid."""
        valid_strategies = ["daily", "none"]
        v = v.lower()
        if v not in valid_strategies:
            raise ValueError(f"rotation must be one of {valid_strategies}")
        return v


class TradewireConfig(BaseModel):
    """Complete tradewire configuration."""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    retry: RetryConfigModel = Field(default_factory=RetryConfigModel)
    circuit_breaker: CircuitBreakerConfigModel = Field(default_factory=CircuitBreakerConfigModel)
    rate_limit: RateLimitConfigModel = Field(default_factory=RateLimitConfigModel)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    workers: WorkersConfig = Field(default_factory=WorkersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def to_retry_config(self) -> RetryConfig:
        """Build the engine's immutable RetryConfig from the loaded sections."""
        return RetryConfig(
            max_attempts=self.retry.max_attempts,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
            backoff_multiplier=self.retry.backoff_multiplier,
            jitter_fraction=self.retry.jitter_fraction,
            circuit_enabled=self.circuit_breaker.enabled,
            circuit_failure_threshold=self.circuit_breaker.failure_threshold,
            circuit_recovery_timeout=self.circuit_breaker.recovery_timeout,
            circuit_success_threshold=self.circuit_breaker.success_threshold,
            rate_limit_requests=self.rate_limit.requests,
            rate_limit_period=self.rate_limit.period,
            rate_limit_max_wait=self.rate_limit.max_wait,
        )

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        import yaml
        return yaml.dump(self.model_dump(), default_flow_style=False, sort_keys=False)
