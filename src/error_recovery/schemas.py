"""
Option and status schemas for the recovery subsystem

Strategy and circuit breaker options arrive from callers (and from the chat
client's JSON configuration) as plain dicts using either snake_case or the
camelCase keys of the configuration file. They are validated here before any
strategy or breaker sees them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import RecoveryError


class OutcomeType(str, Enum):
    """Result of a single recorded invocation"""
    SUCCESS = "success"
    ERROR = "error"


class StrategyOptions(BaseModel):
    """Base for per-call strategy options"""
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )


class ExponentialBackoffOptions(StrategyOptions):
    """Options for exponential backoff retries"""
    max_retries: int = Field(default=3, ge=0, alias="maxRetries")
    initial_delay_ms: float = Field(default=100, ge=0, alias="initialDelay")
    jitter_ratio: float = Field(default=0.1, ge=0, le=1, alias="jitterRatio")


class LinearBackoffOptions(StrategyOptions):
    """Options for linear backoff retries"""
    max_retries: int = Field(default=3, ge=0, alias="maxRetries")
    delay_ms: float = Field(default=1000, ge=0, alias="delayMs")


class FallbackOptions(StrategyOptions):
    """Options for the fallback strategy; ``fallback`` may be a value or a callable"""
    fallback: Any = None


class TimeoutOptions(StrategyOptions):
    """Options for racing an operation against a deadline"""
    timeout_ms: float = Field(default=5000, gt=0, alias="timeoutMs")
    cancel_on_timeout: bool = Field(default=True, alias="cancelOnTimeout")


class CircuitBreakerOptions(BaseModel):
    """Configuration for a single circuit breaker"""
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    failure_threshold: int = Field(default=5, ge=1, alias="failureThreshold")
    success_threshold: int = Field(default=2, ge=1, alias="successThreshold")
    cooldown_ms: float = Field(default=60000, ge=0, alias="cooldownMs")
    on_state_change: Optional[Callable[..., Any]] = Field(default=None, alias="onStateChange")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], **defaults: Any) -> "CircuitBreakerOptions":
        """Build options from a dict, accepting the legacy ``timeout`` key for the cooldown"""
        data = dict(data)
        for name, info in cls.model_fields.items():
            if info.alias and info.alias in data:
                data[name] = data.pop(info.alias)
        if "timeout" in data and "cooldown_ms" not in data:
            data["cooldown_ms"] = data.pop("timeout")
        merged = {**defaults, **data}
        return cls.model_validate(merged)


class BreakerStatus(BaseModel):
    """Point-in-time snapshot of a circuit breaker"""
    name: str
    state: str
    failure_count: int
    success_count: int
    failure_threshold: int
    success_threshold: int
    cooldown_ms: float
    opened_at: Optional[float] = None


class StateChangeEvent(BaseModel):
    """Payload delivered to a breaker's state-change hook"""
    name: str
    state: str
    previous_state: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OutcomeRecord(BaseModel):
    """A single immutable entry in the outcome ledger"""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    function_name: str
    strategy_name: str
    outcome: OutcomeType
    error_message: Optional[str] = None
    duration_ms: float = 0.0

    @field_validator("duration_ms")
    @classmethod
    def clamp_duration(cls, v):
        return max(0.0, v)


OptionsT = TypeVar("OptionsT", bound=BaseModel)


def parse_options(
    model: Type[OptionsT],
    options: Union[None, Dict[str, Any], BaseModel],
) -> OptionsT:
    """
    Coerce caller-supplied options into ``model``

    Args:
        model: Options model to validate against
        options: None, a dict, or an already-built model instance

    Returns:
        A validated instance of ``model``
    """
    if options is None:
        return model()
    if isinstance(options, model):
        return options
    if isinstance(options, BaseModel):
        options = options.model_dump(exclude_unset=True)
    if not isinstance(options, dict):
        raise RecoveryError(
            f"Options for {model.__name__} must be a dict or {model.__name__}, got {type(options).__name__}"
        )
    return model.model_validate(options)
