"""
Exception types raised by the recovery subsystem.

Operation failures are never wrapped: whatever the wrapped operation raises
reaches the caller unchanged. The types below are the only errors the
subsystem synthesizes itself.
"""

from typing import Optional


class RecoveryError(Exception):
    """Base class for errors synthesized by the recovery subsystem"""


class StrategyNotRegisteredError(RecoveryError, KeyError):
    """Raised when a strategy name has no registered implementation"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Strategy '{name}' not registered")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class BreakerOpenError(RecoveryError):
    """Raised instead of invoking an operation while its breaker is open"""

    def __init__(self, name: str, retry_after_ms: Optional[float] = None):
        self.name = name
        self.retry_after_ms = retry_after_ms
        super().__init__(f"Circuit breaker '{name}' is OPEN")


class StrategyTimeoutError(RecoveryError, TimeoutError):
    """Raised when an operation loses the race against its deadline"""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        shown = int(timeout_ms) if float(timeout_ms).is_integer() else timeout_ms
        super().__init__(f"Timeout after {shown}ms")


class TransientError(Exception):
    """
    Marker for failures the caller considers retryable.

    The subsystem never inspects this type; choosing a retrying strategy is
    how a caller says an operation may be retried.
    """
