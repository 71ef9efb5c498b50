"""
Error Recovery Module

Provides the resilience layer of the chat client:
- Pluggable retry strategies (exponential and linear backoff, fallback, timeout)
- Circuit breakers to stop hammering a failing dependency
- A bounded ledger of every recovery outcome
- Aggregated error statistics for reporting
"""

from .circuit_breaker import BreakerRegistry, CircuitBreaker, CircuitState
from .exceptions import (
    BreakerOpenError,
    RecoveryError,
    StrategyNotRegisteredError,
    StrategyTimeoutError,
    TransientError,
)
from .outcome_ledger import OutcomeLedger
from .recovery_manager import RecoveryManager, recovery_manager
from .schemas import (
    BreakerStatus,
    CircuitBreakerOptions,
    ExponentialBackoffOptions,
    FallbackOptions,
    LinearBackoffOptions,
    OutcomeRecord,
    OutcomeType,
    StateChangeEvent,
    TimeoutOptions,
)
from .settings import RecoverySettings, configure_logging
from .strategies import (
    ExponentialBackoffStrategy,
    FallbackStrategy,
    LinearBackoffStrategy,
    RecoveryStrategy,
    StrategyKind,
    StrategyRegistry,
    TimeoutStrategy,
)

__all__ = [
    'recovery_manager',
    'RecoveryManager',
    'RecoverySettings',
    'configure_logging',
    'RecoveryStrategy',
    'StrategyKind',
    'StrategyRegistry',
    'ExponentialBackoffStrategy',
    'LinearBackoffStrategy',
    'FallbackStrategy',
    'TimeoutStrategy',
    'CircuitBreaker',
    'CircuitState',
    'BreakerRegistry',
    'OutcomeLedger',
    'OutcomeRecord',
    'OutcomeType',
    'BreakerStatus',
    'StateChangeEvent',
    'CircuitBreakerOptions',
    'ExponentialBackoffOptions',
    'LinearBackoffOptions',
    'FallbackOptions',
    'TimeoutOptions',
    'RecoveryError',
    'BreakerOpenError',
    'StrategyNotRegisteredError',
    'StrategyTimeoutError',
    'TransientError',
]
