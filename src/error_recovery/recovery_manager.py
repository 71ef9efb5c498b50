"""
Recovery Manager

Single entry point for resilient execution in the chat client:
- Runs operations through a named recovery strategy
- Owns the circuit breakers protecting external dependencies
- Records every outcome in a bounded ledger
- Reports aggregated error statistics and breaker status
"""

import logging
import time
from typing import Any, Dict, List, Optional, Union

from monitoring.error_stats import ErrorStats, compute_error_stats

from .circuit_breaker import BreakerRegistry, CircuitBreaker
from .outcome_ledger import OutcomeLedger
from .schemas import BreakerStatus, CircuitBreakerOptions, OutcomeRecord, OutcomeType
from .settings import RecoverySettings
from .strategies import (
    Operation,
    Options,
    RecoveryStrategy,
    StrategyKind,
    StrategyRegistry,
    describe_operation,
)

logger = logging.getLogger(__name__)


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class RecoveryManager:
    """
    Facade over strategies, circuit breakers and the outcome ledger

    Each instance is an independent recovery domain; registries and the
    ledger can be injected for isolation.
    """

    def __init__(
        self,
        strategies: Optional[StrategyRegistry] = None,
        breakers: Optional[BreakerRegistry] = None,
        ledger: Optional[OutcomeLedger] = None,
        settings: Optional[RecoverySettings] = None,
    ):
        self.settings = settings or RecoverySettings()
        self.strategies = strategies if strategies is not None else StrategyRegistry.with_defaults()
        self.breakers = breakers if breakers is not None else BreakerRegistry()
        self.ledger = ledger if ledger is not None else OutcomeLedger(self.settings.ledger_capacity)

    # Strategies

    def register_strategy(self, name: Union[str, StrategyKind], strategy: RecoveryStrategy) -> None:
        """Register a custom recovery strategy"""
        self.strategies.register(name, strategy)

    def unregister_strategy(self, name: Union[str, StrategyKind]) -> None:
        self.strategies.unregister(name)

    async def execute_with_strategy(
        self,
        operation: Operation,
        strategy_name: Union[str, StrategyKind, None] = None,
        options: Options = None,
    ) -> Any:
        """
        Execute an operation under a recovery strategy and record the outcome

        Args:
            operation: Zero-argument callable, sync or async
            strategy_name: Registered strategy name; defaults to the configured default strategy
            options: Strategy options as a dict or options model

        Returns:
            The operation's (or fallback's) value

        Raises:
            StrategyNotRegisteredError: if no strategy is registered under the name
            Exception: the operation's own error, unchanged, once the strategy gives up
        """
        strategy_name = strategy_name or self.settings.default_strategy
        strategy = self.strategies.get(strategy_name)
        strategy_label = strategy_name.value if isinstance(strategy_name, StrategyKind) else strategy_name
        function_name = describe_operation(operation)
        start = time.perf_counter()

        try:
            result = await strategy.execute(operation, options)
        except Exception as e:
            self._record(function_name, strategy_label, OutcomeType.ERROR, start, _error_message(e))
            raise

        self._record(function_name, strategy_label, OutcomeType.SUCCESS, start)
        return result

    # Circuit breakers

    def create_circuit_breaker(
        self,
        name: str,
        options: Union[None, Dict[str, Any], CircuitBreakerOptions] = None,
    ) -> CircuitBreaker:
        """Create (or replace) the circuit breaker for a dependency"""
        breaker = self.breakers.create(name, options, **self.settings.breaker_defaults())
        logger.info(
            f"Created circuit breaker {name} "
            f"(failure_threshold={breaker.config.failure_threshold}, "
            f"success_threshold={breaker.config.success_threshold}, "
            f"cooldown_ms={breaker.config.cooldown_ms})"
        )
        return breaker

    def get_circuit_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self.breakers.get(name)

    def get_circuit_breaker_status(self, name: str) -> Optional[BreakerStatus]:
        """Current status of a breaker, or None if no breaker has that name"""
        breaker = self.breakers.get(name)
        if breaker is None:
            return None
        return breaker.get_status()

    async def execute_with_breaker(self, name: str, operation: Operation) -> Any:
        """
        Run an operation through a named breaker and record the outcome

        The breaker is created with default options if it does not exist yet.
        Rejections by an open breaker are recorded as errors like any other.
        """
        breaker = self.breakers.get(name) or self.create_circuit_breaker(name)
        function_name = describe_operation(operation)
        strategy_label = f"circuit-breaker:{name}"
        start = time.perf_counter()

        try:
            result = await breaker.execute(operation)
        except Exception as e:
            self._record(function_name, strategy_label, OutcomeType.ERROR, start, _error_message(e))
            raise

        self._record(function_name, strategy_label, OutcomeType.SUCCESS, start)
        return result

    # Outcome ledger

    def _record(
        self,
        function_name: str,
        strategy_name: str,
        outcome: OutcomeType,
        start: float,
        error_message: Optional[str] = None,
    ) -> None:
        """Append to the ledger; failures here are logged and never reach the caller"""
        duration_ms = (time.perf_counter() - start) * 1000.0
        try:
            self.ledger.record(
                function_name=function_name,
                strategy_name=strategy_name,
                outcome=outcome,
                duration_ms=duration_ms,
                error_message=error_message,
            )
        except Exception as e:
            logger.error(f"Failed to record outcome for {function_name}: {e}")

    def get_error_stats(self) -> ErrorStats:
        """Recompute error statistics from the ledger and every registered breaker"""
        return compute_error_stats(self.ledger.entries(), self.breakers.statuses())

    def get_error_log(self, limit: Optional[int] = None) -> List[OutcomeRecord]:
        """Most recent ledger entries, newest first"""
        if limit is None:
            limit = self.settings.default_error_log_limit
        return self.ledger.recent(limit)

    def clear_error_log(self) -> None:
        """Empty the ledger; circuit breakers keep their state"""
        self.ledger.clear()

    def get_recovery_status(self) -> Dict[str, Any]:
        """Serializable summary for CLI or metrics reporting"""
        return {
            "statistics": self.get_error_stats().to_dict(),
            "strategies": self.strategies.names(),
            "recent_outcomes": [
                entry.model_dump(mode="json")
                for entry in self.get_error_log(10)
            ],
        }


# Global recovery manager instance
recovery_manager = RecoveryManager()
