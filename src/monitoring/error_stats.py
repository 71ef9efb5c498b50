"""
Error statistics derived from the outcome ledger

Statistics are never stored: every call recomputes them from the current
ledger contents and the current breaker statuses, so evicted entries drop out
of the totals automatically.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

if TYPE_CHECKING:
    from error_recovery.schemas import BreakerStatus, OutcomeRecord

logger = logging.getLogger(__name__)

SUCCESS = "success"


@dataclass
class FunctionErrorBreakdown:
    """Errors recorded for one function"""
    count: int = 0
    strategies: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class ErrorStats:
    """Aggregated view over the outcome ledger and registered breakers"""
    total_errors: int = 0
    total_successes: int = 0
    success_rate: float = 100.0
    errors_by_function: Dict[str, FunctionErrorBreakdown] = field(default_factory=dict)
    circuit_breakers: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.total_errors + self.total_successes

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form using the chat client's reporting keys"""
        return {
            "totalErrors": self.total_errors,
            "totalSuccesses": self.total_successes,
            "successRate": self.success_rate,
            "errorsByFunction": {
                name: {"count": breakdown.count, "strategies": dict(breakdown.strategies)}
                for name, breakdown in self.errors_by_function.items()
            },
            "circuitBreakers": list(self.circuit_breakers),
        }


def compute_error_stats(
    entries: Iterable["OutcomeRecord"],
    breaker_statuses: Iterable["BreakerStatus"],
) -> ErrorStats:
    """Build ErrorStats from ledger entries and breaker status snapshots"""
    stats = ErrorStats()

    for entry in entries:
        if entry.outcome == SUCCESS:
            stats.total_successes += 1
            continue

        stats.total_errors += 1
        breakdown = stats.errors_by_function.setdefault(entry.function_name, FunctionErrorBreakdown())
        breakdown.count += 1
        breakdown.strategies[entry.strategy_name] += 1

    if stats.total > 0:
        stats.success_rate = stats.total_successes / stats.total * 100

    stats.circuit_breakers = [status.model_dump() for status in breaker_statuses]

    logger.debug(
        f"Computed error stats: {stats.total_successes} successes, {stats.total_errors} errors"
    )
    return stats
