"""
Monitoring package for the chat client's recovery layer

Provides error statistics computed on demand from the outcome ledger and
circuit breaker status snapshots.
"""

from .error_stats import ErrorStats, FunctionErrorBreakdown, compute_error_stats

__all__ = ["ErrorStats", "FunctionErrorBreakdown", "compute_error_stats"]
