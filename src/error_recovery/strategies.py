"""
Recovery strategies

Each strategy wraps a zero-argument operation with one policy:
- Exponential backoff retries with jitter
- Linear backoff retries
- Fallback to a degraded value
- Deadline race with optional cancellation

Strategies hold no per-call state; everything an invocation needs lives in
the options it is given and in local variables.
"""

import asyncio
import functools
import inspect
import logging
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import BaseModel

from .exceptions import StrategyNotRegisteredError, StrategyTimeoutError
from .schemas import (
    ExponentialBackoffOptions,
    FallbackOptions,
    LinearBackoffOptions,
    TimeoutOptions,
    parse_options,
)

logger = logging.getLogger(__name__)

Operation = Callable[[], Any]
Options = Union[None, Dict[str, Any], BaseModel]
SleepFunc = Callable[[float], Awaitable[None]]


class StrategyKind(str, Enum):
    """Built-in strategy names"""
    EXPONENTIAL_BACKOFF = "exponential-backoff"
    LINEAR_BACKOFF = "linear-backoff"
    FALLBACK = "fallback"
    TIMEOUT = "timeout"


async def invoke(operation: Operation) -> Any:
    """Call an operation and await its result if it produced an awaitable"""
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


def describe_operation(operation: Callable) -> str:
    """Best-effort human name for an operation, used in logs and the ledger"""
    target = operation
    while isinstance(target, functools.partial):
        target = target.func
    name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    return name or "anonymous"


class RecoveryStrategy(ABC):
    """Base class for all recovery strategies"""

    name: str = "custom"

    @abstractmethod
    async def execute(self, operation: Operation, options: Options = None) -> Any:
        """Run ``operation`` under this strategy's policy"""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class _RetryStrategy(RecoveryStrategy):
    """Shared retry loop for the backoff strategies"""

    def __init__(self, sleep: Optional[SleepFunc] = None):
        self._sleep = sleep or asyncio.sleep

    @abstractmethod
    def delay_seconds(self, retry: int, options: Any) -> float:
        """Delay before 1-indexed retry ``retry``"""

    async def _run(self, operation: Operation, options: Any) -> Any:
        op_name = describe_operation(operation)
        max_attempts = options.max_retries + 1
        last_exception: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                logger.debug(f"Executing {op_name}, attempt {attempt}/{max_attempts}")
                result = await invoke(operation)
                if attempt > 1:
                    logger.info(f"Operation {op_name} succeeded after {attempt} attempts")
                return result
            except Exception as e:
                last_exception = e
                if attempt == max_attempts:
                    break

                delay = self.delay_seconds(attempt, options)
                logger.warning(
                    f"Operation {op_name} failed (attempt {attempt}), retrying in {delay:.3f}s: {e}"
                )
                await self._sleep(delay)

        logger.error(f"Operation {op_name} failed after {max_attempts} attempts")
        raise last_exception


class ExponentialBackoffStrategy(_RetryStrategy):
    """Retry with exponentially growing delays plus up to 10% jitter"""

    name = StrategyKind.EXPONENTIAL_BACKOFF.value

    def __init__(self, sleep: Optional[SleepFunc] = None, rng: Optional[random.Random] = None):
        super().__init__(sleep)
        self._rng = rng or random.Random()

    def base_delay_ms(self, retry: int, options: ExponentialBackoffOptions) -> float:
        return options.initial_delay_ms * (2 ** (retry - 1))

    def delay_seconds(self, retry: int, options: ExponentialBackoffOptions) -> float:
        delay = self.base_delay_ms(retry, options)
        # Jitter to prevent thundering herd
        jitter = delay * options.jitter_ratio * self._rng.random()
        return (delay + jitter) / 1000.0

    async def execute(self, operation: Operation, options: Options = None) -> Any:
        return await self._run(operation, parse_options(ExponentialBackoffOptions, options))


class LinearBackoffStrategy(_RetryStrategy):
    """Retry with delays that grow by a fixed step"""

    name = StrategyKind.LINEAR_BACKOFF.value

    def delay_seconds(self, retry: int, options: LinearBackoffOptions) -> float:
        return options.delay_ms * retry / 1000.0

    async def execute(self, operation: Operation, options: Options = None) -> Any:
        return await self._run(operation, parse_options(LinearBackoffOptions, options))


class FallbackStrategy(RecoveryStrategy):
    """Single attempt that degrades to a fallback value instead of failing"""

    name = StrategyKind.FALLBACK.value

    async def execute(self, operation: Operation, options: Options = None) -> Any:
        opts = parse_options(FallbackOptions, options)
        try:
            return await invoke(operation)
        except Exception as e:
            fallback = opts.fallback
            logger.warning(f"Operation {describe_operation(operation)} failed, using fallback: {e}")
            if callable(fallback):
                return await invoke(lambda: fallback(e))
            return fallback


class TimeoutStrategy(RecoveryStrategy):
    """
    Race an operation against a deadline

    When the deadline wins the operation task is cancelled unless
    ``cancel_on_timeout`` is False, in which case it keeps running and its
    eventual result or exception is discarded.
    """

    name = StrategyKind.TIMEOUT.value

    def __init__(self):
        # Abandoned tasks are referenced until they finish so they are not garbage collected mid-flight
        self._abandoned: Set[asyncio.Task] = set()

    async def execute(self, operation: Operation, options: Options = None) -> Any:
        opts = parse_options(TimeoutOptions, options)
        task = asyncio.ensure_future(invoke(operation))

        try:
            done, _ = await asyncio.wait({task}, timeout=opts.timeout_ms / 1000.0)
        except asyncio.CancelledError:
            self._abandon(task)
            task.cancel()
            raise

        if task in done:
            return task.result()

        op_name = describe_operation(operation)
        # The task may still finish on its own before the cancellation lands
        self._abandon(task)
        if opts.cancel_on_timeout:
            task.cancel()
            logger.warning(f"Operation {op_name} timed out after {opts.timeout_ms}ms, cancelled")
        else:
            logger.warning(f"Operation {op_name} timed out after {opts.timeout_ms}ms, left running")
        raise StrategyTimeoutError(opts.timeout_ms)

    def _abandon(self, task: asyncio.Task) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._discard)

    def _discard(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Discarded late failure from timed out operation: {task.exception()}")

    @property
    def pending(self) -> int:
        """Number of timed out operations still running in the background"""
        return len(self._abandoned)


class StrategyRegistry:
    """Name-keyed lookup of recovery strategies"""

    def __init__(self):
        self._strategies: Dict[str, RecoveryStrategy] = {}

    @classmethod
    def with_defaults(cls, sleep: Optional[SleepFunc] = None) -> "StrategyRegistry":
        """Registry pre-populated with the built-in strategies"""
        registry = cls()
        registry.register(StrategyKind.EXPONENTIAL_BACKOFF, ExponentialBackoffStrategy(sleep=sleep))
        registry.register(StrategyKind.LINEAR_BACKOFF, LinearBackoffStrategy(sleep=sleep))
        registry.register(StrategyKind.FALLBACK, FallbackStrategy())
        registry.register(StrategyKind.TIMEOUT, TimeoutStrategy())
        return registry

    @staticmethod
    def _key(name: Union[str, StrategyKind]) -> str:
        return name.value if isinstance(name, StrategyKind) else str(name)

    def register(self, name: Union[str, StrategyKind], strategy: RecoveryStrategy) -> None:
        """Register (or replace) a strategy under ``name``"""
        if not hasattr(strategy, "execute"):
            raise TypeError(f"Strategy '{self._key(name)}' must define execute()")
        self._strategies[self._key(name)] = strategy
        logger.debug(f"Registered recovery strategy {self._key(name)}")

    def unregister(self, name: Union[str, StrategyKind]) -> None:
        self._strategies.pop(self._key(name), None)

    def get(self, name: Union[str, StrategyKind]) -> RecoveryStrategy:
        key = self._key(name)
        try:
            return self._strategies[key]
        except KeyError:
            raise StrategyNotRegisteredError(key) from None

    def names(self) -> List[str]:
        return list(self._strategies)

    def __contains__(self, name: Union[str, StrategyKind]) -> bool:
        return self._key(name) in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)
