"""
Circuit breakers for protected dependencies

One breaker guards one dependency (the chat-completion provider, the response
cache, ...). A breaker trips to OPEN after consecutive failures, rejects calls
without invoking the operation until its cooldown elapses, then lets trial
calls through in HALF_OPEN before closing again.

The OPEN -> HALF_OPEN transition is evaluated lazily on the next call; there
is no background timer.
"""

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Union

from .exceptions import BreakerOpenError
from .schemas import BreakerStatus, CircuitBreakerOptions, StateChangeEvent
from .strategies import Operation, describe_operation, invoke

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, rejecting requests
    HALF_OPEN = "half_open"  # Testing if dependency recovered


class CircuitBreaker:
    """Three-state circuit breaker guarding a single dependency"""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerOptions] = None,
        clock: Optional[Clock] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerOptions()
        self._clock = clock or time.monotonic
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        # Bumped on every state change; calls only count against the state they were admitted in
        self.generation = 0
        self.lock = asyncio.Lock()
        self._hook_tasks: Set[asyncio.Future] = set()

    @property
    def cooldown_seconds(self) -> float:
        return self.config.cooldown_ms / 1000.0

    async def execute(self, operation: Operation) -> Any:
        """Execute operation through the circuit breaker"""
        async with self.lock:
            if self.state == CircuitState.OPEN:
                elapsed = self._clock() - self.opened_at
                if elapsed < self.cooldown_seconds:
                    retry_after_ms = (self.cooldown_seconds - elapsed) * 1000.0
                    logger.warning(
                        f"Circuit breaker {self.name} is OPEN - rejecting {describe_operation(operation)}"
                    )
                    raise BreakerOpenError(self.name, retry_after_ms=retry_after_ms)
                self.success_count = 0
                self._transition(CircuitState.HALF_OPEN, notify=False)
            admitted = self.generation

        try:
            result = await invoke(operation)
        except Exception:
            await self._record_failure(admitted)
            raise

        await self._record_success(admitted)
        return result

    async def _record_success(self, admitted: int) -> None:
        """Record a successful operation"""
        async with self.lock:
            if admitted != self.generation:
                logger.debug(f"Circuit breaker {self.name} ignoring success from an earlier state")
                return
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.failure_count = 0
                    self.success_count = 0
                    self._transition(CircuitState.CLOSED)
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def _record_failure(self, admitted: int) -> None:
        """Record a failed operation"""
        async with self.lock:
            if admitted != self.generation:
                logger.debug(f"Circuit breaker {self.name} ignoring failure from an earlier state")
                return
            if self.state == CircuitState.HALF_OPEN:
                self._trip()
            elif self.state == CircuitState.CLOSED:
                self.failure_count += 1
                if self.failure_count >= self.config.failure_threshold:
                    self._trip()

    def _trip(self) -> None:
        self.opened_at = self._clock()
        self.success_count = 0
        logger.warning(
            f"Circuit breaker {self.name} transitioning to OPEN after {self.failure_count} failures"
        )
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState, notify: bool = True) -> None:
        previous = self.state
        self.state = new_state
        self.generation += 1
        if new_state != CircuitState.OPEN:
            logger.info(f"Circuit breaker {self.name} transitioning to {new_state.name}")
        if notify:
            self._notify(previous, new_state)

    def _notify(self, previous: CircuitState, new_state: CircuitState) -> None:
        """Deliver a state change to the hook; hook failures never reach the caller"""
        hook = self.config.on_state_change
        if hook is None:
            return

        event = StateChangeEvent(name=self.name, state=new_state.value, previous_state=previous.value)
        try:
            result = hook(event)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._hook_tasks.add(task)
                task.add_done_callback(self._hook_done)
        except Exception as e:
            logger.error(f"State change hook for circuit breaker {self.name} failed: {e}")

    def _hook_done(self, future: asyncio.Future) -> None:
        self._hook_tasks.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                f"State change hook for circuit breaker {self.name} failed: {future.exception()}"
            )

    def reset(self) -> None:
        """Force the breaker back to CLOSED and clear its counters"""
        previous = self.state
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None
        self.generation += 1
        if previous != CircuitState.CLOSED:
            logger.info(f"Circuit breaker {self.name} reset to CLOSED")
            self._notify(previous, CircuitState.CLOSED)

    def get_status(self) -> BreakerStatus:
        """Get current circuit breaker state"""
        return BreakerStatus(
            name=self.name,
            state=self.state.value,
            failure_count=self.failure_count,
            success_count=self.success_count,
            failure_threshold=self.config.failure_threshold,
            success_threshold=self.config.success_threshold,
            cooldown_ms=self.config.cooldown_ms,
            opened_at=self.opened_at,
        )


class BreakerRegistry:
    """Owns the named circuit breakers of one recovery domain"""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def create(
        self,
        name: str,
        options: Union[None, Dict[str, Any], CircuitBreakerOptions] = None,
        **defaults: Any,
    ) -> CircuitBreaker:
        """
        Create a breaker, replacing any existing breaker registered under ``name``

        Args:
            name: Dependency name
            options: Breaker options as a dict or CircuitBreakerOptions
            **defaults: Values used for options the caller left out

        Returns:
            The new CircuitBreaker
        """
        if isinstance(options, CircuitBreakerOptions):
            config = options
        else:
            config = CircuitBreakerOptions.from_mapping(options or {}, **defaults)

        if name in self._breakers:
            logger.info(f"Replacing circuit breaker {name}")
        breaker = CircuitBreaker(name, config, clock=self._clock)
        self._breakers[name] = breaker
        return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def remove(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.pop(name, None)

    def statuses(self) -> List[BreakerStatus]:
        return [breaker.get_status() for breaker in self._breakers.values()]

    def __iter__(self) -> Iterator[CircuitBreaker]:
        return iter(list(self._breakers.values()))

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, name: str) -> bool:
        return name in self._breakers
