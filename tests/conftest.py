"""
Shared fixtures for the recovery test suite.

Time is faked throughout: breakers read a manual clock and retry strategies
record their delays instead of sleeping, so nothing here waits on real timers
except the timeout race tests.
"""

import pytest

from error_recovery import (
    BreakerRegistry,
    OutcomeLedger,
    RecoveryManager,
    RecoverySettings,
    StrategyRegistry,
)


class FakeClock:
    """Manually advanced monotonic clock (seconds)"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class RecordingSleep:
    """Async sleep replacement that records requested delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FlakyOperation:
    """Async operation that fails a set number of times before succeeding"""

    def __init__(self, failures: int, result="ok", error_factory=None):
        self.failures = failures
        self.result = result
        self.error_factory = error_factory or (lambda n: ConnectionError(f"attempt {n} failed"))
        self.calls = 0
        self.errors = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            error = self.error_factory(self.calls)
            self.errors.append(error)
            raise error
        return self.result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return RecoverySettings(_env_file=None)


@pytest.fixture
def manager(clock, sleep, settings):
    """Isolated recovery domain with fake time"""
    return RecoveryManager(
        strategies=StrategyRegistry.with_defaults(sleep=sleep),
        breakers=BreakerRegistry(clock=clock),
        ledger=OutcomeLedger(settings.ledger_capacity),
        settings=settings,
    )


@pytest.fixture
def flaky():
    """Factory for FlakyOperation instances"""
    return FlakyOperation
