"""Tests for the RecoveryManager facade."""

import asyncio

import pytest

from error_recovery import (
    BreakerOpenError,
    CircuitBreakerOptions,
    CircuitState,
    RecoveryManager,
    RecoverySettings,
    RecoveryStrategy,
    StrategyKind,
    StrategyNotRegisteredError,
    StrategyTimeoutError,
    TransientError,
)
from error_recovery.strategies import invoke


# ===================================================================
# execute_with_strategy
# ===================================================================

class TestExecuteWithStrategy:
    @pytest.mark.asyncio
    async def test_success_is_recorded(self, manager):
        async def send_prompt():
            return "Hello!"

        assert await manager.execute_with_strategy(send_prompt, "exponential-backoff") == "Hello!"

        [entry] = manager.get_error_log()
        assert entry.outcome == "success"
        assert entry.function_name.endswith("send_prompt")
        assert entry.strategy_name == "exponential-backoff"
        assert entry.error_message is None
        assert entry.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_error_is_recorded_and_reraised_unchanged(self, manager, flaky):
        op = flaky(failures=100, error_factory=lambda n: TransientError(f"rate limited #{n}"))

        with pytest.raises(TransientError) as exc_info:
            await manager.execute_with_strategy(op, StrategyKind.LINEAR_BACKOFF, {"maxRetries": 2, "delayMs": 5})

        assert exc_info.value is op.errors[-1]
        assert op.calls == 3
        [entry] = manager.get_error_log()
        assert entry.outcome == "error"
        assert entry.strategy_name == "linear-backoff"
        assert entry.error_message == "rate limited #3"

    @pytest.mark.asyncio
    async def test_default_strategy_is_exponential_backoff(self, manager, sleep, flaky):
        op = flaky(failures=1)
        assert await manager.execute_with_strategy(op) == "ok"
        assert op.calls == 2
        assert manager.get_error_log()[0].strategy_name == "exponential-backoff"

    @pytest.mark.asyncio
    async def test_unknown_strategy_fails_fast_without_recording(self, manager, flaky):
        op = flaky(failures=0)
        with pytest.raises(StrategyNotRegisteredError):
            await manager.execute_with_strategy(op, "circuit-magic")
        assert op.calls == 0
        assert manager.get_error_log() == []

    @pytest.mark.asyncio
    async def test_fallback_records_success(self, manager, flaky):
        result = await manager.execute_with_strategy(flaky(failures=100), "fallback", {"fallback": 42})
        assert result == 42
        assert manager.get_error_stats().total_successes == 1

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_error(self, manager):
        async def slow_completion():
            await asyncio.sleep(0.2)

        with pytest.raises(StrategyTimeoutError):
            await manager.execute_with_strategy(slow_completion, "timeout", {"timeoutMs": 20})

        [entry] = manager.get_error_log()
        assert entry.error_message == "Timeout after 20ms"

    @pytest.mark.asyncio
    async def test_empty_error_message_uses_type_name(self, manager):
        async def fails_quietly():
            raise ValueError()

        with pytest.raises(ValueError):
            await manager.execute_with_strategy(fails_quietly, "linear-backoff", {"maxRetries": 0})
        assert manager.get_error_log()[0].error_message == "ValueError"

    @pytest.mark.asyncio
    async def test_custom_strategy(self, manager):
        class Doubling(RecoveryStrategy):
            name = "doubling"

            async def execute(self, operation, options=None):
                return 2 * await invoke(operation)

        manager.register_strategy("doubling", Doubling())
        assert await manager.execute_with_strategy(lambda: 21, "doubling") == 42

        manager.unregister_strategy("doubling")
        with pytest.raises(StrategyNotRegisteredError):
            await manager.execute_with_strategy(lambda: 21, "doubling")

    @pytest.mark.asyncio
    async def test_ledger_failure_never_reaches_caller(self, manager, monkeypatch):
        def broken_record(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(manager.ledger, "record", broken_record)
        assert await manager.execute_with_strategy(lambda: "value", "fallback") == "value"

    @pytest.mark.asyncio
    async def test_outcomes_recorded_in_completion_order(self, manager):
        async def slow():
            await asyncio.sleep(0.05)
            return "slow"

        async def fast():
            return "fast"

        await asyncio.gather(
            manager.execute_with_strategy(slow, "fallback"),
            manager.execute_with_strategy(fast, "fallback"),
        )
        names = [entry.function_name for entry in reversed(manager.get_error_log())]
        assert names[0].endswith("fast")
        assert names[1].endswith("slow")


# ===================================================================
# Circuit breakers through the facade
# ===================================================================

class TestCircuitBreakers:
    def test_create_and_status(self, manager):
        manager.create_circuit_breaker("provider", {"failureThreshold": 2})
        status = manager.get_circuit_breaker_status("provider")
        assert status.state == "closed"
        assert status.failure_threshold == 2
        assert status.success_threshold == 2
        assert status.cooldown_ms == 60000

    def test_unknown_status_is_none(self, manager):
        assert manager.get_circuit_breaker_status("nope") is None

    def test_settings_supply_breaker_defaults(self):
        settings = RecoverySettings(_env_file=None, breaker_failure_threshold=7, breaker_cooldown_ms=10)
        manager = RecoveryManager(settings=settings)
        breaker = manager.create_circuit_breaker("cache")
        assert breaker.config.failure_threshold == 7
        assert breaker.config.cooldown_ms == 10

    def test_options_model_accepted(self, manager):
        breaker = manager.create_circuit_breaker("files", CircuitBreakerOptions(failure_threshold=1))
        assert manager.get_circuit_breaker("files") is breaker

    @pytest.mark.asyncio
    async def test_payments_scenario(self, manager, clock, flaky):
        breaker = manager.create_circuit_breaker(
            "payments", {"failureThreshold": 3, "successThreshold": 2, "cooldownMs": 1000}
        )
        charge = flaky(failures=100)

        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.execute(charge)
        assert manager.get_circuit_breaker_status("payments").state == "open"

        with pytest.raises(BreakerOpenError):
            await breaker.execute(charge)
        assert charge.calls == 3

        clock.advance_ms(1000)
        await breaker.execute(lambda: "charged")
        status = manager.get_circuit_breaker_status("payments")
        assert status.state == "half_open"
        assert status.success_count == 1

        await breaker.execute(lambda: "charged")
        status = manager.get_circuit_breaker_status("payments")
        assert status.state == "closed"
        assert status.failure_count == 0

    @pytest.mark.asyncio
    async def test_execute_with_breaker_records_every_path(self, manager, flaky):
        manager.create_circuit_breaker("provider", {"failureThreshold": 1})
        op = flaky(failures=100)

        with pytest.raises(ConnectionError):
            await manager.execute_with_breaker("provider", op)
        with pytest.raises(BreakerOpenError):
            await manager.execute_with_breaker("provider", op)

        log = manager.get_error_log()
        assert [entry.outcome for entry in log] == ["error", "error"]
        assert log[0].error_message == "Circuit breaker 'provider' is OPEN"
        assert all(entry.strategy_name == "circuit-breaker:provider" for entry in log)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_execute_with_breaker_creates_missing_breaker(self, manager):
        assert await manager.execute_with_breaker("memory", lambda: "saved") == "saved"
        assert manager.get_circuit_breaker("memory").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_strategy_wrapping_breaker(self, manager, flaky):
        breaker = manager.create_circuit_breaker("provider", {"failureThreshold": 2})
        op = flaky(failures=100)

        with pytest.raises(BreakerOpenError):
            await manager.execute_with_strategy(
                lambda: breaker.execute(op), "linear-backoff", {"maxRetries": 3, "delayMs": 1}
            )
        assert op.calls == 2


# ===================================================================
# Statistics and the error log
# ===================================================================

class TestErrorReporting:
    @pytest.mark.asyncio
    async def test_stats_include_breakers(self, manager, flaky):
        manager.create_circuit_breaker("provider")
        await manager.execute_with_strategy(lambda: "ok", "fallback")
        with pytest.raises(ConnectionError):
            await manager.execute_with_strategy(flaky(failures=100), "linear-backoff", {"maxRetries": 0})

        stats = manager.get_error_stats()
        assert stats.total_successes == 1
        assert stats.total_errors == 1
        assert stats.success_rate == 50
        assert [b["name"] for b in stats.circuit_breakers] == ["provider"]

    @pytest.mark.asyncio
    async def test_error_log_capped_at_capacity(self, manager):
        for _ in range(1500):
            await manager.execute_with_strategy(lambda: None, "fallback")

        log = manager.get_error_log(1500)
        assert len(log) == 1000
        assert log[-1].id == 501
        stats = manager.get_error_stats()
        assert stats.total_successes + stats.total_errors == 1000

    @pytest.mark.asyncio
    async def test_default_log_limit(self, manager):
        for _ in range(60):
            await manager.execute_with_strategy(lambda: None, "fallback")
        assert len(manager.get_error_log()) == 50

    @pytest.mark.asyncio
    async def test_clear_leaves_breakers(self, manager, flaky):
        manager.create_circuit_breaker("provider", {"failureThreshold": 1})
        with pytest.raises(ConnectionError):
            await manager.execute_with_breaker("provider", flaky(failures=1))

        manager.clear_error_log()
        assert manager.get_error_log() == []
        assert manager.get_error_stats().success_rate == 100
        assert manager.get_circuit_breaker_status("provider").state == "open"

    @pytest.mark.asyncio
    async def test_recovery_status_is_serializable(self, manager):
        await manager.execute_with_strategy(lambda: 1, "fallback")
        status = manager.get_recovery_status()
        assert status["statistics"]["totalSuccesses"] == 1
        assert "timeout" in status["strategies"]
        assert isinstance(status["recent_outcomes"][0]["timestamp"], str)
