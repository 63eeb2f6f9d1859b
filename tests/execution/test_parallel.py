"""Tests for ParallelExecutionEngine batches, timeouts, retries and stats."""

import asyncio

import pytest
from pydantic import ValidationError

from stepflow.core.errors import ConfigurationError
from stepflow.core.settings import StepflowSettings
from stepflow.execution import (
    CancellationToken,
    ConstantBackoff,
    NoRetry,
    ParallelExecutionEngine,
    ParallelExecutionPolicy,
)
from stepflow.orchestration import WorkflowContext


def _sleeper(seconds, result=None):
    async def run(context, options):
        await asyncio.sleep(seconds)
        return result

    return run


class TestPolicy:
    def test_defaults(self):
        policy = ParallelExecutionPolicy()

        assert policy.max_concurrency == 10
        assert policy.timeout == 30.0
        assert isinstance(policy.retry_strategy(), NoRetry)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_concurrency": 0},
            {"timeout": 0},
            {"retry_attempts": -1},
            {"retry_delay": -0.5},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError) as exc_info:
            ParallelExecutionPolicy(**kwargs)

        assert exc_info.value.key == next(iter(kwargs))

    def test_unknown_field_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ParallelExecutionPolicy(workers=4)

        assert exc_info.value.key == "workers"

    def test_invalid_override(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ParallelExecutionPolicy().with_overrides({"max_concurrency": "lots"})

        assert exc_info.value.key == "max_concurrency"

    def test_policy_is_frozen(self):
        policy = ParallelExecutionPolicy()

        with pytest.raises(ValidationError):
            policy.timeout = 1.0

    def test_from_settings(self):
        settings = StepflowSettings(parallel_max_concurrency=3, parallel_retry_attempts=2)
        policy = ParallelExecutionPolicy.from_settings(settings)

        assert policy.max_concurrency == 3
        assert policy.retry_attempts == 2
        assert isinstance(policy.retry_strategy(), ConstantBackoff)

    def test_with_overrides(self):
        policy = ParallelExecutionPolicy()
        overridden = policy.with_overrides({"timeout": 0.5, "unrelated": True})

        assert overridden.timeout == 0.5
        assert policy.timeout == 30.0
        assert policy.with_overrides({"unrelated": True}) is policy


class TestBatchExecution:
    @pytest.mark.asyncio
    async def test_records_in_input_order(self, registry, add_step):
        add_step("slow", _sleeper(0.05, "slow"))
        add_step("fast", _sleeper(0, "fast"))
        add_step("medium", _sleeper(0.02, "medium"))
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        records = await engine.execute_steps_parallel(["slow", "fast", "medium"])

        assert len(records) == 3
        assert [r.step for r in records] == ["slow", "fast", "medium"]
        assert [r.result for r in records] == ["slow", "fast", "medium"]
        assert all(r.metadata["mode"] == "parallel" for r in records)

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, registry, add_step):
        for name in ("a", "b", "c"):
            add_step(name, _sleeper(0.1))
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        loop = asyncio.get_running_loop()
        started = loop.time()
        await engine.execute_steps_parallel(["a", "b", "c"])

        assert loop.time() - started < 0.25

    @pytest.mark.asyncio
    async def test_max_concurrency_respected(self, registry, add_step):
        active = 0
        peak = 0

        async def tracked(context, options):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        for index in range(6):
            add_step(f"s{index}", tracked)
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(max_concurrency=2))

        await engine.execute_steps_parallel([f"s{index}" for index in range(6)])

        assert peak == 2

    @pytest.mark.asyncio
    async def test_unknown_and_inactive_become_failures(self, registry, add_step):
        add_step("lint")
        add_step("off")
        registry.deactivate("off")
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(retry_attempts=2, retry_delay=0))

        records = await engine.execute_steps_parallel(["lint", "ghost", "off"])

        assert [r.success for r in records] == [True, False, False]
        assert records[1].metadata["error_type"] == "NotFoundError"
        assert records[2].metadata["error_type"] == "InactiveError"
        assert records[1].attempts == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self, registry):
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        assert await engine.execute_steps_parallel([]) == []

    @pytest.mark.asyncio
    async def test_options_and_token_reach_executor(self, registry, add_step):
        seen = {}

        async def capture(context, options):
            seen.update(options)

        add_step("capture", capture)
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        await engine.execute_steps_parallel(["capture"], options={"timeout": 5, "target": "src"})

        assert seen["target"] == "src"
        assert "timeout" not in seen
        assert isinstance(seen["cancellation"], CancellationToken)

    @pytest.mark.asyncio
    async def test_records_land_in_context(self, registry, add_step):
        add_step("a")
        add_step("b")
        context = WorkflowContext()
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        await engine.execute_steps_parallel(["a", "b"], context)

        assert sorted(context.completed_steps) == ["a", "b"]


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_timeout_does_not_block_siblings(self, registry, add_step):
        add_step("hang", _sleeper(10))
        add_step("quick", _sleeper(0, "done"))
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(timeout=0.1))

        loop = asyncio.get_running_loop()
        started = loop.time()
        records = await engine.execute_steps_parallel(["hang", "quick"])

        assert loop.time() - started < 2
        hang, quick = records
        assert hang.success is False
        assert hang.is_timeout is True
        assert "timed out after 0.1s" in hang.error
        assert quick.success is True
        assert quick.is_timeout is False

    @pytest.mark.asyncio
    async def test_timeout_override_per_call(self, registry, add_step):
        add_step("hang", _sleeper(10))
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(timeout=30))

        records = await engine.execute_steps_parallel(["hang"], options={"timeout": 0.05})

        assert records[0].is_timeout is True

    @pytest.mark.asyncio
    async def test_timed_out_step_sees_cancelled_token(self, registry, add_step):
        tokens = []

        async def hang(context, options):
            tokens.append(options["cancellation"])
            await asyncio.sleep(10)

        add_step("hang", hang)
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(timeout=0.05))

        await engine.execute_steps_parallel(["hang"])

        assert tokens[0].cancelled is True


class TestRetries:
    @pytest.mark.asyncio
    async def test_flaky_step_recovers(self, registry, add_step, flaky):
        executor = flaky(failures=1, result="green")
        add_step("test", executor)
        engine = ParallelExecutionEngine(
            registry, ParallelExecutionPolicy(retry_attempts=1, retry_delay=0)
        )

        records = await engine.execute_steps_parallel(["test"])

        assert records[0].success is True
        assert records[0].result == "green"
        assert records[0].attempts == 2
        assert records[0].retried is True
        assert executor.calls == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, registry, add_step, flaky):
        executor = flaky(failures=5)
        add_step("test", executor)
        engine = ParallelExecutionEngine(
            registry, ParallelExecutionPolicy(retry_attempts=2, retry_delay=0)
        )

        records = await engine.execute_steps_parallel(["test"])

        assert records[0].success is False
        assert records[0].attempts == 3
        assert executor.calls == 3

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, registry, add_step, flaky):
        executor = flaky(failures=1)
        add_step("test", executor)
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy())

        records = await engine.execute_steps_parallel(["test"])

        assert records[0].success is False
        assert records[0].retried is False
        assert executor.calls == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self, registry, add_step):
        calls = 0

        async def slow_then_fast(context, options):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return "ok"

        add_step("net", slow_then_fast)
        engine = ParallelExecutionEngine(
            registry, ParallelExecutionPolicy(timeout=0.05, retry_attempts=1, retry_delay=0)
        )

        records = await engine.execute_steps_parallel(["net"])

        assert records[0].success is True
        assert records[0].is_timeout is False
        assert records[0].attempts == 2


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_accumulate_and_reset(self, registry, add_step):
        add_step("ok")
        add_step("hang", _sleeper(10))
        engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(timeout=0.05))

        await engine.execute_steps_parallel(["ok", "hang"])
        await engine.execute_steps_parallel(["ok"])

        stats = engine.get_stats()
        assert stats.total_executions == 3
        assert stats.success_count == 2
        assert stats.failure_count == 1
        assert stats.timeout_count == 1
        assert stats.batches == 2
        assert stats.average_duration >= 0

        engine.reset_stats()
        assert engine.get_stats().to_dict()["total_executions"] == 0
