"""
Unit tests for the degradation controller.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from markdown_pdf_engine.controller import TRANSITIONS, ControllerState, TierEvent
from markdown_pdf_engine.converter import convert
from markdown_pdf_engine.dependencies import EnvironmentCapabilities
from markdown_pdf_engine.engines.base import RenderStrategy, StrategyKind
from markdown_pdf_engine.engines.worker import ProcessWorker
from markdown_pdf_engine.errors import (
    EngineRenderError,
    EngineTimeout,
    EngineUnavailable,
    ErrorKind,
    NetworkUnavailable,
    RemoteQuotaExceeded,
    ResourceExhausted,
)
from markdown_pdf_engine.models import RenderOptions, RenderRequest


def _run(context, styled, deadline_ms=2000):
    return asyncio.run(context.controller.run(styled, RenderOptions(overall_deadline_ms=deadline_ms)))


class _BlockingStrategy(RenderStrategy):
    """Minimal-tier strategy that blocks inside a child process."""

    kind = StrategyKind.MINIMAL

    def __init__(self, seconds):
        super().__init__()
        self.seconds = seconds
        self.worker = None

    async def render(self, styled, options, deadline, lease):
        self.worker = ProcessWorker(time.sleep, self.seconds)
        lease.adopt(self.worker.stop)
        return await self.worker.result()


class TestTransitions:
    """Tests for the transition table itself."""

    def test_every_tier_state_handles_every_event(self):
        """Test that no (state, event) pair is missing for tier states."""
        tier_states = [state for state in ControllerState
                       if state not in (ControllerState.START, ControllerState.DONE, ControllerState.FAILED)]
        tier_events = [event for event in TierEvent if event is not TierEvent.BEGIN]

        for state in tier_states:
            for event in tier_events:
                assert (state, event) in TRANSITIONS

    def test_chain_order(self):
        """Test that failures walk the tiers from highest fidelity down."""
        state = TRANSITIONS[(ControllerState.START, TierEvent.BEGIN)]
        visited = []
        while state not in (ControllerState.DONE, ControllerState.FAILED):
            visited.append(state)
            state = TRANSITIONS[(state, TierEvent.FAILED)]

        assert visited == [ControllerState.TRY_FULL, ControllerState.TRY_CONSTRAINED,
                           ControllerState.TRY_REMOTE, ControllerState.TRY_MINIMAL]
        assert state is ControllerState.FAILED


class TestDegradation:
    """Tests for tier fall-through."""

    def test_full_unavailable_uses_constrained(self, styled, strategies, context_factory, fake_pdf):
        """Test that the next tier's payload is returned and lower tiers are not tried."""
        table = strategies(full=EngineUnavailable("no browser"), constrained=fake_pdf,
                           remote=fake_pdf, minimal=fake_pdf)
        context = context_factory(table)

        outcome = _run(context, styled)

        assert outcome.ok
        assert outcome.strategy == "constrained"
        assert outcome.payload == fake_pdf
        assert table[StrategyKind.REMOTE].calls == 0
        assert table[StrategyKind.MINIMAL].calls == 0
        assert [attempt.tier for attempt in outcome.attempts] == ["full", "constrained"]

    def test_falls_through_to_minimal(self, styled, strategies, context_factory, fake_pdf):
        """Test the full chain down to the minimal tier."""
        table = strategies(full=EngineUnavailable("no browser"), constrained=EngineRenderError("bad css"),
                           remote=NetworkUnavailable("offline"), minimal=fake_pdf)
        context = context_factory(table)

        outcome = _run(context, styled)

        assert outcome.strategy == "minimal"
        assert outcome.failed_tiers == ("full", "constrained", "remote")
        assert [attempt.error_kind for attempt in outcome.attempts[:3]] == [
            ErrorKind.ENGINE_UNAVAILABLE, ErrorKind.ENGINE_RENDER_ERROR, ErrorKind.NETWORK_UNAVAILABLE]

    def test_success_stops_chain(self, styled, strategies, context_factory, fake_pdf):
        """Test that the first success ends the run."""
        table = strategies(full=fake_pdf, constrained=fake_pdf, remote=fake_pdf, minimal=fake_pdf)
        context = context_factory(table)

        outcome = _run(context, styled)

        assert outcome.strategy == "full"
        assert outcome.content_type == "application/pdf"
        assert [strategy.calls for strategy in table.values()] == [1, 0, 0, 0]

    def test_all_tiers_exhausted(self, styled, strategies, context_factory):
        """Test that total failure names every failing tier."""
        table = strategies(full=EngineUnavailable("no browser"), constrained=EngineRenderError("layout"),
                           remote=RemoteQuotaExceeded("429"), minimal=EngineRenderError("font"))
        context = context_factory(table)

        outcome = _run(context, styled)

        assert not outcome.ok
        assert outcome.payload is None
        assert outcome.error_kind is ErrorKind.ALL_TIERS_EXHAUSTED
        assert outcome.retryable
        assert outcome.failed_tier == "minimal"
        for tier in ("full", "constrained", "remote", "minimal"):
            assert tier in outcome.cause
        assert outcome.failed_tiers == ("full", "constrained", "remote", "minimal")

    def test_unexpected_exception_is_render_error(self, styled, strategies, context_factory, fake_pdf):
        """Test that a strategy bug surfaces as a render error and the chain advances."""
        table = strategies(full=ValueError("boom"), minimal=fake_pdf)
        context = context_factory(table)

        outcome = _run(context, styled)

        assert outcome.strategy == "minimal"
        assert outcome.attempts[0].error_kind is ErrorKind.ENGINE_RENDER_ERROR
        assert "boom" in outcome.attempts[0].cause


class TestCapabilities:
    """Tests for capability-driven skipping."""

    def test_non_viable_tiers_never_tried(self, styled, strategies, context_factory, fake_pdf):
        """Test that tiers ruled out by the probe are skipped without a call."""
        table = strategies(full=fake_pdf, constrained=fake_pdf, remote=fake_pdf, minimal=fake_pdf)
        capabilities = EnvironmentCapabilities.only(StrategyKind.REMOTE, StrategyKind.MINIMAL)
        context = context_factory(table, capabilities=capabilities)

        outcome = _run(context, styled)

        assert outcome.strategy == "remote"
        assert table[StrategyKind.FULL].calls == 0
        assert table[StrategyKind.CONSTRAINED].calls == 0
        assert outcome.attempts[0].cause.startswith("skipped")

    def test_missing_strategy_is_skipped(self, styled, strategies, context_factory, fake_pdf):
        """Test that a tier without a strategy instance is treated as unavailable."""
        context = context_factory(strategies(minimal=fake_pdf))

        outcome = _run(context, styled)

        assert outcome.strategy == "minimal"
        assert len(outcome.attempts) == 4


class TestDeadlines:
    """Tests for the overall budget and per-tier deadlines."""

    def test_timeout_advances_by_default(self, styled, strategies, context_factory, fake_pdf):
        """Test that a hung tier is cancelled and the next tier still runs."""
        table = strategies(full="hang", minimal=fake_pdf)
        context = context_factory(table, minimal_reserve_ms=300)

        started = time.monotonic()
        outcome = _run(context, styled, deadline_ms=800)
        elapsed = time.monotonic() - started

        assert outcome.strategy == "minimal"
        assert outcome.attempts[0].error_kind is ErrorKind.ENGINE_TIMEOUT
        assert table[StrategyKind.FULL].cancelled is True
        assert table[StrategyKind.FULL].closed == 1
        assert context.pool.held_count() == 0
        assert elapsed < 1.5

    def test_timeout_aborts_under_abort_policy(self, styled, strategies, context_factory, fake_pdf):
        """Test that the abort policy ends the run on the first timeout."""
        table = strategies(full="hang", minimal=fake_pdf)
        context = context_factory(table, minimal_reserve_ms=300, timeout_policy="abort")

        outcome = _run(context, styled, deadline_ms=800)

        assert outcome.error_kind is ErrorKind.ENGINE_TIMEOUT
        assert outcome.failed_tier == "full"
        assert table[StrategyKind.MINIMAL].calls == 0
        assert context.pool.held_count() == 0

    def test_reserve_keeps_minimal_reachable(self, styled, strategies, context_factory, fake_pdf):
        """Test that slow upper tiers cannot starve the minimal tier."""
        table = strategies(full="hang", constrained="hang", remote="hang", minimal=fake_pdf)
        context = context_factory(table, minimal_reserve_ms=400)

        started = time.monotonic()
        outcome = _run(context, styled, deadline_ms=1000)
        elapsed = time.monotonic() - started

        assert outcome.ok
        assert outcome.strategy == "minimal"
        assert elapsed < 1.5
        assert context.pool.held_count() == 0

    def test_overall_deadline_exceeded(self, styled, strategies, context_factory):
        """Test that exhausting the whole budget is reported as such."""
        table = strategies(full="hang", minimal="hang")
        context = context_factory(table, minimal_reserve_ms=200)

        started = time.monotonic()
        outcome = _run(context, styled, deadline_ms=500)
        elapsed = time.monotonic() - started

        assert outcome.error_kind is ErrorKind.OVERALL_DEADLINE_EXCEEDED
        assert outcome.failed_tier == "minimal"
        assert elapsed < 1.0
        assert context.pool.held_count() == 0

    def test_blocking_engine_stopped_at_deadline(self, sample_request, context_factory):
        """Test that a blocking engine in a child process is killed at the budget end."""
        strategy = _BlockingStrategy(seconds=30)
        context = context_factory({StrategyKind.MINIMAL: strategy},
                                  capabilities=EnvironmentCapabilities.only(StrategyKind.MINIMAL))
        request = RenderRequest.create(sample_request.markup, overall_deadline_ms=500)

        started = time.monotonic()
        outcome = convert(request, context)
        elapsed = time.monotonic() - started

        assert outcome.error_kind is ErrorKind.OVERALL_DEADLINE_EXCEEDED
        assert elapsed < 3.0
        assert not strategy.worker.alive()
        assert context.pool.held_count() == 0

    def test_strategy_timeout_error_advances(self, styled, strategies, context_factory, fake_pdf):
        """Test that a strategy reporting its own timeout is handled like a cancellation."""
        table = strategies(full=EngineTimeout("navigation timed out"), minimal=fake_pdf)
        context = context_factory(table)

        outcome = _run(context, styled)

        assert outcome.strategy == "minimal"


class TestBackpressureOutcomes:
    """Tests for pool saturation as seen by the controller."""

    def test_rejected_acquisition_is_terminal(self, styled, strategies, context_factory, fake_pdf):
        """Test that a reject-policy refusal surfaces as ResourceExhausted."""
        table = strategies(full=fake_pdf, minimal=fake_pdf)
        context = context_factory(table, backpressure="reject", max_concurrent_engines=1)

        async def scenario():
            held = await context.pool.acquire(StrategyKind.FULL, time.monotonic() + 5)
            try:
                return await context.controller.run(styled, RenderOptions(overall_deadline_ms=2000))
            finally:
                context.pool.release(held)

        outcome = asyncio.run(scenario())

        assert outcome.error_kind is ErrorKind.RESOURCE_EXHAUSTED
        assert outcome.retryable
        assert table[StrategyKind.MINIMAL].calls == 0

    def test_queue_timeout_advances(self, styled, strategies, context_factory, fake_pdf):
        """Test that a queued wait running out moves on to the next tier."""
        table = strategies(full=fake_pdf, minimal=fake_pdf)
        context = context_factory(table, max_concurrent_engines=1, acquire_timeout_ms=100)

        async def scenario():
            held = await context.pool.acquire(StrategyKind.FULL, time.monotonic() + 5)
            try:
                return await context.controller.run(styled, RenderOptions(overall_deadline_ms=2000))
            finally:
                context.pool.release(held)

        outcome = asyncio.run(scenario())

        assert outcome.strategy == "minimal"
        assert outcome.attempts[0].error_kind is ErrorKind.RESOURCE_EXHAUSTED


class TestConcurrency:
    """Tests for many conversions sharing one context."""

    @pytest.mark.slow
    def test_concurrent_conversions_leave_no_leases(self, sample_request, strategies, context_factory, fake_pdf):
        """Test that N parallel requests all finish and hold nothing afterwards."""
        table = strategies(full=EngineRenderError("flaky"), constrained=fake_pdf, minimal=fake_pdf)
        table[StrategyKind.CONSTRAINED].delay = 0.02
        context = context_factory(table, max_concurrent_engines=2, acquire_timeout_ms=2000)

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = list(executor.map(lambda _: convert(sample_request, context), range(16)))

        assert all(outcome.ok for outcome in outcomes)
        assert {outcome.strategy for outcome in outcomes} <= {"constrained", "minimal"}
        assert context.pool.held_count() == 0


def test_resource_exhausted_flag_defaults_false():
    """Test that queue-style exhaustion is not flagged as a rejection."""
    assert ResourceExhausted("busy").rejected is False
