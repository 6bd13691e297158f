"""
Degradation controller: runs the strategy tiers as an explicit state machine.

    START -> TRY_FULL -> TRY_CONSTRAINED -> TRY_REMOTE -> TRY_MINIMAL -> FAILED
                 \\______________\\_______________\\______________\\__-> DONE

A tier is left for the next one when it fails (unavailable, render error,
network or quota failure, a queued pool wait that ran out) or times out
under the ``advance`` policy. Tiers the capability probe ruled out are
skipped without being tried. Overall deadline expiry, rejected pool
acquisition and timeouts under the ``abort`` policy end the run.

All tiers share one wall-clock budget. Every tier above the minimal one must
finish ``minimal_reserve`` seconds before the budget ends; that slice is
kept so the minimal tier still gets a chance. A tier still running at its
deadline is cancelled immediately and its lease released.
"""

import asyncio
import time
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .dependencies import EnvironmentCapabilities
from .engines.base import RenderStrategy, StrategyKind
from .errors import (
    ConversionError,
    EngineRenderError,
    EngineTimeout,
    ErrorKind,
    OverallDeadlineExceeded,
    ResourceExhausted,
)
from .logger import ConsoleLogger
from .models import RenderOptions, RenderOutcome, StyledMarkup, TierAttempt
from .pool import EnginePool


class ControllerState(str, Enum):
    START = "start"
    TRY_FULL = "try_full"
    TRY_CONSTRAINED = "try_constrained"
    TRY_REMOTE = "try_remote"
    TRY_MINIMAL = "try_minimal"
    DONE = "done"
    FAILED = "failed"


class TierEvent(str, Enum):
    BEGIN = "begin"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


class TimeoutPolicy(str, Enum):
    ADVANCE = "advance"
    ABORT = "abort"


S, E = ControllerState, TierEvent

TRANSITIONS: Dict[Tuple[ControllerState, TierEvent], ControllerState] = {
    (S.START, E.BEGIN): S.TRY_FULL,

    (S.TRY_FULL, E.SUCCEEDED): S.DONE,
    (S.TRY_FULL, E.FAILED): S.TRY_CONSTRAINED,
    (S.TRY_FULL, E.SKIPPED): S.TRY_CONSTRAINED,
    (S.TRY_FULL, E.ABORTED): S.FAILED,

    (S.TRY_CONSTRAINED, E.SUCCEEDED): S.DONE,
    (S.TRY_CONSTRAINED, E.FAILED): S.TRY_REMOTE,
    (S.TRY_CONSTRAINED, E.SKIPPED): S.TRY_REMOTE,
    (S.TRY_CONSTRAINED, E.ABORTED): S.FAILED,

    (S.TRY_REMOTE, E.SUCCEEDED): S.DONE,
    (S.TRY_REMOTE, E.FAILED): S.TRY_MINIMAL,
    (S.TRY_REMOTE, E.SKIPPED): S.TRY_MINIMAL,
    (S.TRY_REMOTE, E.ABORTED): S.FAILED,

    (S.TRY_MINIMAL, E.SUCCEEDED): S.DONE,
    (S.TRY_MINIMAL, E.FAILED): S.FAILED,
    (S.TRY_MINIMAL, E.SKIPPED): S.FAILED,
    (S.TRY_MINIMAL, E.ABORTED): S.FAILED,
}

STATE_TIERS: Dict[ControllerState, StrategyKind] = {
    S.TRY_FULL: StrategyKind.FULL,
    S.TRY_CONSTRAINED: StrategyKind.CONSTRAINED,
    S.TRY_REMOTE: StrategyKind.REMOTE,
    S.TRY_MINIMAL: StrategyKind.MINIMAL,
}

TERMINAL_STATES = (S.DONE, S.FAILED)


class DegradationController:
    """Chooses and sequences render strategies within one time budget."""

    def __init__(
        self,
        strategies: Mapping[StrategyKind, RenderStrategy],
        pool: EnginePool,
        capabilities: EnvironmentCapabilities,
        timeout_policy: TimeoutPolicy = TimeoutPolicy.ADVANCE,
        minimal_reserve: float = 2.0,
        logger: ConsoleLogger = None,
    ):
        self.strategies = dict(strategies)
        self.pool = pool
        self.capabilities = capabilities
        self.timeout_policy = TimeoutPolicy(timeout_policy)
        self.minimal_reserve = minimal_reserve
        self.logger = logger or ConsoleLogger()

    def is_viable(self, tier: StrategyKind) -> bool:
        return tier in self.strategies and self.capabilities.allows(tier)

    def event_for(self, error: ConversionError) -> TierEvent:
        """Map a tier failure to the FSM event it causes."""
        if isinstance(error, OverallDeadlineExceeded):
            return TierEvent.ABORTED
        if isinstance(error, ResourceExhausted) and error.rejected:
            return TierEvent.ABORTED
        if isinstance(error, EngineTimeout) and self.timeout_policy is TimeoutPolicy.ABORT:
            return TierEvent.ABORTED
        return TierEvent.FAILED

    def tier_deadline(self, tier: StrategyKind, budget_end: float) -> float:
        if tier is StrategyKind.MINIMAL or not self.is_viable(StrategyKind.MINIMAL):
            return budget_end
        return budget_end - self.minimal_reserve

    async def _attempt(self, tier: StrategyKind, styled: StyledMarkup, options: RenderOptions,
                       deadline: float) -> bytes:
        strategy = self.strategies[tier]
        async with self.pool.lease(tier, deadline) as lease:
            return await strategy.render(styled, options, deadline, lease)

    async def _run_tier(self, tier: StrategyKind, styled: StyledMarkup, options: RenderOptions,
                        deadline: float) -> bytes:
        """Run one tier, cancelling it at its deadline; raises ConversionError on failure."""
        try:
            return await asyncio.wait_for(
                self._attempt(tier, styled, options, deadline),
                timeout=deadline - time.monotonic(),
            )
        except asyncio.TimeoutError:
            raise EngineTimeout("cancelled at the tier deadline", tier=tier.value)
        except ConversionError as e:
            e.tier = e.tier or tier.value
            raise
        except Exception as e:
            raise EngineRenderError(f"{type(e).__name__}: {e}", tier=tier.value)

    async def run(self, styled: StyledMarkup, options: RenderOptions, warnings: Sequence[str] = ()) -> RenderOutcome:
        """Drive the tiers until one produces a PDF or the chain is exhausted."""
        started = time.monotonic()
        budget_end = started + options.overall_deadline_ms / 1000
        attempts: List[TierAttempt] = []
        last_error: Optional[ConversionError] = None
        state = TRANSITIONS[(ControllerState.START, TierEvent.BEGIN)]

        while state not in TERMINAL_STATES:
            tier = STATE_TIERS[state]
            tier_started = time.monotonic()

            if not self.is_viable(tier):
                reason = self.capabilities.reasons.get(tier, "not viable in this environment")
                attempts.append(TierAttempt(tier.value, ErrorKind.ENGINE_UNAVAILABLE, f"skipped: {reason}"))
                self.logger.log_debug(f"Skipping {tier.value} tier: {reason}")
                state = TRANSITIONS[(state, TierEvent.SKIPPED)]
                continue

            if tier_started >= budget_end:
                last_error = OverallDeadlineExceeded(
                    f"overall budget of {options.overall_deadline_ms} ms spent before this tier", tier=tier.value)
                attempts.append(TierAttempt(tier.value, last_error.kind, last_error.message))
                state = TRANSITIONS[(state, TierEvent.ABORTED)]
                continue

            deadline = self.tier_deadline(tier, budget_end)
            if deadline <= tier_started:
                attempts.append(TierAttempt(tier.value, ErrorKind.ENGINE_TIMEOUT,
                                            "skipped: remaining budget is reserved for the minimal tier"))
                state = TRANSITIONS[(state, TierEvent.SKIPPED)]
                continue

            self.logger.log_debug(f"Trying {tier.value} tier ({(deadline - tier_started) * 1000:.0f} ms available)")
            try:
                payload = await self._run_tier(tier, styled, options, deadline)
            except ConversionError as error:
                if isinstance(error, EngineTimeout) and deadline >= budget_end:
                    # This tier owned the end of the budget; nothing can run after it
                    error = OverallDeadlineExceeded(
                        f"overall budget of {options.overall_deadline_ms} ms exceeded ({error.message})",
                        tier=tier.value)
                elapsed_ms = (time.monotonic() - tier_started) * 1000
                attempts.append(TierAttempt(tier.value, error.kind, error.message, elapsed_ms))
                self.logger.log_warning(f"{tier.value} tier failed after {elapsed_ms:.0f} ms: {error.message}")
                last_error = error
                state = TRANSITIONS[(state, self.event_for(error))]
                continue

            elapsed_ms = (time.monotonic() - tier_started) * 1000
            attempts.append(TierAttempt(tier.value, None, "ok", elapsed_ms))
            state = TRANSITIONS[(state, TierEvent.SUCCEEDED)]
            self.logger.log_success(f"Rendered '{styled.title}' with {tier.value} tier in {elapsed_ms:.0f} ms")
            return RenderOutcome.success(payload, tier.value, attempts, warnings)

        return self._failure(last_error, attempts, warnings)

    def _failure(self, last_error: Optional[ConversionError], attempts: List[TierAttempt],
                 warnings: Sequence[str]) -> RenderOutcome:
        failed_tier = attempts[-1].tier if attempts else None
        aborted = last_error is not None and self.event_for(last_error) is TierEvent.ABORTED
        if aborted:
            kind, cause = last_error.kind, last_error.message
        else:
            kind = ErrorKind.ALL_TIERS_EXHAUSTED
            cause = "all render tiers failed: " + "; ".join(
                f"{attempt.tier}: {attempt.cause}" for attempt in attempts if not attempt.succeeded)
        self.logger.log_error(f"Conversion failed ({kind.value}): {cause}")
        return RenderOutcome.failure(kind, cause, failed_tier, attempts, warnings)
