"""
Shared contract for render-engine strategies.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum

from ..errors import EngineRenderError, EngineTimeout
from ..logger import ConsoleLogger
from ..models import RenderOptions, StyledMarkup


class StrategyKind(str, Enum):
    """Degradation tiers, highest fidelity first."""

    FULL = "full"
    CONSTRAINED = "constrained"
    REMOTE = "remote"
    MINIMAL = "minimal"

    @classmethod
    def ordered(cls):
        return (cls.FULL, cls.CONSTRAINED, cls.REMOTE, cls.MINIMAL)


class RenderStrategy(ABC):
    """Turns styled markup into PDF bytes.

    Implementations raise EngineUnavailable, EngineTimeout, EngineRenderError,
    NetworkUnavailable or RemoteQuotaExceeded; anything else is a bug in the
    strategy and is reported by the controller as a render error. Handles to
    engine processes or connections are handed to the lease with
    ``lease.adopt`` so they are closed on every exit path.
    """

    kind: StrategyKind

    def __init__(self, logger: ConsoleLogger = None):
        self.logger = logger or ConsoleLogger()

    @abstractmethod
    async def render(self, styled: StyledMarkup, options: RenderOptions, deadline: float, lease) -> bytes:
        """Render and return the PDF payload before ``deadline`` (time.monotonic())."""

    def remaining(self, deadline: float) -> float:
        """Seconds left before the deadline; raises EngineTimeout when none are."""
        left = deadline - time.monotonic()
        if left <= 0:
            raise EngineTimeout("deadline reached before rendering started", tier=self.kind.value)
        return left

    def check_payload(self, payload) -> bytes:
        payload = bytes(payload or b"")
        if not payload.startswith(b"%PDF"):
            raise EngineRenderError(f"engine returned {len(payload)} bytes that are not a PDF", tier=self.kind.value)
        return payload
