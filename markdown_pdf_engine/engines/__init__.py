"""Render-engine strategies, one per degradation tier."""

from .base import RenderStrategy, StrategyKind
from .canvas import CanvasStrategy
from .chromium import ChromiumStrategy
from .remote import RemoteServiceStrategy
from .weasy import WeasyPrintStrategy

__all__ = [
    "CanvasStrategy",
    "ChromiumStrategy",
    "RemoteServiceStrategy",
    "RenderStrategy",
    "StrategyKind",
    "WeasyPrintStrategy",
]
