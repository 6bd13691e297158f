"""
Markdown to PDF conversion with graceful degradation across render engines.
"""

from .config import Config
from .context import ConversionContext
from .controller import DegradationController, TimeoutPolicy
from .converter import MarkdownToPDFConverter, convert, convert_async
from .dependencies import EnvironmentCapabilities, check_dependencies, detect_capabilities
from .engines import StrategyKind
from .errors import ConversionError, ErrorKind, InvalidRequest, UnknownTemplate
from .models import Margins, RenderOptions, RenderOutcome, RenderRequest, StyledMarkup
from .parser import parse
from .pool import BackpressurePolicy, EngineLease, EnginePool
from .renderer import render
from .templates import StyleTemplate, TemplateId, TemplateRegistry

__version__ = "1.0.0"

__all__ = [
    "BackpressurePolicy",
    "Config",
    "ConversionContext",
    "ConversionError",
    "DegradationController",
    "EngineLease",
    "EnginePool",
    "EnvironmentCapabilities",
    "ErrorKind",
    "InvalidRequest",
    "Margins",
    "MarkdownToPDFConverter",
    "RenderOptions",
    "RenderOutcome",
    "RenderRequest",
    "StrategyKind",
    "StyleTemplate",
    "StyledMarkup",
    "TemplateId",
    "TemplateRegistry",
    "TimeoutPolicy",
    "UnknownTemplate",
    "check_dependencies",
    "convert",
    "convert_async",
    "detect_capabilities",
    "parse",
    "render",
]
