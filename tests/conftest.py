"""
Pytest configuration and shared fixtures.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add the project root to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from markdown_pdf_engine.config import Config
from markdown_pdf_engine.context import ConversionContext
from markdown_pdf_engine.dependencies import EnvironmentCapabilities
from markdown_pdf_engine.engines.base import RenderStrategy, StrategyKind
from markdown_pdf_engine.logger import ConsoleLogger
from markdown_pdf_engine.models import RenderOptions, RenderRequest
from markdown_pdf_engine.parser import parse
from markdown_pdf_engine.renderer import render
from markdown_pdf_engine.templates import TemplateRegistry

FAKE_PDF = b"%PDF-1.4\n% scripted\n%%EOF\n"

SAMPLE_MARKDOWN = """# Quarterly Notes

Intro paragraph with **bold**, *italic* and `code`.

- [ ] open task
- [x] done task

| Name | Score | Note |
|:-----|------:|:----:|
| a | 1 |
| b | 2 | ok |

```python
print("hi")
```

Inline $a+b$ math and a note.[^1]

[^1]: The footnote text.
"""


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark as integration test")
    config.addinivalue_line("markers", "engine: mark as requiring a real render engine (Chromium, WeasyPrint)")


# ============================================================================
# Scripted strategies
# ============================================================================


class ScriptedStrategy(RenderStrategy):
    """Strategy whose behaviour is fixed by the test.

    ``outcome`` is PDF bytes to return, an exception instance to raise, or
    ``"hang"`` to sleep until cancelled. ``delay`` seconds pass first.
    """

    def __init__(self, kind: StrategyKind, outcome=FAKE_PDF, delay: float = 0.0):
        super().__init__(ConsoleLogger())
        self.kind = kind
        self.outcome = outcome
        self.delay = delay
        self.calls = 0
        self.cancelled = False
        self.closed = 0

    async def render(self, styled, options, deadline, lease) -> bytes:
        self.calls += 1
        lease.adopt(self._close)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.outcome == "hang":
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    def _close(self):
        self.closed += 1


def scripted(**outcomes):
    """Build a strategy table, e.g. scripted(full=EngineUnavailable("x"), minimal=FAKE_PDF)."""
    return {StrategyKind(name): ScriptedStrategy(StrategyKind(name), outcome) for name, outcome in outcomes.items()}


def make_context(strategies, capabilities=None, **config_values) -> ConversionContext:
    """Conversion context with injected strategies and an isolated config."""
    config_values.setdefault("minimal_reserve_ms", 100)
    config = Config(config_values, environ={})
    return ConversionContext.create(
        config,
        capabilities=capabilities or EnvironmentCapabilities.all(),
        strategies=strategies,
        logger=ConsoleLogger(),
    )


# ============================================================================
# Base Fixtures
# ============================================================================


@pytest.fixture
def registry():
    """Create the default template registry."""
    return TemplateRegistry.default()


@pytest.fixture
def options():
    """Default page options with a short budget."""
    return RenderOptions(overall_deadline_ms=2000)


@pytest.fixture
def sample_tree():
    """Parsed sample document."""
    return parse(SAMPLE_MARKDOWN)


@pytest.fixture
def styled(sample_tree, registry, options):
    """Sample document rendered with the default template."""
    return render(sample_tree, registry.get("document"), options)


@pytest.fixture
def sample_request():
    """Request for the sample document with a ten-second budget.

    Real engines start a child process, so the budget leaves room for that.
    """
    return RenderRequest.create(SAMPLE_MARKDOWN, "document", overall_deadline_ms=10000)


@pytest.fixture
def source_dir(tmp_path):
    """Directory with two markdown files and a README that must be ignored."""
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "first.md").write_text("# First\n\nHello.\n", encoding="utf-8")
    (docs / "second.md").write_text("# Second\n\n- [x] shipped\n", encoding="utf-8")
    (docs / "README.md").write_text("# Readme\n", encoding="utf-8")
    return docs


@pytest.fixture
def fake_pdf():
    return FAKE_PDF


@pytest.fixture
def strategies():
    """Factory for scripted strategy tables."""
    return scripted


@pytest.fixture
def context_factory():
    """Factory for conversion contexts with injected strategies."""
    return make_context
