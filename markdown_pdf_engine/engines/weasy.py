"""
Constrained-environment strategy: WeasyPrint, no browser process.

Suited to serverless or size-limited deployments where Chromium cannot be
shipped. Layout fidelity is close to the browser for print CSS but it has
no JavaScript and a smaller CSS surface. Layout runs in a child process so
it can be stopped at the deadline.
"""

from typing import Optional

from ..errors import EngineRenderError, EngineUnavailable
from ..logger import ConsoleLogger
from ..models import RenderOptions, StyledMarkup
from .base import RenderStrategy, StrategyKind
from .worker import WorkerError, run_in_process

PAGE_NUMBER_CSS = """
@page {
    @bottom-center {
        content: counter(page) " / " counter(pages);
        font-size: 9px;
        color: #666;
    }
}
"""


def _load():
    # WeasyPrint raises OSError at import time when Pango/cairo are missing
    try:
        from weasyprint import CSS, HTML
    except (ImportError, OSError) as e:
        raise EngineUnavailable(f"WeasyPrint is not usable in this environment: {e}",
                                tier=StrategyKind.CONSTRAINED.value)
    return HTML, CSS


def write_pdf(html: str, base_url: Optional[str], page_numbers: bool) -> bytes:
    HTML, CSS = _load()
    stylesheets = [CSS(string=PAGE_NUMBER_CSS)] if page_numbers else []
    return HTML(string=html, base_url=base_url).write_pdf(stylesheets=stylesheets)


class WeasyPrintStrategy(RenderStrategy):

    kind = StrategyKind.CONSTRAINED

    def __init__(self, base_url: Optional[str] = None, logger: ConsoleLogger = None):
        super().__init__(logger)
        self.base_url = base_url

    async def render(self, styled: StyledMarkup, options: RenderOptions, deadline: float, lease) -> bytes:
        # Fail fast here rather than in the child when the library is missing
        _load()
        self.remaining(deadline)
        try:
            pdf_bytes = await run_in_process(lease, write_pdf, styled.html, self.base_url, options.header_footer)
        except WorkerError as e:
            raise EngineRenderError(f"WeasyPrint failed: {e}", tier=self.kind.value)
        return self.check_payload(pdf_bytes)
