"""
Full-fidelity strategy: headless Chromium driven by Playwright.
"""

import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..errors import EngineRenderError, EngineTimeout, EngineUnavailable
from ..logger import ConsoleLogger
from ..models import RenderOptions, StyledMarkup
from .base import RenderStrategy, StrategyKind

LAUNCH_ARGS = [
    '--disable-dev-shm-usage',  # Use /tmp instead of /dev/shm (prevents OOM crashes)
    '--disable-gpu',             # No GPU in headless mode
    '--no-sandbox',              # Required in some environments
]

CRASH_KEYWORDS = ["Connection closed", "Browser has been closed", "Target closed", "crashed", "Protocol error"]

FOOTER_TEMPLATE = (
    '<div style="font-size: 10px; text-align: center; width: 100%; margin: 0 auto;">'
    '<span class="pageNumber"></span> / <span class="totalPages"></span></div>'
)


class ChromiumStrategy(RenderStrategy):
    """Prints the styled HTML with Chromium's own PDF backend."""

    kind = StrategyKind.FULL
    max_attempts = 2

    def __init__(self, executable_path: Optional[str] = None, logger: ConsoleLogger = None):
        super().__init__(logger)
        self.executable_path = executable_path

    def _timeout_ms(self, deadline: float) -> float:
        return max(1.0, (deadline - time.monotonic()) * 1000)

    async def _launch_browser(self, lease, deadline: float):
        """Launch a fresh Chromium instance owned by the lease."""
        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise EngineUnavailable(f"Playwright driver could not start: {e}", tier=self.kind.value)
        lease.adopt(playwright.stop)

        try:
            browser = await playwright.chromium.launch(
                headless=True,
                args=LAUNCH_ARGS,
                executable_path=self.executable_path,
                timeout=self._timeout_ms(deadline),
            )
        except PlaywrightTimeoutError as e:
            raise EngineTimeout(f"Chromium did not start before the deadline: {e}", tier=self.kind.value)
        except PlaywrightError as e:
            raise EngineUnavailable(f"Chromium could not be launched: {e}", tier=self.kind.value)
        lease.adopt(browser.close)
        self.logger.log_debug(f"Launched Chromium for lease {lease.lease_id}")
        return browser

    async def render(self, styled: StyledMarkup, options: RenderOptions, deadline: float, lease) -> bytes:
        """Convert HTML to PDF using Playwright.

        Retries once with a fresh browser if the browser process crashes mid-conversion.
        """
        self.remaining(deadline)
        browser = await self._launch_browser(lease, deadline)
        width_mm, height_mm = options.page_dimensions_mm

        for attempt in range(1, self.max_attempts + 1):
            try:
                page = await browser.new_page()
                await page.set_content(styled.html, wait_until="load", timeout=self._timeout_ms(deadline))
                pdf_bytes = await page.pdf(
                    width=f"{width_mm}mm",
                    height=f"{height_mm}mm",
                    margin=options.margins.as_css(),
                    print_background=True,
                    prefer_css_page_size=True,
                    display_header_footer=options.header_footer,
                    header_template='<div></div>',
                    footer_template=FOOTER_TEMPLATE if options.header_footer else '<div></div>',
                    scale=1.0,
                )
                await page.close()
                return self.check_payload(pdf_bytes)

            except PlaywrightTimeoutError as e:
                raise EngineTimeout(f"Chromium timed out: {e}", tier=self.kind.value)
            except PlaywrightError as e:
                error_msg = str(e)
                is_crash = any(keyword in error_msg for keyword in CRASH_KEYWORDS)

                if is_crash and attempt < self.max_attempts:
                    self.logger.log_warning("Browser crashed during PDF generation, restarting and retrying...")
                    self.remaining(deadline)
                    browser = await self._launch_browser(lease, deadline)
                else:
                    raise EngineRenderError(f"Failed to convert HTML to PDF: {e}", tier=self.kind.value)

        raise EngineRenderError("Chromium produced no output", tier=self.kind.value)
