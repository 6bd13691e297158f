"""
Remote-service strategy: delegate rendering to a Gotenberg-compatible HTTP
service (``POST /forms/chromium/convert/html``).
"""

import asyncio
from typing import Dict, List, Optional, Tuple

import requests

from ..errors import (
    EngineRenderError,
    EngineTimeout,
    EngineUnavailable,
    NetworkUnavailable,
    RemoteQuotaExceeded,
)
from ..logger import ConsoleLogger
from ..models import RenderOptions, StyledMarkup
from .base import RenderStrategy, StrategyKind
from .chromium import FOOTER_TEMPLATE

CONVERT_PATH = "/forms/chromium/convert/html"

FOOTER_HTML = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"></head>
<body>{FOOTER_TEMPLATE}</body></html>
"""


class RemoteServiceStrategy(RenderStrategy):
    """Posts the styled HTML to a rendering service and returns its PDF."""

    kind = StrategyKind.REMOTE

    def __init__(self, base_url: Optional[str] = None, max_timeout: Optional[float] = None,
                 logger: ConsoleLogger = None):
        super().__init__(logger)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.max_timeout = max_timeout

    def _form_fields(self, options: RenderOptions) -> Dict[str, str]:
        width_mm, height_mm = options.page_dimensions_mm
        margins = options.margins
        # Service expects inches
        return {
            "paperWidth": f"{width_mm / 25.4:.3f}",
            "paperHeight": f"{height_mm / 25.4:.3f}",
            "marginTop": f"{margins.top / 2.54:.3f}",
            "marginRight": f"{margins.right / 2.54:.3f}",
            "marginBottom": f"{margins.bottom / 2.54:.3f}",
            "marginLeft": f"{margins.left / 2.54:.3f}",
            "printBackground": "true",
            "preferCssPageSize": "true",
        }

    def _files(self, styled: StyledMarkup, options: RenderOptions) -> List[Tuple[str, Tuple[str, bytes, str]]]:
        files = [("files", ("index.html", styled.html.encode("utf-8"), "text/html"))]
        if options.header_footer:
            files.append(("files", ("footer.html", FOOTER_HTML.encode("utf-8"), "text/html")))
        return files

    async def render(self, styled: StyledMarkup, options: RenderOptions, deadline: float, lease) -> bytes:
        if not self.base_url:
            raise EngineUnavailable("no remote rendering service configured", tier=self.kind.value)

        timeout = self.remaining(deadline)
        if self.max_timeout:
            timeout = min(timeout, self.max_timeout)

        session = requests.Session()
        lease.adopt(session.close)
        url = f"{self.base_url}{CONVERT_PATH}"
        self.logger.log_debug(f"POST {url} (timeout {timeout:.1f}s)")

        try:
            response = await asyncio.to_thread(
                session.post, url,
                data=self._form_fields(options),
                files=self._files(styled, options),
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            raise EngineTimeout(f"rendering service did not answer in {timeout:.1f}s: {e}", tier=self.kind.value)
        except requests.exceptions.ConnectionError as e:
            raise NetworkUnavailable(f"rendering service unreachable: {e}", tier=self.kind.value)
        except requests.exceptions.RequestException as e:
            raise EngineRenderError(f"request to rendering service failed: {e}", tier=self.kind.value)

        if response.status_code == 429:
            raise RemoteQuotaExceeded("rendering service quota exceeded (HTTP 429)", tier=self.kind.value)
        if response.status_code == 503:
            raise EngineUnavailable("rendering service unavailable (HTTP 503)", tier=self.kind.value)
        if not response.ok:
            raise EngineRenderError(
                f"rendering service returned HTTP {response.status_code}: {response.text[:200]}",
                tier=self.kind.value,
            )
        return self.check_payload(response.content)
