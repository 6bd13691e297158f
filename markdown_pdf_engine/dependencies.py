"""
Environment capability probe.

Decides once, at startup, which render-engine tiers can work in this
process. The result is injected into the degradation controller, which
never tries a tier the probe ruled out.
"""

import importlib.util
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from colorama import Fore, Style

from .config import Config
from .engines.base import StrategyKind
from .logger import ConsoleLogger

# Platforms where spawning a full browser is not possible or not allowed
SERVERLESS_MARKERS = ("AWS_LAMBDA_FUNCTION_NAME", "VERCEL", "NETLIFY", "FUNCTIONS_WORKER_RUNTIME")


@dataclass(frozen=True)
class EnvironmentCapabilities:
    """Which strategy tiers are viable here, with the reason for each verdict."""

    viable: FrozenSet[StrategyKind]
    reasons: Mapping[StrategyKind, str] = field(default_factory=dict)

    def allows(self, kind: StrategyKind) -> bool:
        return kind in self.viable

    @classmethod
    def all(cls) -> "EnvironmentCapabilities":
        return cls(frozenset(StrategyKind))

    @classmethod
    def only(cls, *kinds: StrategyKind) -> "EnvironmentCapabilities":
        reasons = {kind: "excluded by configuration" for kind in StrategyKind if kind not in kinds}
        return cls(frozenset(kinds), reasons)


def _playwright_browsers_dir() -> Path:
    configured = os.environ.get("PLAYWRIGHT_BROWSERS_PATH")
    if configured and configured != "0":
        return Path(configured)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "ms-playwright"
    if sys.platform.startswith("win"):
        return Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local")) / "ms-playwright"
    return Path.home() / ".cache" / "ms-playwright"


def probe_full(executable: Optional[str] = None) -> Tuple[bool, str]:
    """Can a headless Chromium be spawned here?"""
    marker = next((name for name in SERVERLESS_MARKERS if os.environ.get(name)), None)
    if marker:
        return False, f"serverless platform detected ({marker})"
    if importlib.util.find_spec("playwright") is None:
        return False, "playwright is not installed"
    if executable:
        if Path(executable).exists():
            return True, f"Chromium at {executable}"
        return False, f"configured Chromium executable {executable} does not exist"
    if os.environ.get("PLAYWRIGHT_BROWSERS_PATH") == "0":
        return True, "Chromium bundled inside the playwright package"
    browsers_dir = _playwright_browsers_dir()
    if browsers_dir.is_dir() and any(browsers_dir.glob("chromium*")):
        return True, f"Playwright Chromium found in {browsers_dir}"
    return False, f"no Playwright Chromium in {browsers_dir} (run: playwright install chromium)"


def probe_constrained() -> Tuple[bool, str]:
    """Is WeasyPrint importable, including its native libraries?"""
    try:
        import weasyprint  # noqa: F401
    except (ImportError, OSError) as e:
        return False, f"WeasyPrint unusable: {e}"
    return True, "WeasyPrint available"


def probe_remote(remote_url: Optional[str]) -> Tuple[bool, str]:
    if not remote_url:
        return False, "no remote rendering service configured"
    return True, f"remote service at {remote_url}"


def detect_capabilities(config: Config, logger: ConsoleLogger = None) -> EnvironmentCapabilities:
    """Resolve viable tiers from configuration and the deployment environment."""
    logger = logger or ConsoleLogger()
    forced = config.get_engines()
    if forced is not None:
        try:
            kinds = [StrategyKind(name) for name in forced]
        except ValueError:
            available = ", ".join(kind.value for kind in StrategyKind)
            raise ValueError(f"Invalid engine list '{','.join(forced)}'. Available engines: {available}")
        logger.log_debug(f"Engine tiers forced by configuration: {', '.join(forced)}")
        return EnvironmentCapabilities.only(*kinds)

    verdicts: Dict[StrategyKind, Tuple[bool, str]] = {
        StrategyKind.FULL: probe_full(config.get_chromium_executable()),
        StrategyKind.CONSTRAINED: probe_constrained(),
        StrategyKind.REMOTE: probe_remote(config.get_remote_url()),
        StrategyKind.MINIMAL: (True, "fpdf2 canvas renderer"),
    }
    for kind, (viable, reason) in verdicts.items():
        logger.log_debug(f"Engine tier {kind.value}: {'viable' if viable else 'not viable'} - {reason}")
    return EnvironmentCapabilities(
        viable=frozenset(kind for kind, (viable, _) in verdicts.items() if viable),
        reasons={kind: reason for kind, (_, reason) in verdicts.items()},
    )


def check_dependencies(config: Optional[Config] = None, check_optional: bool = True) -> bool:
    """Print the status of every engine tier. Returns False if no PDF can be produced."""
    capabilities = detect_capabilities(config or Config())
    for kind in StrategyKind.ordered():
        reason = capabilities.reasons.get(kind, "")
        if capabilities.allows(kind):
            print(f"{Fore.GREEN}✓{Style.RESET_ALL} {kind.value}: {reason}")
        elif check_optional:
            print(f"{Fore.YELLOW}✗{Style.RESET_ALL} {kind.value}: {reason}")
    return bool(capabilities.viable)
