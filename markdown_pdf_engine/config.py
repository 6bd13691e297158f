"""
Layered configuration: built-in defaults < environment (MDPDF_*) < CLI values.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

ENV_PREFIX = "MDPDF_"

DEFAULTS: Dict[str, Any] = {
    "source_dir": "docs",
    "output_dir": "output",
    "template": "document",
    "page_size": "A4",
    "margins": "1in 0.75in",
    "header_footer": True,
    "overall_deadline_ms": 25000,
    "max_concurrent_engines": 2,
    "remote_max_connections": 4,
    "backpressure": "queue",
    "acquire_timeout_ms": 5000,
    "lease_ttl_ms": 120000,
    "minimal_reserve_ms": 2000,
    "timeout_policy": "advance",
    "remote_url": None,
    "remote_timeout_ms": None,
    "chromium_executable": None,
    "engines": None,
    "max_input_bytes": 1_000_000,
    "debug": False,
}

_INT_KEYS = {
    "overall_deadline_ms", "max_concurrent_engines", "remote_max_connections", "acquire_timeout_ms",
    "lease_ttl_ms", "minimal_reserve_ms", "remote_timeout_ms", "max_input_bytes",
}
_BOOL_KEYS = {"header_footer", "debug"}
_CHOICES = {
    "backpressure": ("queue", "reject"),
    "timeout_policy": ("advance", "abort"),
}


def _coerce(key: str, raw: Any) -> Any:
    if raw is None:
        return None
    if key in _INT_KEYS:
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Configuration value '{key}' must be an integer, got '{raw}'")
    if key in _BOOL_KEYS:
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    value = str(raw)
    if key in _CHOICES and value not in _CHOICES[key]:
        raise ValueError(f"Invalid {key} '{value}'. Available: {', '.join(_CHOICES[key])}")
    return value


class Config:
    """Resolved configuration for one process."""

    def __init__(self, cli_config: Optional[Mapping[str, Any]] = None, environ: Optional[Mapping[str, str]] = None):
        environ = os.environ if environ is None else environ
        self._values = dict(DEFAULTS)

        for key in DEFAULTS:
            raw = environ.get(f"{ENV_PREFIX}{key.upper()}")
            if raw is not None and raw != "":
                self._values[key] = _coerce(key, raw)

        for key, value in (cli_config or {}).items():
            if key not in DEFAULTS:
                raise ValueError(f"Unknown configuration key '{key}'")
            if value is not None:
                self._values[key] = _coerce(key, value)

        for key in _INT_KEYS:
            value = self._values[key]
            if value is not None and value < 0:
                raise ValueError(f"Configuration value '{key}' cannot be negative: {value}")

    def get(self, key: str) -> Any:
        return self._values[key]

    def get_source_dir(self) -> Path:
        return Path(self._values["source_dir"])

    def get_output_dir(self) -> Path:
        return Path(self._values["output_dir"])

    def get_template(self) -> str:
        return self._values["template"]

    def get_page_size(self) -> str:
        return self._values["page_size"]

    def get_margins(self) -> str:
        return self._values["margins"]

    def get_header_footer(self) -> bool:
        return self._values["header_footer"]

    def get_overall_deadline_ms(self) -> int:
        return self._values["overall_deadline_ms"]

    def get_max_concurrent_engines(self) -> int:
        return max(1, self._values["max_concurrent_engines"])

    def get_remote_max_connections(self) -> int:
        return max(1, self._values["remote_max_connections"])

    def get_backpressure(self) -> str:
        return self._values["backpressure"]

    def get_acquire_timeout_ms(self) -> int:
        return self._values["acquire_timeout_ms"]

    def get_lease_ttl_ms(self) -> int:
        return self._values["lease_ttl_ms"]

    def get_minimal_reserve_ms(self) -> int:
        return self._values["minimal_reserve_ms"]

    def get_timeout_policy(self) -> str:
        return self._values["timeout_policy"]

    def get_remote_url(self) -> Optional[str]:
        return self._values["remote_url"]

    def get_remote_timeout_ms(self) -> Optional[int]:
        return self._values["remote_timeout_ms"]

    def get_chromium_executable(self) -> Optional[str]:
        return self._values["chromium_executable"]

    def get_engines(self) -> Optional[List[str]]:
        """Explicit engine list (comma separated), or None to probe the environment."""
        raw = self._values["engines"]
        if not raw:
            return None
        return [name.strip() for name in raw.split(",") if name.strip()]

    def get_max_input_bytes(self) -> int:
        return self._values["max_input_bytes"]

    def get_debug(self) -> bool:
        return self._values["debug"]
