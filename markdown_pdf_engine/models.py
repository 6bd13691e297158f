"""
Request-scoped value objects: page options, render requests and outcomes.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from .errors import ErrorKind, InvalidRequest, UnknownTemplate
from .templates import TemplateId

PDF_CONTENT_TYPE = "application/pdf"

# Paper dimensions in millimetres (width, height), portrait
PAGE_SIZES: Dict[str, Tuple[float, float]] = {
    "A3": (297.0, 420.0),
    "A4": (210.0, 297.0),
    "A5": (148.0, 210.0),
    "Letter": (215.9, 279.4),
    "Legal": (215.9, 355.6),
}

DEFAULT_MARGINS = "1in 0.75in"
DEFAULT_DEADLINE_MS = 25000

_MARGIN_PATTERN = re.compile(r'^(-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)\s*(cm|in|mm|pt|px)?$')


def _validate_margin(margin_str: str) -> str:
    """Validate and normalize a single margin value."""
    # Extract numeric value and unit
    match = _MARGIN_PATTERN.match(margin_str.strip())
    if not match:
        raise ValueError(f"Invalid margin format: '{margin_str}'. Use format like '1in', '2.5cm', '10mm', etc.")

    value_str, unit = match.groups()
    value = float(value_str)

    # Set default unit to 'in' if not specified
    if not unit:
        unit = 'in'

    value_inches = _convert_margin_to_cm(f"{value}{unit}") / 2.54

    # Validate range: minimum 0 inches, maximum 3 inches
    if value_inches < 0:
        raise ValueError(f"Margin cannot be negative: '{margin_str}'. Minimum value is 0.")
    elif value_inches > 3:
        raise ValueError(f"Margin too large: '{margin_str}'. Maximum value is 3 inches (7.62cm).")

    return f"{value}{unit}"


def _convert_margin_to_cm(margin_str: str) -> float:
    """Convert a margin string to centimeters."""
    match = _MARGIN_PATTERN.match(margin_str.strip())
    if not match:
        return 2.54  # default 1 inch in cm

    value_str, unit = match.groups()
    value = float(value_str)

    if unit == 'cm':
        return value
    elif unit == 'mm':
        return value / 10
    elif unit == 'pt':
        return value * 0.0352778
    elif unit == 'px':
        return value * 0.0264583
    else:  # 'in' or no unit
        return value * 2.54


@dataclass(frozen=True)
class Margins:
    """Per-side page margins in centimeters."""

    top: float
    right: float
    bottom: float
    left: float

    @classmethod
    def parse(cls, page_margins: str) -> "Margins":
        """Parse a CSS-style margin string (1, 2, or 4 values)."""
        margin_parts = page_margins.split()

        if len(margin_parts) == 1:
            # All margins same
            margin = _convert_margin_to_cm(_validate_margin(margin_parts[0]))
            return cls(margin, margin, margin, margin)
        elif len(margin_parts) == 2:
            # Vertical and horizontal
            vertical = _convert_margin_to_cm(_validate_margin(margin_parts[0]))
            horizontal = _convert_margin_to_cm(_validate_margin(margin_parts[1]))
            return cls(vertical, horizontal, vertical, horizontal)
        elif len(margin_parts) == 4:
            # Top, right, bottom, left
            top, right, bottom, left = (_convert_margin_to_cm(_validate_margin(part)) for part in margin_parts)
            return cls(top, right, bottom, left)
        else:
            raise ValueError(f"Invalid margin format: '{page_margins}'. Use 1, 2, or 4 values.")

    def as_css(self) -> Dict[str, str]:
        return {
            'top': f"{self.top:.3f}cm",
            'right': f"{self.right:.3f}cm",
            'bottom': f"{self.bottom:.3f}cm",
            'left': f"{self.left:.3f}cm",
        }


@dataclass(frozen=True)
class RenderOptions:
    """Page and budget configuration for one conversion."""

    page_size: str = "A4"
    margins: Margins = field(default_factory=lambda: Margins.parse(DEFAULT_MARGINS))
    header_footer: bool = True
    overall_deadline_ms: int = DEFAULT_DEADLINE_MS

    def __post_init__(self):
        if self.page_size not in PAGE_SIZES:
            available = ", ".join(PAGE_SIZES)
            raise ValueError(f"Invalid page size '{self.page_size}'. Available sizes: {available}")
        if self.overall_deadline_ms <= 0:
            raise ValueError(f"overall_deadline_ms must be positive, got {self.overall_deadline_ms}")

    @property
    def page_dimensions_mm(self) -> Tuple[float, float]:
        return PAGE_SIZES[self.page_size]


@dataclass(frozen=True)
class RenderRequest:
    """Input bundle for a single conversion. Immutable once created."""

    markup: str
    template: Union[TemplateId, str] = TemplateId.DOCUMENT
    options: RenderOptions = field(default_factory=RenderOptions)

    @classmethod
    def create(
        cls,
        markup: str,
        template: Union[TemplateId, str] = TemplateId.DOCUMENT,
        page_size: str = "A4",
        margins: str = DEFAULT_MARGINS,
        header_footer: bool = True,
        overall_deadline_ms: int = DEFAULT_DEADLINE_MS,
    ) -> "RenderRequest":
        """Build a validated request, raising UnknownTemplate or InvalidRequest."""
        try:
            template_id = TemplateId(template)
        except ValueError:
            raise UnknownTemplate(f"Unknown template '{template}'. Available templates: {TemplateId.choices()}")
        try:
            options = RenderOptions(
                page_size=page_size,
                margins=Margins.parse(margins),
                header_footer=header_footer,
                overall_deadline_ms=overall_deadline_ms,
            )
        except ValueError as e:
            raise InvalidRequest(str(e))
        return cls(markup=markup, template=template_id, options=options)


@dataclass(frozen=True)
class OutlineBlock:
    """Plain-text projection of one block, for engines without layout support."""

    role: str  # heading, paragraph, item, code, math, row, rule, break
    text: str = ""
    level: int = 0


@dataclass(frozen=True)
class StyledMarkup:
    """HTML document with the template stylesheet embedded."""

    html: str
    title: str
    template_id: str
    outline: Tuple[OutlineBlock, ...] = ()


@dataclass(frozen=True)
class TierAttempt:
    """Record of one strategy tier tried (or skipped) during a conversion."""

    tier: str
    error_kind: Optional[ErrorKind] = None
    cause: str = ""
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None


@dataclass(frozen=True)
class RenderOutcome:
    """Either a PDF payload or a single terminal failure."""

    payload: Optional[bytes] = None
    content_type: Optional[str] = None
    strategy: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    cause: str = ""
    failed_tier: Optional[str] = None
    attempts: Tuple[TierAttempt, ...] = ()
    warnings: Tuple[str, ...] = ()

    @classmethod
    def success(cls, payload: bytes, strategy: str, attempts=(), warnings=()) -> "RenderOutcome":
        return cls(
            payload=payload,
            content_type=PDF_CONTENT_TYPE,
            strategy=strategy,
            attempts=tuple(attempts),
            warnings=tuple(warnings),
        )

    @classmethod
    def failure(cls, error_kind: ErrorKind, cause: str, failed_tier: Optional[str] = None,
                attempts=(), warnings=()) -> "RenderOutcome":
        return cls(
            error_kind=error_kind,
            cause=cause,
            failed_tier=failed_tier,
            attempts=tuple(attempts),
            warnings=tuple(warnings),
        )

    @property
    def ok(self) -> bool:
        return self.payload is not None

    @property
    def content_length(self) -> int:
        return len(self.payload) if self.payload is not None else 0

    @property
    def retryable(self) -> bool:
        return self.error_kind is not None and self.error_kind.retryable

    @property
    def failed_tiers(self) -> Tuple[str, ...]:
        return tuple(attempt.tier for attempt in self.attempts if not attempt.succeeded)
