"""
Style templates and their registry.

A template is an immutable bundle of typography, colour and page-geometry
rules. The registry is built once per process and only read afterwards, so
concurrent conversions can share it without locking.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple, Union

from pygments.formatters import HtmlFormatter

from .errors import UnknownTemplate

STYLE_ROLES = (
    "document", "heading", "paragraph", "list", "task-list", "list-item", "task-item",
    "table", "code-block", "code", "math", "blockquote", "link", "image", "strike",
    "footnotes", "footnote-ref", "rule", "page-break", "generic",
)


class TemplateId(str, Enum):
    DOCUMENT = "document"
    CLEAN = "clean"
    ACADEMIC = "academic"

    @classmethod
    def choices(cls) -> str:
        return ", ".join(member.value for member in cls)


def _class_table(prefix: str) -> Mapping[str, str]:
    return MappingProxyType({role: f"{prefix}-{role}" for role in STYLE_ROLES})


@dataclass(frozen=True)
class StyleTemplate:
    """Immutable visual template keyed by its identifier."""

    identifier: str
    name: str
    description: str
    font_family: str
    heading_font_family: str
    base_font_size: str
    line_height: float
    text_color: str
    heading_color: str
    accent_color: str
    muted_color: str
    code_background: str
    border_color: str
    paragraph_align: str
    heading_scale: Tuple[float, ...]
    code_style: str
    mono_font_family: str = "'Courier New', Consolas, monospace"
    classes: Mapping[str, str] = field(default_factory=dict)
    code_css: str = ""

    def __post_init__(self):
        # Freeze derived values at registration time
        if not isinstance(self.classes, MappingProxyType):
            object.__setattr__(self, "classes", _class_table(f"md-{self.identifier}"))
        if not self.code_css:
            css = HtmlFormatter(style=self.code_style).get_style_defs(f".{self.classes['code-block']} .highlight")
            object.__setattr__(self, "code_css", css)

    def css_class(self, role: str) -> str:
        """Class name for a structural role; unknown roles get the generic class."""
        return self.classes.get(role, self.classes["generic"])

    def stylesheet(self, options) -> str:
        """Full CSS for this template under the given page options."""
        c = self.classes
        width_mm, height_mm = options.page_dimensions_mm
        margins = options.margins.as_css()
        heading_rules = "\n".join(
            f"        .{c['heading']}-{level} {{ font-size: {scale:.2f}em; }}"
            for level, scale in enumerate(self.heading_scale, start=1)
        )

        return f"""
        @page {{
            size: {width_mm}mm {height_mm}mm;
            margin: {margins['top']} {margins['right']} {margins['bottom']} {margins['left']};
        }}

        * {{
            box-sizing: border-box;
        }}

        body.{c['document']} {{
            font-family: {self.font_family};
            font-size: {self.base_font_size};
            line-height: {self.line_height};
            color: {self.text_color};
            margin: 0;
            padding: 0;
        }}

        .{c['heading']} {{
            font-family: {self.heading_font_family};
            color: {self.heading_color};
            margin-top: 0.8em;
            margin-bottom: 0.3em;
            font-weight: 600;
            page-break-after: avoid;
        }}
{heading_rules}

        .{c['heading']}-1 {{
            border-bottom: 2px solid {self.accent_color};
            padding-bottom: 0.2em;
        }}

        .{c['paragraph']} {{
            margin: 0.5em 0;
            text-align: {self.paragraph_align};
        }}

        .{c['code']} {{
            background-color: {self.code_background};
            border: 1px solid {self.border_color};
            border-radius: 3px;
            padding: 0.1em 0.3em;
            font-family: {self.mono_font_family};
            font-size: 0.85em;
        }}

        .{c['code-block']} {{
            background-color: {self.code_background};
            border: 1px solid {self.border_color};
            border-radius: 5px;
            padding: 0.5em;
            margin: 0.5em 0;
            font-family: {self.mono_font_family};
            font-size: 0.85em;
            white-space: pre-wrap;
            page-break-inside: avoid;
        }}

        .{c['blockquote']} {{
            border-left: 4px solid {self.accent_color};
            margin: 0.5em 0;
            padding: 0.3em 0.8em;
            color: {self.muted_color};
        }}

        .{c['table']} {{
            border-collapse: collapse;
            width: 100%;
            margin: 0.5em 0;
        }}

        .{c['table']} th, .{c['table']} td {{
            border: 1px solid {self.border_color};
            padding: 0.3em;
            vertical-align: top;
        }}

        .{c['table']} th {{
            background-color: {self.code_background};
            font-weight: 600;
        }}

        .{c['task-list']} {{
            list-style: none;
            padding-left: 1.2em;
        }}

        .{c['task-item']} .task-marker {{
            display: inline-block;
            width: 1.2em;
            margin-left: -1.2em;
        }}

        .{c['task-item']}[data-checked="true"] {{
            color: {self.muted_color};
        }}

        .{c['math']} {{
            font-family: 'Latin Modern Math', 'STIX Two Math', serif;
            font-style: italic;
        }}

        div.{c['math']} {{
            text-align: center;
            margin: 0.6em 0;
        }}

        .{c['link']} {{
            color: {self.accent_color};
            text-decoration: none;
        }}

        .{c['image']} {{
            max-width: 100%;
            height: auto;
        }}

        .{c['strike']} {{
            text-decoration: line-through;
        }}

        .{c['rule']} {{
            border: 0;
            border-top: 1px solid {self.border_color};
            margin: 1em 0;
        }}

        .{c['page-break']} {{
            page-break-after: always;
            break-after: page;
        }}

        .{c['footnotes']} {{
            font-size: 0.9em;
            color: {self.muted_color};
            border-top: 1px solid {self.border_color};
            margin-top: 2em;
        }}

        .{c['footnote-ref']} {{
            font-size: 0.75em;
            vertical-align: super;
        }}

{self.code_css}
"""


class TemplateRegistry:
    """Read-only lookup of style templates by identifier."""

    def __init__(self, templates: Iterable[StyleTemplate]):
        self._templates = MappingProxyType({template.identifier: template for template in templates})

    def get(self, template_id: Union[TemplateId, str]) -> StyleTemplate:
        key = template_id.value if isinstance(template_id, TemplateId) else str(template_id)
        try:
            return self._templates[key]
        except KeyError:
            raise UnknownTemplate(f"Unknown template '{key}'. Available templates: {', '.join(self._templates)}")

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._templates)

    def __contains__(self, template_id) -> bool:
        key = template_id.value if isinstance(template_id, TemplateId) else str(template_id)
        return key in self._templates

    @classmethod
    def default(cls) -> "TemplateRegistry":
        """Registry holding the built-in document, clean and academic templates."""
        return cls([
            StyleTemplate(
                identifier=TemplateId.DOCUMENT.value,
                name="Document",
                description="Print-oriented sans-serif styling with accented headings",
                font_family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif",
                heading_font_family="inherit",
                base_font_size="11pt",
                line_height=1.4,
                text_color="#333",
                heading_color="#2c3e50",
                accent_color="#3498db",
                muted_color="#555",
                code_background="#f8f9fa",
                border_color="#ddd",
                paragraph_align="justify",
                heading_scale=(1.6, 1.3, 1.1, 1.0, 0.9, 0.8),
                code_style="default",
            ),
            StyleTemplate(
                identifier=TemplateId.CLEAN.value,
                name="Clean",
                description="Minimal styling with generous whitespace and neutral colours",
                font_family="'Helvetica Neue', Helvetica, Arial, sans-serif",
                heading_font_family="inherit",
                base_font_size="10.5pt",
                line_height=1.6,
                text_color="#222",
                heading_color="#111",
                accent_color="#888",
                muted_color="#666",
                code_background="#fafafa",
                border_color="#e5e5e5",
                paragraph_align="left",
                heading_scale=(1.8, 1.4, 1.15, 1.0, 0.95, 0.9),
                code_style="friendly",
            ),
            StyleTemplate(
                identifier=TemplateId.ACADEMIC.value,
                name="Academic",
                description="Serif typesetting in the manner of a journal article",
                font_family="'Times New Roman', Times, 'Liberation Serif', serif",
                heading_font_family="'Times New Roman', Times, serif",
                base_font_size="12pt",
                line_height=1.5,
                text_color="#000",
                heading_color="#000",
                accent_color="#000",
                muted_color="#333",
                code_background="#f4f4f4",
                border_color="#999",
                paragraph_align="justify",
                heading_scale=(1.5, 1.25, 1.1, 1.0, 1.0, 1.0),
                code_style="bw",
            ),
        ])
