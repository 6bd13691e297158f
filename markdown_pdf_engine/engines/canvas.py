"""
Minimal strategy: draw the document outline straight onto PDF pages with fpdf2.

No tables, no web fonts, no CSS. Headings, paragraphs, list items and code
are written as plain text with the PDF core fonts, so it works anywhere the
Python package itself can be imported.
"""

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from ..errors import EngineRenderError
from ..models import OutlineBlock, RenderOptions, StyledMarkup
from .base import RenderStrategy, StrategyKind
from .worker import WorkerError, run_in_process

HEADING_SIZES = {1: 20, 2: 16, 3: 14, 4: 12, 5: 11, 6: 10}
BODY_SIZE = 11
CODE_SIZE = 9
INDENT_MM = 6

# Core fonts are Latin-1 only
_LATIN1_REPLACEMENTS = {
    "\u00a0": " ",
    "–": "-",
    "—": "--",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "•": "*",
    "…": "...",
    "→": "->",
    "←": "<-",
    "☐": "[ ]",
    "☑": "[x]",
}


def _line_height(font_size: float) -> float:
    return font_size * 0.5


def _latin1(text: str) -> str:
    for source, target in _LATIN1_REPLACEMENTS.items():
        text = text.replace(source, target)
    return text.encode("latin-1", errors="replace").decode("latin-1")


class _CanvasDocument(FPDF):
    def __init__(self, page_numbers: bool, **kwargs):
        super().__init__(**kwargs)
        self.page_numbers = page_numbers

    def footer(self):
        if not self.page_numbers:
            return
        self.set_y(-12)
        self.set_font("Helvetica", size=8)
        self.cell(0, 8, str(self.page_no()), align="C")


def _write_block(pdf: FPDF, block: OutlineBlock) -> None:
    if block.role == "heading":
        size = HEADING_SIZES.get(block.level, BODY_SIZE)
        pdf.ln(2)
        pdf.set_font("Helvetica", style="B", size=size)
        pdf.multi_cell(0, _line_height(size), _latin1(block.text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(1)
    elif block.role == "code":
        pdf.set_font("Courier", size=CODE_SIZE)
        pdf.set_fill_color(245, 245, 245)
        pdf.multi_cell(0, _line_height(CODE_SIZE), _latin1(block.text), fill=True,
                       new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)
    elif block.role == "rule":
        y = pdf.get_y() + 2
        pdf.line(pdf.l_margin, y, pdf.w - pdf.r_margin, y)
        pdf.ln(4)
    elif block.role == "break":
        pdf.add_page()
    else:
        indent = INDENT_MM * block.level if block.role == "item" else 0
        style = "I" if block.role == "math" else ""
        pdf.set_font("Helvetica", style=style, size=BODY_SIZE)
        pdf.set_x(pdf.l_margin + indent)
        pdf.multi_cell(pdf.epw - indent, _line_height(BODY_SIZE), _latin1(block.text),
                       new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(1 if block.role in ("item", "row") else 2)


def draw_outline(styled: StyledMarkup, options: RenderOptions) -> bytes:
    """Lay out the outline on pages sized and margined per the options."""
    width_mm, height_mm = options.page_dimensions_mm
    margins = options.margins
    pdf = _CanvasDocument(options.header_footer, orientation="P", unit="mm", format=(width_mm, height_mm))
    pdf.set_margins(margins.left * 10, margins.top * 10, margins.right * 10)
    bottom = margins.bottom * 10
    pdf.set_auto_page_break(True, margin=max(bottom, 15) if options.header_footer else bottom)
    pdf.set_title(_latin1(styled.title))
    pdf.set_creator("markdown-pdf-engine")
    pdf.add_page()
    for block in styled.outline:
        _write_block(pdf, block)
    return bytes(pdf.output())


class CanvasStrategy(RenderStrategy):
    """Last-resort renderer; always available.

    Drawing runs in a child process owned by the lease so a document that
    overruns the deadline is stopped rather than left running.
    """

    kind = StrategyKind.MINIMAL

    def draw(self, styled: StyledMarkup, options: RenderOptions) -> bytes:
        return draw_outline(styled, options)

    async def render(self, styled: StyledMarkup, options: RenderOptions, deadline: float, lease) -> bytes:
        self.remaining(deadline)
        try:
            pdf_bytes = await run_in_process(lease, draw_outline, styled, options)
        except WorkerError as e:
            raise EngineRenderError(f"canvas drawing failed: {e}", tier=self.kind.value)
        return self.check_payload(pdf_bytes)
