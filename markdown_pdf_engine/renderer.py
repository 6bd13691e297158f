"""
Semantic tree to styled HTML.

Each node class maps to one rule in a dispatch table; classes without a rule
(future variants, Container) fall back to a passthrough container so that no
tree is ever rejected. Style classes are looked up from the template.
"""

import html
from typing import Callable, Dict, Iterator, List, Type

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .models import OutlineBlock, RenderOptions, StyledMarkup
from .nodes import (
    Blockquote,
    CodeBlock,
    CodeSpan,
    Container,
    Document,
    Emphasis,
    FootnoteDef,
    FootnoteRef,
    Heading,
    Image,
    LineBreak,
    Link,
    ListBlock,
    ListItem,
    MathSpan,
    PageBreak,
    Paragraph,
    SemanticNode,
    Table,
    TableCell,
    TableRow,
    Text,
    ThematicBreak,
)
from .templates import StyleTemplate

CHECKED_GLYPH = "☑"
UNCHECKED_GLYPH = "☐"

_HTML_DOCUMENT = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>{css}</style>
</head>
<body class="{body_class}">
{body}
</body>
</html>
"""

_EMPHASIS_TAGS = {"bold": "strong", "italic": "em", "strike": "del"}


def _escape(value: str) -> str:
    return html.escape(value, quote=True)


class StyledMarkupRenderer:
    """Walks a semantic tree and emits HTML annotated with template classes."""

    def __init__(self, template: StyleTemplate):
        self.template = template
        self._formatter = HtmlFormatter(nowrap=True)
        self._rules: Dict[Type[SemanticNode], Callable[[SemanticNode], str]] = {
            Document: self._document,
            Heading: self._heading,
            Paragraph: self._paragraph,
            Text: self._text,
            CodeSpan: self._code_span,
            Emphasis: self._emphasis,
            ListBlock: self._list,
            ListItem: self._list_item,
            Table: self._table,
            CodeBlock: self._code_block,
            MathSpan: self._math,
            Link: self._link,
            Image: self._image,
            FootnoteRef: self._footnote_ref,
            FootnoteDef: self._footnote_def,
            Blockquote: self._blockquote,
            ThematicBreak: self._thematic_break,
            LineBreak: self._line_break,
            PageBreak: self._page_break,
        }

    def _cls(self, role: str) -> str:
        return self.template.css_class(role)

    def render_node(self, node: SemanticNode) -> str:
        rule = self._rules.get(type(node), self._passthrough)
        return rule(node)

    def _children(self, node: SemanticNode) -> str:
        return "".join(self.render_node(child) for child in node.children)

    def _passthrough(self, node: SemanticNode) -> str:
        kind = getattr(node, "name", "") or node.kind
        return f'<div class="{self._cls("generic")}" data-kind="{_escape(kind)}">{self._children(node)}</div>'

    def _document(self, node: SemanticNode) -> str:
        body = [self.render_node(child) for child in node.children if not isinstance(child, FootnoteDef)]
        definitions = [child for child in node.children if isinstance(child, FootnoteDef)]
        if definitions:
            items = "".join(self.render_node(definition) for definition in definitions)
            body.append(f'<section class="{self._cls("footnotes")}"><ol>{items}</ol></section>')
        return "\n".join(body)

    def _heading(self, node: Heading) -> str:
        level = node.level
        return (f'<h{level} class="{self._cls("heading")} {self._cls("heading")}-{level}">'
                f'{self._children(node)}</h{level}>')

    def _paragraph(self, node: Paragraph) -> str:
        if node.tight:
            return self._children(node)
        return f'<p class="{self._cls("paragraph")}">{self._children(node)}</p>'

    def _text(self, node: Text) -> str:
        return _escape(node.content)

    def _code_span(self, node: CodeSpan) -> str:
        return f'<code class="{self._cls("code")}">{_escape(node.content)}</code>'

    def _emphasis(self, node: Emphasis) -> str:
        tag = _EMPHASIS_TAGS.get(node.style, "span")
        class_attr = f' class="{self._cls("strike")}"' if node.style == "strike" else ""
        return f"<{tag}{class_attr}>{self._children(node)}</{tag}>"

    def _list(self, node: ListBlock) -> str:
        if node.style == "ordered":
            start = f' start="{node.start}"' if node.start != 1 else ""
            return f'<ol class="{self._cls("list")}"{start}>{self._children(node)}</ol>'
        if node.style == "task":
            return f'<ul class="{self._cls("list")} {self._cls("task-list")}">{self._children(node)}</ul>'
        return f'<ul class="{self._cls("list")}">{self._children(node)}</ul>'

    def _list_item(self, node: ListItem) -> str:
        if node.checked is None:
            return f'<li class="{self._cls("list-item")}">{self._children(node)}</li>'
        glyph = CHECKED_GLYPH if node.checked else UNCHECKED_GLYPH
        state = "true" if node.checked else "false"
        return (f'<li class="{self._cls("list-item")} {self._cls("task-item")}" data-checked="{state}">'
                f'<span class="task-marker">{glyph}</span>{self._children(node)}</li>')

    def _table_cell(self, cell: SemanticNode, align) -> str:
        header = isinstance(cell, TableCell) and cell.header
        tag = "th" if header else "td"
        cell_align = (cell.align if isinstance(cell, TableCell) else None) or align
        style = f' style="text-align: {cell_align}"' if cell_align else ""
        return f"<{tag}{style}>{self._children(cell)}</{tag}>"

    def _table(self, node: Table) -> str:
        head_rows: List[str] = []
        body_rows: List[str] = []
        for row in node.children:
            cells = "".join(
                self._table_cell(cell, node.alignments[index] if index < len(node.alignments) else None)
                for index, cell in enumerate(row.children)
            )
            target = head_rows if isinstance(row, TableRow) and row.header else body_rows
            target.append(f"<tr>{cells}</tr>")
        thead = f"<thead>{''.join(head_rows)}</thead>" if head_rows else ""
        tbody = f"<tbody>{''.join(body_rows)}</tbody>" if body_rows else ""
        return f'<table class="{self._cls("table")}">{thead}{tbody}</table>'

    def _code_block(self, node: CodeBlock) -> str:
        highlighted = None
        if node.language:
            try:
                lexer = get_lexer_by_name(node.language, stripall=False)
                highlighted = highlight(node.code, lexer, self._formatter)
            except ClassNotFound:
                highlighted = None
        if highlighted is None:
            highlighted = _escape(node.code)
        language = f' data-language="{_escape(node.language)}"' if node.language else ""
        return (f'<div class="{self._cls("code-block")}"{language}>'
                f'<pre class="highlight"><code>{highlighted}</code></pre></div>')

    def _math(self, node: MathSpan) -> str:
        if node.display:
            return f'<div class="{self._cls("math")}" data-display="true">{_escape(node.expression)}</div>'
        return f'<span class="{self._cls("math")}" data-display="false">{_escape(node.expression)}</span>'

    def _link(self, node: Link) -> str:
        title = f' title="{_escape(node.title)}"' if node.title else ""
        return f'<a class="{self._cls("link")}" href="{_escape(node.href)}"{title}>{self._children(node)}</a>'

    def _image(self, node: Image) -> str:
        title = f' title="{_escape(node.title)}"' if node.title else ""
        return f'<img class="{self._cls("image")}" src="{_escape(node.src)}" alt="{_escape(node.alt)}"{title}>'

    def _footnote_ref(self, node: FootnoteRef) -> str:
        return (f'<sup class="{self._cls("footnote-ref")}">'
                f'<a href="#fn-{node.number}" id="fnref-{node.number}">{node.number}</a></sup>')

    def _footnote_def(self, node: FootnoteDef) -> str:
        return f'<li id="fn-{node.number}">{self._children(node)}</li>'

    def _blockquote(self, node: Blockquote) -> str:
        return f'<blockquote class="{self._cls("blockquote")}">{self._children(node)}</blockquote>'

    def _thematic_break(self, node: ThematicBreak) -> str:
        return f'<hr class="{self._cls("rule")}">'

    def _line_break(self, node: LineBreak) -> str:
        return "<br>\n" if node.hard else "\n"

    def _page_break(self, node: PageBreak) -> str:
        return f'<div class="{self._cls("page-break")}"></div>'


def _outline(node: SemanticNode, depth: int = 0) -> Iterator[OutlineBlock]:
    """Plain-text block projection for engines without layout support."""
    if isinstance(node, Heading):
        yield OutlineBlock("heading", node.plain_text().strip(), node.level)
    elif isinstance(node, Paragraph):
        text = node.plain_text().strip()
        if text:
            yield OutlineBlock("paragraph", text, depth)
    elif isinstance(node, ListBlock):
        for number, item in enumerate(node.children, start=node.start):
            if node.style == "ordered":
                marker = f"{number}."
            elif isinstance(item, ListItem) and item.checked is not None:
                marker = "[x]" if item.checked else "[ ]"
            else:
                marker = "-"
            inline = [child for child in item.children if not isinstance(child, ListBlock)]
            text = " ".join(child.plain_text().strip() for child in inline).strip()
            yield OutlineBlock("item", f"{marker} {text}", depth)
            for nested in item.children:
                if isinstance(nested, ListBlock):
                    yield from _outline(nested, depth + 1)
    elif isinstance(node, CodeBlock):
        yield OutlineBlock("code", node.code.rstrip("\n"), depth)
    elif isinstance(node, MathSpan):
        yield OutlineBlock("math", node.expression, depth)
    elif isinstance(node, Table):
        for row in node.children:
            yield OutlineBlock("row", " | ".join(cell.plain_text().strip() for cell in row.children), depth)
    elif isinstance(node, FootnoteDef):
        yield OutlineBlock("paragraph", f"[{node.number}] {node.plain_text().strip()}", depth)
    elif isinstance(node, ThematicBreak):
        yield OutlineBlock("rule")
    elif isinstance(node, PageBreak):
        yield OutlineBlock("break")
    else:
        for child in node.children:
            yield from _outline(child, depth)


def render(tree: Document, template: StyleTemplate, options: RenderOptions = None) -> StyledMarkup:
    """Render a semantic tree into a standalone styled HTML document.

    Args:
        tree: Document root from parse()
        template: Style template resolved from the registry
        options: Page options used for the @page rule (defaults apply if omitted)

    Returns:
        StyledMarkup holding the HTML, title and plain-text outline
    """
    options = options or RenderOptions()
    renderer = StyledMarkupRenderer(template)
    body = renderer.render_node(tree)
    title = getattr(tree, "title", "Document")
    document_html = _HTML_DOCUMENT.format(
        title=_escape(title),
        css=template.stylesheet(options),
        body_class=template.css_class("document"),
        body=body,
    )
    return StyledMarkup(
        html=document_html,
        title=title,
        template_id=template.identifier,
        outline=tuple(_outline(tree)),
    )
