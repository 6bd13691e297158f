"""
Markdown parsing into the semantic tree.

Uses markdown-it-py with the extensions the pipeline supports:
- CommonMark base, raw HTML disabled (kept as literal text)
- GFM tables and strikethrough
- Footnotes
- Dollar math ($inline$ and $$display$$)
- GFM task lists

The flat token stream is folded into SemanticNode objects with an explicit
stack, so input depth never turns into Python recursion depth. Parsing is
total: anything unexpected is recorded as a warning on the Document and the
offending text is kept as literal text. Blocks nested past MAX_NESTING are
not tokenized by markdown-it; their source lines are kept as a literal
paragraph in the deepest container that was built.
"""

import re
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple, Type

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin
from mdit_py_plugins.footnote import footnote_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

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

MAX_NESTING = 40

_ALIGN_STYLE = re.compile(r'text-align:\s*(left|center|right)')
_PAGE_BREAK = re.compile(r'^(?:<!--\s*page-break\s*-->|<page-break>|\\pagebreak)$', re.IGNORECASE)

# Structural wrappers that carry no meaning of their own in the tree
_TRANSPARENT_TOKENS = {
    "thead_open", "thead_close", "tbody_open", "tbody_close",
    "footnote_block_open", "footnote_block_close", "footnote_anchor",
}

_EMPHASIS_STYLES = {"strong_open": "bold", "em_open": "italic", "s_open": "strike"}


def create_parser() -> MarkdownIt:
    """Create configured markdown-it parser."""
    md = MarkdownIt("commonmark", {"html": False, "maxNesting": MAX_NESTING})
    md.enable("table")
    md.enable("strikethrough")
    md.use(footnote_plugin)
    md.use(dollarmath_plugin, double_inline=True)
    md.use(tasklists_plugin)
    return md


@lru_cache(maxsize=1)
def get_parser() -> MarkdownIt:
    """Shared parser instance; markdown-it keeps no per-parse state on it."""
    return create_parser()


class _TreeBuilder:
    """Stack of open nodes with the closing token type each one expects."""

    def __init__(self, root: SemanticNode, warnings: List[str]):
        self.root = root
        self.warnings = warnings
        self._stack: List[Tuple[SemanticNode, str]] = []

    @property
    def current(self) -> SemanticNode:
        return self._stack[-1][0] if self._stack else self.root

    def add(self, node: SemanticNode) -> None:
        parent = self.current
        # Keep runs of text in one node
        if isinstance(node, Text) and parent.children and isinstance(parent.children[-1], Text):
            parent.children[-1].content += node.content
            return
        parent.append(node)

    def open(self, node: SemanticNode, close_type: str) -> None:
        self.current.append(node)
        self._stack.append((node, close_type))

    def close(self, token_type: str) -> None:
        if self._stack and self._stack[-1][1] == token_type:
            self._stack.pop()
            return
        if any(expected == token_type for _, expected in self._stack):
            while self._stack[-1][1] != token_type:
                node, _ = self._stack.pop()
                self.warnings.append(f"Unclosed {node.kind} closed implicitly by {token_type}")
            self._stack.pop()
        else:
            self.warnings.append(f"Ignored unbalanced token {token_type}")

    def enclosing(self, node_type: Type[SemanticNode]) -> Optional[SemanticNode]:
        for node, _ in reversed(self._stack):
            if isinstance(node, node_type):
                return node
        return None

    def finish(self) -> None:
        for node, _ in self._stack:
            self.warnings.append(f"Unclosed {node.kind} at end of input")
        self._stack.clear()


def _close_type(token_type: str) -> str:
    if token_type.endswith("_open"):
        return token_type[:-len("_open")] + "_close"
    return token_type


def _alignment(token) -> Optional[str]:
    match = _ALIGN_STYLE.search(token.attrs.get("style", "") or "")
    return match.group(1) if match else None


def _has_class(token, name: str) -> bool:
    return name in str(token.attrs.get("class", "") or "").split()


def _task_checkbox(token) -> Optional[bool]:
    """Checked state of a tasklists checkbox token, None for any other token."""
    if token.type != "html_inline" or "task-list-item-checkbox" not in token.content:
        return None
    return 'checked="checked"' in token.content


def _footnote_number(meta) -> int:
    return int((meta or {}).get("id", 0)) + 1


def _footnote_label(meta) -> str:
    meta = meta or {}
    label = meta.get("label")
    return str(label) if label else str(_footnote_number(meta))


def _open_block_node(token) -> SemanticNode:
    """Map an opening block token to its node."""
    token_type = token.type
    if token_type == "heading_open":
        level = int(token.tag[1:]) if token.tag[1:].isdigit() else 1
        return Heading(level=min(max(level, 1), 6))
    if token_type == "paragraph_open":
        return Paragraph(tight=bool(token.hidden))
    if token_type in ("bullet_list_open", "ordered_list_open") and _has_class(token, "contains-task-list"):
        return ListBlock(style="task")
    if token_type == "bullet_list_open":
        return ListBlock(style="unordered")
    if token_type == "ordered_list_open":
        start = token.attrs.get("start", 1)
        return ListBlock(style="ordered", start=int(start) if str(start).isdigit() else 1)
    if token_type == "list_item_open":
        return ListItem()
    if token_type == "blockquote_open":
        return Blockquote()
    if token_type == "table_open":
        return Table()
    if token_type == "tr_open":
        return TableRow()
    if token_type in ("th_open", "td_open"):
        return TableCell(header=token_type == "th_open", align=_alignment(token))
    if token_type == "footnote_open":
        return FootnoteDef(label=_footnote_label(token.meta), number=_footnote_number(token.meta))
    return Container(name=token_type)


def _block_leaf(token) -> Optional[SemanticNode]:
    """Map a self-contained block token (other than inline) to its node."""
    token_type = token.type
    if token_type in ("fence", "code_block"):
        language = token.info.strip().split()[0] if token.info and token.info.strip() else ""
        return CodeBlock(language=language, code=token.content)
    if token_type in ("math_block", "math_block_label"):
        return MathSpan(display=True, expression=token.content.strip())
    if token_type == "hr":
        return ThematicBreak()
    if token.content:
        return Paragraph(children=[Text(content=token.content)])
    return None


def _inline_leaf(token) -> Optional[SemanticNode]:
    """Map a self-contained inline token to its node."""
    token_type = token.type
    if token_type in ("text", "html_inline"):
        return Text(content=token.content)
    if token_type == "softbreak":
        return LineBreak(hard=False)
    if token_type == "hardbreak":
        return LineBreak(hard=True)
    if token_type == "code_inline":
        return CodeSpan(content=token.content)
    if token_type == "image":
        return Image(src=token.attrs.get("src", "") or "", alt=token.content,
                     title=token.attrs.get("title", "") or "")
    if token_type == "footnote_ref":
        return FootnoteRef(label=_footnote_label(token.meta), number=_footnote_number(token.meta))
    if token_type == "math_inline":
        return MathSpan(display=False, expression=token.content)
    if token_type == "math_inline_double":
        return MathSpan(display=True, expression=token.content)
    if token.content:
        return Text(content=token.content)
    return None


def _build_inline(children: Iterable, parent: SemanticNode, warnings: List[str]) -> None:
    """Inline-span recognition within one block's content."""
    builder = _TreeBuilder(parent, warnings)
    for token in children:
        if token.nesting == 1:
            if token.type in _EMPHASIS_STYLES:
                node = Emphasis(style=_EMPHASIS_STYLES[token.type])
            elif token.type == "link_open":
                node = Link(href=token.attrs.get("href", "") or "", title=token.attrs.get("title", "") or "")
            else:
                node = Container(name=token.type)
            builder.open(node, _close_type(token.type))
        elif token.nesting == -1:
            builder.close(token.type)
        else:
            node = _inline_leaf(token)
            if node is not None:
                builder.add(node)
    builder.finish()


def _source_lines(source: str) -> List[str]:
    # Same line splitting markdown-it uses for token.map
    return re.split(r"\r\n?|\n", source)


def _skipped_container(tokens: List, index: int) -> bool:
    """True for a container markdown-it opened past its nesting limit and left empty."""
    token = tokens[index]
    return (token.nesting == 1 and token.level >= MAX_NESTING - 1 and token.map is not None
            and index + 1 < len(tokens) and tokens[index + 1].nesting == -1)


def _start_task_item(builder: _TreeBuilder, children: List) -> Tuple[List, Optional[bool]]:
    checked = _task_checkbox(children[0]) if children else None
    if checked is None:
        return children, None
    item = builder.enclosing(ListItem)
    if item is not None:
        item.checked = checked
    return children[1:], checked


def _strip_leading_space(paragraph: SemanticNode) -> None:
    if paragraph.children and isinstance(paragraph.children[0], Text):
        first = paragraph.children[0]
        first.content = first.content.lstrip()
        if not first.content:
            paragraph.children.pop(0)


def _build_blocks(tokens: List, document: Document, source: str = "") -> None:
    """Block-structure recognition; inline content is expanded per block."""
    builder = _TreeBuilder(document, document.warnings)
    lines = None
    recovered_until = 0
    for index, token in enumerate(tokens):
        if token.type in _TRANSPARENT_TOKENS:
            continue
        if token.nesting == 1:
            builder.open(_open_block_node(token), _close_type(token.type))
            if _skipped_container(tokens, index):
                lines = lines if lines is not None else _source_lines(source)
                start, end = max(token.map[0], recovered_until), token.map[1]
                literal = "\n".join(lines[start:end]).strip()
                if literal:
                    builder.add(Paragraph(children=[Text(content=literal)]))
                    document.warnings.append(
                        f"Nesting deeper than {MAX_NESTING} levels; lines {start + 1}-{end} kept as literal text")
                recovered_until = max(recovered_until, end)
        elif token.nesting == -1:
            builder.close(token.type)
        elif token.type == "inline":
            children, checked = _start_task_item(builder, list(token.children or []))
            paragraph = builder.current
            _build_inline(children, paragraph, document.warnings)
            if checked is not None:
                _strip_leading_space(paragraph)
        else:
            node = _block_leaf(token)
            if node is not None:
                builder.add(node)
    builder.finish()


def _pad_tables(document: Document) -> None:
    """Pad short rows with empty cells so every row has the same width."""
    for node in document.walk():
        if not isinstance(node, Table):
            continue
        width = node.column_count
        header = next((row for row in node.children if isinstance(row, TableRow) and row.header), None)
        node.alignments = [
            cell.align if isinstance(cell, TableCell) else None
            for cell in (header.children if header else [])
        ]
        node.alignments += [None] * (width - len(node.alignments))
        for row in node.children:
            is_header = isinstance(row, TableRow) and row.header
            while len(row.children) < width:
                column = len(row.children)
                row.append(TableCell(header=is_header, align=node.alignments[column]))


def _mark_page_breaks(document: Document) -> None:
    for parent in document.walk():
        for index, child in enumerate(parent.children):
            if (isinstance(child, Paragraph) and len(child.children) == 1
                    and isinstance(child.children[0], Text)
                    and _PAGE_BREAK.match(child.children[0].content.strip())):
                parent.children[index] = PageBreak()


def _resolve_footnotes(document: Document) -> None:
    """Cross-reference resolution against the complete tree."""
    definitions = sorted(
        (child for child in document.children if isinstance(child, FootnoteDef)),
        key=lambda definition: definition.number,
    )
    defined = {definition.number for definition in definitions}

    for parent in document.walk():
        for index, child in enumerate(parent.children):
            if isinstance(child, FootnoteRef) and child.number not in defined:
                document.warnings.append(f"Footnote [^{child.label}] has no definition")
                parent.children[index] = Text(content=f"[^{child.label}]")

    # Definitions close the document, in numbering order
    document.children = [child for child in document.children if not isinstance(child, FootnoteDef)]
    document.children.extend(definitions)


def _extract_title(document: Document) -> str:
    for node in document.walk():
        if isinstance(node, Heading) and node.level == 1:
            heading_text = node.plain_text().strip()
            if heading_text:
                return heading_text
    return "Document"


def _normalise_source(text) -> Tuple[str, List[str]]:
    warnings = []
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
        warnings.append("Input was bytes; decoded as UTF-8 with replacement")
    elif not isinstance(text, str):
        text = "" if text is None else str(text)
        warnings.append("Input was not text; converted with str()")
    if "\x00" in text:
        text = text.replace("\x00", "�")
        warnings.append("NUL characters replaced with U+FFFD")
    return text, warnings


def parse(text: str) -> Document:
    """Parse markdown text into the semantic tree.

    Never raises: on an internal failure the whole input becomes a single
    literal paragraph and the failure is recorded in ``Document.warnings``.

    Args:
        text: Markdown source

    Returns:
        Document root node
    """
    source, warnings = _normalise_source(text)
    document = Document(warnings=warnings)
    try:
        _build_blocks(get_parser().parse(source), document, source)
        _pad_tables(document)
        _mark_page_breaks(document)
        _resolve_footnotes(document)
        document.title = _extract_title(document)
    except Exception as e:
        document = Document(
            children=[Paragraph(children=[Text(content=source)])] if source else [],
            warnings=warnings + [f"Parsing failed ({type(e).__name__}: {e}); kept input as literal text"],
        )
    return document
