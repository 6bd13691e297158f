"""
Semantic tree produced by the parser.

Each node class is one variant of the document model; children keep source
reading order. The tree is built per request and discarded once rendered.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional


@dataclass
class SemanticNode:
    """Base node. Subclasses set ``kind`` and add their own fields."""

    children: List["SemanticNode"] = field(default_factory=list)
    kind = "node"

    def append(self, child: "SemanticNode") -> "SemanticNode":
        self.children.append(child)
        return child

    def walk(self) -> Iterator["SemanticNode"]:
        """Yield this node and its descendants in document order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def plain_text(self) -> str:
        """Concatenated text content of the subtree."""
        parts = []
        for node in self.walk():
            if isinstance(node, (Text, CodeSpan)):
                parts.append(node.content)
            elif isinstance(node, MathSpan):
                parts.append(node.expression)
            elif isinstance(node, LineBreak):
                parts.append(" ")
        return "".join(parts)


@dataclass
class Document(SemanticNode):
    title: str = "Document"
    # ParseDegraded notes; conversion continues regardless
    warnings: List[str] = field(default_factory=list)
    kind = "document"


@dataclass
class Heading(SemanticNode):
    level: int = 1
    kind = "heading"


@dataclass
class Paragraph(SemanticNode):
    # Paragraphs inside tight lists render without block spacing
    tight: bool = False
    kind = "paragraph"


@dataclass
class Text(SemanticNode):
    content: str = ""
    kind = "text"


@dataclass
class CodeSpan(SemanticNode):
    content: str = ""
    kind = "code_span"


@dataclass
class Emphasis(SemanticNode):
    style: str = "italic"  # bold, italic, strike
    kind = "emphasis"


@dataclass
class ListBlock(SemanticNode):
    style: str = "unordered"  # ordered, unordered, task
    start: int = 1
    kind = "list"


@dataclass
class ListItem(SemanticNode):
    checked: Optional[bool] = None
    kind = "list_item"


@dataclass
class TableCell(SemanticNode):
    header: bool = False
    align: Optional[str] = None  # left, center, right
    kind = "table_cell"


@dataclass
class TableRow(SemanticNode):
    kind = "table_row"

    @property
    def header(self) -> bool:
        return any(isinstance(cell, TableCell) and cell.header for cell in self.children)


@dataclass
class Table(SemanticNode):
    alignments: List[Optional[str]] = field(default_factory=list)
    kind = "table"

    @property
    def rows(self) -> List[List[SemanticNode]]:
        return [row.children for row in self.children]

    @property
    def column_count(self) -> int:
        return max((len(row.children) for row in self.children), default=0)


@dataclass
class CodeBlock(SemanticNode):
    language: str = ""
    code: str = ""
    kind = "code_block"


@dataclass
class MathSpan(SemanticNode):
    display: bool = False
    expression: str = ""
    kind = "math"


@dataclass
class Link(SemanticNode):
    href: str = ""
    title: str = ""
    kind = "link"


@dataclass
class Image(SemanticNode):
    src: str = ""
    alt: str = ""
    title: str = ""
    kind = "image"


@dataclass
class FootnoteRef(SemanticNode):
    label: str = ""
    number: int = 0
    kind = "footnote_ref"


@dataclass
class FootnoteDef(SemanticNode):
    label: str = ""
    number: int = 0
    kind = "footnote_def"


@dataclass
class Blockquote(SemanticNode):
    kind = "blockquote"


@dataclass
class ThematicBreak(SemanticNode):
    kind = "thematic_break"


@dataclass
class LineBreak(SemanticNode):
    hard: bool = False
    kind = "line_break"


@dataclass
class PageBreak(SemanticNode):
    kind = "page_break"


@dataclass
class Container(SemanticNode):
    """Node for token types the tree builder does not recognise."""

    name: str = ""
    kind = "container"
