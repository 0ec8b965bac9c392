"""Safe structured rendering of the model's markdown-like replies.

The reply is never interpreted as HTML. It is parsed into a small node tree
(paragraphs, lists, strong/emphasis spans, line breaks) and every text node is
escaped when the tree is serialized for the storefront widget.

Rules, applied in order:
    1. ``***x***`` / ``___x___`` -> strong wrapping emphasis,
       then ``**x**`` / ``__x__`` -> strong
    2. ``*x*`` / ``_x_``      -> emphasis, which may wrap strong spans
    3. ``-``, ``*``, ``•``, ``N.`` line prefixes -> list items, grouped per run
    4. ``#`` .. ``###`` lines -> strong line followed by a break
    5. blank lines split paragraphs, single newlines become breaks
    6. loose inline content is wrapped in a paragraph
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import List, Optional

STRONG_EM_RE = re.compile(r"\*\*\*(?=\S)(.+?)(?<=\S)\*\*\*|___(?=\S)(.+?)(?<=\S)___")
BOLD_RE = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*|__(?=\S)(.+?)(?<=\S)__")
ITALIC_RE = re.compile(
    r"\*(?=\S)([^*]+?)(?<=\S)\*|(?<![A-Za-z0-9_])_(?=\S)([^_]+?)(?<=\S)_(?![A-Za-z0-9_])"
)
LIST_ITEM_RE = re.compile(r"^\s*(?:([-*•])|(\d+)\.)\s+(.*)$")
HEADER_RE = re.compile(r"^\s*#{1,3}\s+(.*?)\s*#*\s*$")
PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n+")

# Private-use code points delimit parked strong spans during inline parsing.
SPAN_OPEN = "\ue000"
SPAN_CLOSE = "\ue001"
SPAN_RE = re.compile(SPAN_OPEN + r"(\d+)" + SPAN_CLOSE)


@dataclass
class Node:
    """Rendered node; tag "text" carries a literal string, "br" is a line break."""
    tag: str
    text: str = ""
    children: List["Node"] = field(default_factory=list)

    def to_html(self) -> str:
        if self.tag == "text":
            return html.escape(self.text)
        if self.tag == "br":
            return "<br>"
        inner = "".join(child.to_html() for child in self.children)
        return f"<{self.tag}>{inner}</{self.tag}>"

    def plain_text(self) -> str:
        if self.tag == "text":
            return self.text
        if self.tag == "br":
            return "\n"
        return "".join(child.plain_text() for child in self.children)


@dataclass
class RenderedReply:
    """Ordered block-level nodes of one reply."""
    blocks: List[Node] = field(default_factory=list)

    def to_html(self) -> str:
        return "".join(block.to_html() for block in self.blocks)

    def plain_text(self) -> str:
        return "\n\n".join(block.plain_text() for block in self.blocks)


def text_node(value: str) -> Node:
    return Node("text", text=value)


def render_inline(value: str) -> List[Node]:
    """Parse strong+emphasis, then bold, then italics over the whole span.

    Strong spans are parked behind placeholders while italics are matched, so an
    emphasis span may wrap bold text and no marker leaks into the output.
    """
    spans: List[Node] = []

    def park(node: Node) -> str:
        spans.append(node)
        return f"{SPAN_OPEN}{len(spans) - 1}{SPAN_CLOSE}"

    text = value.replace(SPAN_OPEN, "").replace(SPAN_CLOSE, "")
    text = STRONG_EM_RE.sub(
        lambda match: park(Node("strong", children=[Node("em", children=[text_node(_inner(match))])])),
        text,
    )
    text = BOLD_RE.sub(
        lambda match: park(Node("strong", children=_render_italics(_inner(match), spans))),
        text,
    )
    return _render_italics(text, spans)


def _inner(match: "re.Match[str]") -> str:
    return match.group(1) if match.group(1) is not None else match.group(2)


def _render_italics(value: str, spans: List[Node]) -> List[Node]:
    nodes: List[Node] = []
    position = 0
    for match in ITALIC_RE.finditer(value):
        if match.start() > position:
            nodes.extend(_unpark(value[position : match.start()], spans))
        nodes.append(Node("em", children=_unpark(_inner(match), spans)))
        position = match.end()
    if position < len(value):
        nodes.extend(_unpark(value[position:], spans))
    return nodes


def _unpark(value: str, spans: List[Node]) -> List[Node]:
    nodes: List[Node] = []
    position = 0
    for match in SPAN_RE.finditer(value):
        if match.start() > position:
            nodes.append(text_node(value[position : match.start()]))
        nodes.append(spans[int(match.group(1))])
        position = match.end()
    if position < len(value):
        nodes.append(text_node(value[position:]))
    return nodes


def _render_block(block: str) -> List[Node]:
    # One blank-line separated chunk can hold text runs and list runs.
    containers: List[Node] = []
    paragraph: Optional[Node] = None
    current_list: Optional[Node] = None

    for line in block.split("\n"):
        item = LIST_ITEM_RE.match(line)
        if item:
            paragraph = None
            if current_list is None:
                current_list = Node("ol" if item.group(2) else "ul")
                containers.append(current_list)
            current_list.children.append(Node("li", children=render_inline(item.group(3))))
            continue

        current_list = None
        if paragraph is None:
            paragraph = Node("p")
            containers.append(paragraph)
        elif paragraph.children and paragraph.children[-1].tag != "br":
            paragraph.children.append(Node("br"))

        header = HEADER_RE.match(line)
        if header:
            paragraph.children.append(Node("strong", children=render_inline(header.group(1))))
            paragraph.children.append(Node("br"))
        else:
            paragraph.children.extend(render_inline(line))

    return [container for container in containers if container.children or container.tag != "p"]


def render(text: Optional[str]) -> RenderedReply:
    """Purpose: Convert raw reply text into escaped, block-structured nodes.
    Inputs/Outputs: Input is the raw model text; returns a RenderedReply.
    Side Effects / State: None; pure and total for any string input.
    Dependencies: Uses the module regexes; html.escape at serialization time.
    Failure Modes: None; empty input yields one empty paragraph.
    If Removed: Replies would be shown with raw markers or unsafe markup.
    Testing Notes: Plain text renders to a single paragraph holding the same text.
    """
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    blocks: List[Node] = []
    for chunk in PARAGRAPH_SPLIT_RE.split(normalized.strip("\n")):
        if not chunk.strip():
            continue
        blocks.extend(_render_block(chunk))
    if not blocks:
        blocks = [Node("p")]
    return RenderedReply(blocks=blocks)
