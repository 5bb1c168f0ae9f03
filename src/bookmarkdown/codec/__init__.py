"""Conversion between the bookmark tree and its Markdown form."""

from .common import EMPTY_DOCUMENT_PLACEHOLDER, ParseResult, ParseState
from .markdown_to_root import MarkdownParser, parse
from .root_to_markdown import (
    MarkdownGenerator,
    content_equal,
    generate,
    render_node,
)

__all__ = [
    "EMPTY_DOCUMENT_PLACEHOLDER",
    "MarkdownGenerator",
    "MarkdownParser",
    "ParseResult",
    "ParseState",
    "content_equal",
    "generate",
    "parse",
    "render_node",
]
