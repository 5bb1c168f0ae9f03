"""Bookmark tree to Markdown generation."""

from ..tree.metadata import filter_active
from ..tree.models import Bookmark, Bundle, Category, Root
from .common import BUNDLE_PREFIX, CATEGORY_PREFIX


class MarkdownGenerator:
    """Render a ``Root`` in the bookmark Markdown dialect.

    Output is deterministic: nodes appear in list order, tombstoned nodes
    are skipped and metadata is never written.
    """

    def generate(self, root: Root) -> str:
        lines: list[str] = []
        for category in filter_active(root.categories):
            lines.extend(self._category_lines(category))
        return self._join(lines)

    def render_node(self, node: Category | Bundle | Bookmark) -> str:
        """Render one node (and its active children) on its own."""
        if isinstance(node, Category):
            return self._join(self._category_lines(node))
        if isinstance(node, Bundle):
            return self._join(self._bundle_lines(node))
        return self._join(self._bookmark_lines(node))

    def _join(self, lines: list[str]) -> str:
        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def _category_lines(self, category: Category) -> list[str]:
        lines = [f"{CATEGORY_PREFIX}{category.name}", ""]
        for bundle in filter_active(category.bundles):
            lines.extend(self._bundle_lines(bundle))
        return lines

    def _bundle_lines(self, bundle: Bundle) -> list[str]:
        lines = [f"{BUNDLE_PREFIX}{bundle.name}", ""]
        for bookmark in filter_active(bundle.bookmarks):
            lines.extend(self._bookmark_lines(bookmark))
            lines.append("")
        return lines

    def _bookmark_lines(self, bookmark: Bookmark) -> list[str]:
        lines = [f"- [{bookmark.title}]({bookmark.url})"]
        if bookmark.tags:
            lines.append(f"  - tags: {', '.join(bookmark.tags)}")
        if bookmark.notes and bookmark.notes.strip():
            lines.append(f"  - notes: {bookmark.notes}")
        return lines


def generate(root: Root) -> str:
    """Render *root* as Markdown text."""
    return MarkdownGenerator().generate(root)


def render_node(node: Category | Bundle | Bookmark) -> str:
    return MarkdownGenerator().render_node(node)


def content_equal(a: Root, b: Root) -> bool:
    """Compare two Roots by rendered text (ids and metadata ignored)."""
    return generate(a) == generate(b)
