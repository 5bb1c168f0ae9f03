"""Markdown to bookmark tree parsing using a line-oriented state machine."""

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError

from ..errors import ParseError
from ..tree.metadata import ensure_root_metadata, now
from ..tree.models import Bookmark, Bundle, Category, Root, RootMetadata
from .common import (
    BOOKMARK_RE,
    BUNDLE_PREFIX,
    CATEGORY_PREFIX,
    NOTES_RE,
    TAGS_RE,
    ParseResult,
    ParseState,
    split_tags,
    strip_front_matter,
)

logger = logging.getLogger(__name__)


@dataclass
class _BookmarkDraft:
    title: str
    url: str
    tags: tuple[str, ...] | None = None
    notes: str | None = None


@dataclass
class _BundleDraft:
    name: str
    bookmarks: list[Bookmark] = field(default_factory=list)


@dataclass
class _CategoryDraft:
    name: str
    bundles: list[Bundle] = field(default_factory=list)


class MarkdownParser:
    """Parse the bookmark Markdown dialect into a ``Root``.

    The parser keeps one in-progress category, bundle and bookmark and
    flushes them into their parents whenever a line starts a sibling or
    an ancestor, and once more at end of input.  Unrecognised lines are
    ignored so legacy annotations (front matter, HTML comments) do not
    break reading older documents.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.state = ParseState.NONE
        self.categories: list[Category] = []
        self.category: _CategoryDraft | None = None
        self.bundle: _BundleDraft | None = None
        self.bookmark: _BookmarkDraft | None = None
        self.warnings: list[str] = []

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def _flush_bookmark(self) -> None:
        if self.bookmark is None:
            return
        draft, self.bookmark = self.bookmark, None
        assert self.bundle is not None
        self.bundle.bookmarks.append(
            Bookmark(
                title=draft.title,
                url=draft.url,
                tags=draft.tags,
                notes=draft.notes,
            )
        )
        self.state = ParseState.IN_BUNDLE

    def _flush_bundle(self) -> None:
        self._flush_bookmark()
        if self.bundle is None:
            return
        draft, self.bundle = self.bundle, None
        assert self.category is not None
        self.category.bundles.append(
            Bundle(name=draft.name, bookmarks=tuple(draft.bookmarks))
        )
        self.state = ParseState.IN_CATEGORY

    def _flush_category(self) -> None:
        self._flush_bundle()
        if self.category is None:
            return
        draft, self.category = self.category, None
        self.categories.append(
            Category(name=draft.name, bundles=tuple(draft.bundles))
        )
        self.state = ParseState.NONE

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _handle_line(self, lineno: int, line: str) -> None:
        stripped = line.strip()

        if stripped.startswith(CATEGORY_PREFIX):
            self._flush_category()
            self.category = _CategoryDraft(
                name=stripped[len(CATEGORY_PREFIX) :].strip()
            )
            self.state = ParseState.IN_CATEGORY
            return

        if stripped.startswith(BUNDLE_PREFIX):
            if self.category is None:
                self._warn(lineno, "bundle outside of a category")
                return
            self._flush_bundle()
            self.bundle = _BundleDraft(
                name=stripped[len(BUNDLE_PREFIX) :].strip()
            )
            self.state = ParseState.IN_BUNDLE
            return

        if stripped.startswith("- ["):
            match = BOOKMARK_RE.match(stripped)
            if match is None:
                return
            if self.bundle is None:
                self._warn(lineno, "bookmark outside of a bundle")
                return
            self._flush_bookmark()
            self.bookmark = _BookmarkDraft(
                title=match.group(1).strip(), url=match.group(2).strip()
            )
            self.state = ParseState.IN_BOOKMARK
            return

        if self.bookmark is None:
            return

        tags_match = TAGS_RE.match(line)
        if tags_match:
            tags = split_tags(tags_match.group(1))
            self.bookmark.tags = tags or None
            return

        notes_match = NOTES_RE.match(line)
        if notes_match:
            self.bookmark.notes = notes_match.group(1).strip() or None

    def _warn(self, lineno: int, reason: str) -> None:
        message = f"line {lineno}: ignored {reason}"
        logger.debug("Markdown parse: %s", message)
        self.warnings.append(message)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse_with_warnings(self, text: str, stamp: bool = True) -> ParseResult:
        """Parse *text* and report skipped lines.

        Args:
            text: Markdown document.
            stamp: When ``True`` every node gets ``last_modified`` set to
                the parse time.  When ``False`` only the Root is stamped,
                leaving node timestamps unknown (used when the result is
                compared against another copy).

        Returns:
            ``ParseResult`` with the Root and any warnings.

        Raises:
            ParseError: If the result violates a tree invariant (empty or
                duplicate sibling names).
        """
        self._reset()
        lines = strip_front_matter(text.splitlines())
        try:
            for lineno, line in enumerate(lines, start=1):
                self._handle_line(lineno, line)
            self._flush_category()
            parsed_at = now()
            root = Root(
                version=1,
                categories=tuple(self.categories),
                metadata=RootMetadata(last_modified=parsed_at),
            )
        except PydanticValidationError as exc:
            raise ParseError(f"Invalid bookmark document: {exc}") from exc

        if stamp:
            root = ensure_root_metadata(root, parsed_at)
        return ParseResult(root=root, warnings=list(self.warnings))

    def parse(self, text: str, stamp: bool = True) -> Root:
        return self.parse_with_warnings(text, stamp=stamp).root


def parse(text: str, stamp: bool = True) -> Root:
    """Parse a bookmark Markdown document into a ``Root``."""
    return MarkdownParser().parse(text, stamp=stamp)
