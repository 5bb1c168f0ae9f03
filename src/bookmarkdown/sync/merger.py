"""Structural three-way merge of bookmark trees.

``merge_roots()`` reconciles a local tree with a remote tree.  Two extra
inputs describe what both sides last agreed on:

* ``base`` -- the tree as it was written to (or read from) the remote
  document at the last successful sync, kept in local storage.
* ``last_synced`` -- when that happened.

With a base, a side "changed" a node when its content differs from the
base.  Without one, the local side changed a node when its
``last_modified`` is newer than ``last_synced``; the remote copy carries
no per-node timestamps, so a remote node that differs is assumed changed.

Categories and bundles are matched by normalised name, bookmarks by id.
Remote bookmarks are parsed with fresh ids, so ``align_bookmark_ids()``
first gives them the id of the base (or local) bookmark they correspond to.

``propagate_remote_deletions()`` is the lighter pre-check run before a
single local edit: it drops local nodes the remote side removed and adopts
remote additions, without computing conflicts.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Sequence

from ..codec import generate
from ..errors import ConflictUnresolvedError
from ..tree.metadata import has_known_timestamp, is_newer_than
from ..tree.models import Bookmark, Bundle, Category, Root, new_id
from ..validators import normalize_name
from .models import (
    ConflictReason,
    ConflictResolution,
    MergeConflict,
    MergeResult,
    MergeStrategy,
    NodePath,
)
from .resolver import ConflictResolver, ManualResolver, create_resolver

logger = logging.getLogger(__name__)

AnyNode = Category | Bundle | Bookmark


# ------------------------------------------------------------------
# Content comparison
# ------------------------------------------------------------------


def _content(node: AnyNode, include_deleted: bool = False) -> tuple:
    """Comparable content of *node* and its descendants.

    Tombstoned descendants are skipped unless *include_deleted* is set,
    which is how a tombstone is compared with the copy it deleted.
    """
    if isinstance(node, Bookmark):
        return (node.title, node.url, tuple(node.tags or ()), node.notes or None)
    children = node.bookmarks if isinstance(node, Bundle) else node.bundles
    return (
        normalize_name(node.name),
        tuple(
            _content(child, include_deleted)
            for child in children
            if include_deleted or not child.is_deleted
        ),
    )


def _key(node: AnyNode) -> str:
    if isinstance(node, Bookmark):
        return node.id
    return normalize_name(node.name)


def _active(node: AnyNode | None) -> bool:
    return node is not None and not node.is_deleted


def _ordered_keys(local: Sequence[AnyNode], remote: Sequence[AnyNode]) -> list[str]:
    """Local order, with remote-only keys inserted after their remote predecessor."""
    keys = [_key(n) for n in local]
    present = set(keys)
    previous: str | None = None
    for node in remote:
        k = _key(node)
        if k not in present:
            pos = keys.index(previous) + 1 if previous is not None else 0
            keys.insert(pos, k)
            present.add(k)
        previous = k
    return keys


# ------------------------------------------------------------------
# Bookmark identity alignment
# ------------------------------------------------------------------

_MATCHERS: tuple[Callable[[Bookmark], object], ...] = (
    lambda b: (b.title, b.url),
    lambda b: b.url,
    lambda b: b.title,
)


def align_bookmark_ids(remote: Root, reference: Root | None) -> Root:
    """Give remote bookmarks the ids of the reference bookmarks they match.

    Within each bundle (matched by category and bundle name), candidates
    are paired by exact ``(title, url)``, then by url, then by title; each
    reference bookmark is used at most once.  Bookmarks still unmatched
    are then paired tree-wide by exact ``(title, url)`` so a bookmark
    moved to another bundle keeps its identity.
    """
    if reference is None:
        return remote

    by_bundle: dict[tuple[str, str], list[Bookmark]] = {}
    for category in reference.categories:
        for bundle in category.bundles:
            by_bundle[(_key(category), _key(bundle))] = list(bundle.bookmarks)

    used: set[str] = set()
    assigned: dict[tuple[int, int, int], str] = {}

    for ci, category in enumerate(remote.categories):
        for bi, bundle in enumerate(category.bundles):
            candidates = by_bundle.get((_key(category), _key(bundle)), [])
            for matcher in _MATCHERS:
                for ki, bookmark in enumerate(bundle.bookmarks):
                    if (ci, bi, ki) in assigned:
                        continue
                    for candidate in candidates:
                        if candidate.id in used:
                            continue
                        if matcher(candidate) == matcher(bookmark):
                            assigned[(ci, bi, ki)] = candidate.id
                            used.add(candidate.id)
                            break

    leftovers = [
        bm
        for bookmarks in by_bundle.values()
        for bm in bookmarks
        if bm.id not in used
    ]
    for ci, category in enumerate(remote.categories):
        for bi, bundle in enumerate(category.bundles):
            for ki, bookmark in enumerate(bundle.bookmarks):
                if (ci, bi, ki) in assigned:
                    continue
                for candidate in leftovers:
                    if candidate.id not in used and (
                        candidate.title,
                        candidate.url,
                    ) == (bookmark.title, bookmark.url):
                        assigned[(ci, bi, ki)] = candidate.id
                        used.add(candidate.id)
                        break

    if not assigned:
        return remote

    categories = []
    for ci, category in enumerate(remote.categories):
        bundles = []
        for bi, bundle in enumerate(category.bundles):
            bookmarks = []
            for ki, bookmark in enumerate(bundle.bookmarks):
                new = assigned.get((ci, bi, ki))
                if new is not None and new != bookmark.id:
                    bookmark = bookmark.model_copy(update={"id": new})
                elif new is None and bookmark.id in used:
                    bookmark = bookmark.model_copy(update={"id": new_id()})
                bookmarks.append(bookmark)
            bundles.append(bundle.model_copy(update={"bookmarks": tuple(bookmarks)}))
        categories.append(category.model_copy(update={"bundles": tuple(bundles)}))
    return Root(version=1, categories=tuple(categories), metadata=remote.metadata)


def _dedupe_ids(categories: Iterable[Category]) -> tuple[Category, ...]:
    """Re-issue ids for bookmarks whose id already appeared earlier."""
    seen: set[str] = set()
    result = []
    for category in categories:
        bundles = []
        for bundle in category.bundles:
            bookmarks = []
            for bookmark in bundle.bookmarks:
                if bookmark.id in seen:
                    logger.debug("Re-issuing duplicate bookmark id %s", bookmark.id)
                    bookmark = bookmark.model_copy(update={"id": new_id()})
                seen.add(bookmark.id)
                bookmarks.append(bookmark)
            bundles.append(bundle.model_copy(update={"bookmarks": tuple(bookmarks)}))
        result.append(category.model_copy(update={"bundles": tuple(bundles)}))
    return tuple(result)


# ------------------------------------------------------------------
# Three-way merge
# ------------------------------------------------------------------


class _Merger:
    def __init__(
        self,
        last_synced: datetime | None,
        has_base: bool,
        resolver: ConflictResolver,
    ) -> None:
        self.last_synced = last_synced
        self.has_base = has_base
        self.resolver = resolver
        self.conflicts: list[MergeConflict] = []

    def _changed(self, node: AnyNode, reference: AnyNode | None) -> bool:
        """Whether *node* changed relative to what both sides agreed on."""
        if reference is not None:
            return _content(node) != _content(
                reference, include_deleted=reference.is_deleted
            )
        if self.last_synced is not None and has_known_timestamp(node):
            return is_newer_than(node.last_modified, self.last_synced)
        return True

    def _conflict(
        self,
        path: NodePath,
        reason: ConflictReason,
        local: AnyNode | None,
        remote: AnyNode | None,
        local_ts: datetime | None,
    ) -> str | None:
        conflict = MergeConflict(
            path=path,
            kind=path.kind,
            reason=reason,
            local_data=local,
            remote_data=remote,
            local_last_modified=local_ts,
            remote_last_modified=remote.last_modified if remote else None,
        )
        choice = self.resolver.resolve(conflict)
        if choice is None:
            logger.info("Merge conflict (%s) at %s", reason.value, path)
            self.conflicts.append(conflict)
        return choice

    # -- one sibling list --------------------------------------------------

    def _merge_level(
        self,
        local: Sequence[AnyNode],
        remote: Sequence[AnyNode],
        base: Sequence[AnyNode],
        path_of: Callable[[AnyNode], NodePath],
        merge_pair: Callable[[AnyNode, AnyNode, AnyNode | None], AnyNode],
    ) -> list[AnyNode]:
        local_map = {_key(n): n for n in local}
        remote_map = {_key(n): n for n in remote}
        base_map = {_key(n): n for n in base if not n.is_deleted}
        out: list[AnyNode] = []

        for key in _ordered_keys(local, remote):
            lnode = local_map.get(key)
            rnode = remote_map.get(key)
            bnode = base_map.get(key)
            merged = self._merge_node(lnode, rnode, bnode, path_of, merge_pair)
            if merged is not None:
                out.append(merged)
        return out

    def _merge_node(self, lnode, rnode, bnode, path_of, merge_pair):
        if _active(lnode) and _active(rnode):
            return merge_pair(lnode, rnode, bnode)

        if _active(lnode):
            # Missing (or tombstoned) on the remote side.
            reference = bnode if bnode is not None else rnode
            if reference is not None:
                if not self._changed(lnode, reference):
                    return None
                choice = self._conflict(
                    path_of(lnode),
                    ConflictReason.DELETED_MODIFIED,
                    lnode,
                    None,
                    lnode.last_modified,
                )
                return None if choice == "remote" else lnode
            if self.has_base or self.last_synced is None:
                return lnode
            if is_newer_than(lnode.last_modified, self.last_synced):
                return lnode
            logger.debug("Dropping %s: removed remotely", path_of(lnode))
            return None

        if _active(rnode):
            # Missing (or tombstoned) on the local side.
            reference = bnode if bnode is not None else lnode
            if reference is None:
                return rnode
            if not self._changed(rnode, reference):
                return None
            choice = self._conflict(
                path_of(rnode),
                ConflictReason.DELETED_MODIFIED,
                None,
                rnode,
                lnode.last_modified if lnode is not None else None,
            )
            if choice == "remote":
                return rnode
            if choice is None and lnode is not None:
                return lnode
            return None

        # Deleted on both sides (or a settled tombstone).
        return None

    # -- node kinds ------------------------------------------------------

    def merge_categories(self, local, remote, base) -> list[Category]:
        return self._merge_level(
            local,
            remote,
            base,
            lambda c: NodePath(category=c.name),
            self._merge_category_pair,
        )

    def _merge_category_pair(self, lnode, rnode, bnode):
        bundles = self._merge_level(
            lnode.bundles,
            rnode.bundles,
            bnode.bundles if bnode is not None else (),
            lambda b: NodePath(category=lnode.name, bundle=b.name),
            lambda l, r, b: self._merge_bundle_pair(lnode.name, l, r, b),
        )
        return lnode.model_copy(update={"bundles": tuple(bundles)})

    def _merge_bundle_pair(self, category_name, lnode, rnode, bnode):
        bookmarks = self._merge_level(
            lnode.bookmarks,
            rnode.bookmarks,
            bnode.bookmarks if bnode is not None else (),
            lambda bm: NodePath(
                category=category_name, bundle=lnode.name, bookmark_id=bm.id
            ),
            lambda l, r, b: self._merge_bookmark_pair(
                category_name, lnode.name, l, r, b
            ),
        )
        return lnode.model_copy(update={"bookmarks": tuple(bookmarks)})

    def _merge_bookmark_pair(self, category_name, bundle_name, lnode, rnode, bnode):
        if _content(lnode) == _content(rnode):
            return lnode
        local_changed = self._changed(lnode, bnode)
        remote_changed = self._changed(rnode, bnode)
        if local_changed and not remote_changed:
            return lnode
        if remote_changed and not local_changed:
            return rnode.model_copy(update={"id": lnode.id})
        if not local_changed:
            return lnode
        path = NodePath(
            category=category_name, bundle=bundle_name, bookmark_id=lnode.id
        )
        choice = self._conflict(
            path,
            ConflictReason.BOTH_MODIFIED,
            lnode,
            rnode,
            lnode.last_modified,
        )
        if choice == "remote":
            return rnode.model_copy(update={"id": lnode.id})
        return lnode


def merge_roots(
    local: Root,
    remote: Root,
    *,
    last_synced: datetime | None = None,
    base: Root | None = None,
    strategy: MergeStrategy | str = MergeStrategy.TIMESTAMP,
    resolutions: Iterable[ConflictResolution] = (),
) -> MergeResult:
    """Merge *local* with *remote*.

    Args:
        local: The local tree (may contain tombstones).
        remote: The remote tree, usually freshly parsed.
        last_synced: When this local copy last matched the remote.
        base: The tree both sides agreed on at that time, if stored.
        strategy: How nodes changed on both sides are settled.
        resolutions: Explicit per-node choices, applied before *strategy*.

    Returns:
        ``MergeResult`` with the merged tree, unresolved conflicts and
        whether a remote write is needed.
    """
    remote = align_bookmark_ids(remote, base if base is not None else local)

    resolver: ConflictResolver = create_resolver(strategy)
    manual: ManualResolver | None = None
    resolutions = list(resolutions)
    if resolutions:
        manual = resolver = ManualResolver(resolutions, fallback=resolver)

    merger = _Merger(last_synced, base is not None, resolver)
    categories = merger.merge_categories(
        local.categories,
        remote.categories,
        base.categories if base is not None else (),
    )
    merged = Root(
        version=1,
        categories=_dedupe_ids(categories),
        metadata=local.metadata,
    )
    if manual is not None and manual.unused:
        logger.warning(
            "Ignored %d resolution(s) matching no conflict: %s",
            len(manual.unused),
            ", ".join(sorted(str(path) for path in manual.unused)),
        )
    has_changes = generate(merged) != generate(remote)
    logger.debug(
        "Merged: %d conflict(s), has_changes=%s",
        len(merger.conflicts),
        has_changes,
    )
    return MergeResult(
        merged_root=merged,
        conflicts=merger.conflicts,
        has_changes=has_changes,
    )


def resolve_conflicts(
    local: Root,
    remote: Root,
    resolutions: Iterable[ConflictResolution],
    last_synced: datetime | None = None,
    base: Root | None = None,
    strategy: MergeStrategy | str = MergeStrategy.TIMESTAMP,
) -> Root:
    """Merge with caller decisions and return the final tree.

    Raises:
        ConflictUnresolvedError: If any conflict has no decision.
    """
    result = merge_roots(
        local,
        remote,
        last_synced=last_synced,
        base=base,
        strategy=strategy,
        resolutions=resolutions,
    )
    if result.conflicts:
        raise ConflictUnresolvedError(
            f"{len(result.conflicts)} conflict(s) remain unresolved",
            result.conflicts,
        )
    return result.merged_root


def get_conflicts(
    local: Root,
    remote: Root,
    last_synced: datetime | None = None,
    base: Root | None = None,
) -> list[MergeConflict]:
    return merge_roots(
        local, remote, last_synced=last_synced, base=base
    ).conflicts


def has_conflicts(
    local: Root,
    remote: Root,
    last_synced: datetime | None = None,
    base: Root | None = None,
) -> bool:
    return bool(get_conflicts(local, remote, last_synced, base))


# ------------------------------------------------------------------
# Pre-operation deletion propagation
# ------------------------------------------------------------------


def propagate_remote_deletions(
    local: Root, remote: Root, last_synced: datetime | None
) -> Root:
    """Bring remote deletions and additions into *local* before an edit.

    * A local node missing remotely is kept only if it changed after
      *last_synced* (it was just created here); otherwise the remote
      deletion wins.
    * A remote node missing locally is adopted, unless the local side has
      a tombstone for it.
    * A bookmark present on both sides takes the remote content when the
      local copy has not changed since *last_synced*.

    Tombstones are kept so the following save still writes the deletion.
    """
    remote = align_bookmark_ids(remote, local)
    local_ids = {
        bm.id
        for c in local.categories
        for b in c.bundles
        for bm in b.bookmarks
    }

    def _keep_local(node: AnyNode) -> bool:
        return last_synced is None or is_newer_than(node.last_modified, last_synced)

    def _level(lnodes, rnodes, pair):
        local_map = {_key(n): n for n in lnodes}
        remote_map = {_key(n): n for n in rnodes if not n.is_deleted}
        out = []
        for key in _ordered_keys(lnodes, rnodes):
            lnode = local_map.get(key)
            rnode = remote_map.get(key)
            if lnode is not None and lnode.is_deleted:
                if rnode is not None:
                    out.append(lnode)
                continue
            if lnode is not None and rnode is not None:
                out.append(pair(lnode, rnode))
            elif lnode is not None:
                if _keep_local(lnode):
                    out.append(lnode)
            elif rnode is not None:
                if isinstance(rnode, Bookmark) and rnode.id in local_ids:
                    continue  # moved locally
                out.append(rnode)
        return out

    def _bookmark(lnode, rnode):
        if _content(lnode) != _content(rnode) and not _keep_local(lnode):
            return rnode.model_copy(update={"id": lnode.id})
        return lnode

    def _bundle(lnode, rnode):
        return lnode.model_copy(
            update={"bookmarks": tuple(_level(lnode.bookmarks, rnode.bookmarks, _bookmark))}
        )

    def _category(lnode, rnode):
        return lnode.model_copy(
            update={"bundles": tuple(_level(lnode.bundles, rnode.bundles, _bundle))}
        )

    categories = _level(local.categories, remote.categories, _category)
    return Root(
        version=1, categories=_dedupe_ids(categories), metadata=local.metadata
    )
