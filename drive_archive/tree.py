"""In-memory Drive file tree: construction from flat records and traversal."""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Callable, NamedTuple, Optional

from .formats import FOLDER, SHORTCUT
from .models import Record

logger = logging.getLogger(__name__)

DEFAULT_ROOT_NAME = "My Drive"
DEFAULT_ORPHANED_NAME = "Other Files"

# Anything not in this set is stripped from names before they become paths
INVALID_PATH_CHARS = re.compile(r"[^a-zA-Z0-9 !@#$%^&()\-_=+\[\]{}';.,`~]")


def sanitize_name(name: str) -> str:
    """Strip characters that are not allowed in local path segments.

    Examples:
        >>> sanitize_name("Report: Q1/Q2 *final*")
        'Report Q1Q2 final'
    """
    return INVALID_PATH_CHARS.sub("", name)


class Node:
    """A Drive file or folder in the archive tree.

    A Drive object can have several parents, so the same Node may appear in
    the ``children`` of more than one folder. ``children`` is ``None`` for
    anything that is not a folder, and an (possibly empty) list for folders.
    """

    __slots__ = ("id", "name", "record", "children", "parents", "shortcut_target")

    def __init__(self, record: Record):
        self.id = record.id
        self.name = record.name
        self.record = record
        self.children: Optional[list[Node]] = [] if record.is_folder else None
        self.parents: list[Node] = []
        self.shortcut_target: Optional[Node] = None

    @classmethod
    def synthetic_folder(cls, id: str, name: str) -> Node:
        return cls(Record(id=id, name=name, mime_type=FOLDER))

    @property
    def is_folder(self) -> bool:
        return self.record.is_folder

    @property
    def is_shortcut(self) -> bool:
        return self.record.is_shortcut

    @property
    def mime_type(self) -> str:
        return self.record.mime_type

    @property
    def segment(self) -> str:
        """Path segment for this node: its sanitized name.

        Falls back to the id when the name sanitizes to nothing or to a
        relative path component, so a node never maps onto its parent.
        """
        name = sanitize_name(self.name)
        if name in ("", ".", ".."):
            return self.id or "_"
        return name

    def iter_walk(self) -> Iterator[tuple[str, Node]]:
        """Lazily walk the tree breadth first, yielding ``(path, node)``.

        Every queued entry remembers the ids already seen on its own path
        from the root. An entry whose node (or shortcut target) is among
        them is dropped, which breaks cycles while still visiting a node
        once for every distinct parent path.

        Shortcuts with a resolved target yield the target (and descend into
        the target's children) under the shortcut's own name.
        """
        queue: deque[_WalkEntry] = deque([_WalkEntry(self, self.segment, frozenset())])
        while queue:
            entry = queue.popleft()
            node = entry.node
            if node.id in entry.ancestors:
                continue
            ancestors = entry.ancestors | {node.id}

            if node.shortcut_target is not None:
                node = node.shortcut_target
                if node.id in entry.ancestors:
                    logger.debug("Dropping shortcut loop at %s", entry.path)
                    continue
                ancestors = ancestors | {node.id}

            yield entry.path, node

            for child in node.children or ():
                queue.append(
                    _WalkEntry(child, f"{entry.path}/{child.segment}", ancestors)
                )

    def walk(self, visit: Callable[[str, Node], None]) -> None:
        """Call ``visit(path, node)`` for every entry of :meth:`iter_walk`.

        An exception raised by ``visit`` stops the walk and propagates.
        """
        for path, node in self.iter_walk():
            visit(path, node)

    def __repr__(self) -> str:
        return f"Node(id={self.id!r}, name={self.name!r}, mime_type={self.mime_type!r})"


class _WalkEntry(NamedTuple):
    node: Node
    path: str
    ancestors: frozenset


def walk(root: Node, visit: Callable[[str, Node], None]) -> None:
    """Walk the tree rooted at ``root``. See :meth:`Node.walk`."""
    root.walk(visit)


def sort_key(node: Node) -> tuple[str, str]:
    """Deterministic ordering: sanitized name, then id as tie-break."""
    return (sanitize_name(node.name), node.id)


def _reachable(start: Node) -> set[Node]:
    """Return every node reachable from ``start`` through child edges."""
    seen = {start}
    stack = [start]
    while stack:
        node = stack.pop()
        for child in node.children or ():
            if child not in seen:
                seen.add(child)
                stack.append(child)
    return seen


def _link(parent: Node, child: Node) -> None:
    parent.children.append(child)
    child.parents.append(parent)


def _unlink(parent: Node, child: Node) -> None:
    parent.children.remove(child)
    child.parents.remove(parent)


def build_tree(
    root_id: str,
    records: Iterable[Record],
    root_name: str = DEFAULT_ROOT_NAME,
    orphaned_name: str = DEFAULT_ORPHANED_NAME,
) -> tuple[Node, Node]:
    """Build the archive trees from a flat list of Drive records.

    Returns two synthetic folders: the root of the user's drive (``root_id``)
    and an "orphaned" root holding everything that is not reachable from it,
    such as files shared with the user or files whose parents were filtered
    out of the listing. This never fails; records that cannot be placed end
    up under the orphaned root.

    Args:
        root_id: Id of the drive root folder
        records: Flat list of records, in any order
        root_name: Display name of the main root
        orphaned_name: Display name of the orphaned root

    Returns:
        Tuple of (main root, orphaned root)
    """
    root = Node.synthetic_folder(root_id, root_name)
    orphaned = Node.synthetic_folder("", orphaned_name)

    # create nodes; the synthetic root replaces a record with the same id
    nodes: dict[str, Node] = {root_id: root}
    for record in records:
        if record.id == root_id:
            continue
        nodes[record.id] = Node(record)

    # resolve shortcuts
    unresolved = 0
    for node in nodes.values():
        if node.mime_type != SHORTCUT or not node.record.shortcut_target_id:
            continue
        target = nodes.get(node.record.shortcut_target_id)
        if target is None:
            unresolved += 1
        node.shortcut_target = target

    # connect parents, falling back to the orphaned root
    for node in nodes.values():
        if node is root:
            continue
        found = False
        for parent_id in node.record.parents:
            parent = nodes.get(parent_id)
            if parent is None or not parent.is_folder:
                continue
            found = True
            if not any(p is parent for p in node.parents):
                _link(parent, node)
        if not found:
            _link(orphaned, node)

    # anything reachable from the main root belongs to it alone
    in_main = _reachable(root)
    for node in in_main:
        for parent in list(node.parents):
            if parent not in in_main:
                _unlink(parent, node)

    # folders whose parent chain loops back on itself are reachable from
    # neither root; hang them under the orphaned root one at a time
    in_orphaned = _reachable(orphaned)
    detached = sorted(
        (n for n in nodes.values() if n not in in_main and n not in in_orphaned),
        key=sort_key,
    )
    for node in detached:
        if node in in_orphaned:
            continue
        logger.debug("Attaching %r from a parent cycle to %s", node, orphaned_name)
        _link(orphaned, node)
        in_orphaned |= _reachable(node)

    # deterministic order regardless of API ordering
    for node in [*nodes.values(), orphaned]:
        if node.children is not None:
            node.children.sort(key=sort_key)
        node.parents.sort(key=sort_key)

    logger.debug(
        "Built tree: %d nodes, %d in main, %d orphaned, %d unresolved shortcuts",
        len(nodes),
        len(in_main),
        len(in_orphaned) - 1,
        unresolved,
    )
    return root, orphaned
