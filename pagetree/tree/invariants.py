"""Tree invariant engine: pure functions over a TreeIndex.

Nothing here touches storage. The server calls these on an index read inside
the transaction that will perform the write, so every check sees post-lock
state; the client mirror calls the same functions on its own snapshot.
"""

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from pagetree.errors import (
    CircularReferenceError,
    DepthLimitExceededError,
    ValidationError,
)
from pagetree.tree.index import TreeEntry, TreeIndex

MAX_DEPTH = 50

# Which kinds may act as the structural parent of each kind.
ALLOWED_PARENT_KINDS: dict[str, frozenset[str]] = {
    "section": frozenset(),
    "subsection": frozenset({"section"}),
    "page": frozenset({"section", "subsection", "page"}),
}


@dataclass(frozen=True)
class Containment:
    section_id: str | None = None
    subsection_id: str | None = None


@dataclass(frozen=True)
class Placement:
    """Where a created or moved node ends up."""

    parent_id: str | None
    containment: Containment


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def descendants_of(index: TreeIndex, node_id: str) -> set[str]:
    """Every node below ``node_id`` (not including it), breadth-first.

    The visited set guarantees termination even if the stored links already
    contain a cycle.
    """
    visited: set[str] = {node_id}
    found: set[str] = set()
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for child_id in index.children_of(current):
            if child_id in visited:
                continue
            visited.add(child_id)
            found.add(child_id)
            queue.append(child_id)
    return found


def subtree_height(index: TreeIndex, node_id: str) -> int:
    """Number of levels below ``node_id`` (0 for a leaf)."""
    visited: set[str] = {node_id}
    frontier = [node_id]
    height = 0
    while frontier:
        next_level = []
        for current in frontier:
            for child_id in index.children_of(current):
                if child_id not in visited:
                    visited.add(child_id)
                    next_level.append(child_id)
        if next_level:
            height += 1
        frontier = next_level
    return height


def iter_ancestors(
    index: TreeIndex, node_id: str, max_depth: int = MAX_DEPTH
) -> Iterator[TreeEntry]:
    """Walk parent links upward from ``node_id``, nearest ancestor first.

    Raises DepthLimitExceededError past ``max_depth`` hops rather than
    looping or silently stopping.
    """
    entry = index.require(node_id)
    hops = 0
    while entry.parent_id is not None:
        parent = index.get(entry.parent_id)
        if parent is None:
            break
        hops += 1
        if hops > max_depth:
            raise DepthLimitExceededError(node_id, max_depth)
        yield parent
        entry = parent


def depth_of(index: TreeIndex, node_id: str, max_depth: int = MAX_DEPTH) -> int:
    """Number of ancestor hops from ``node_id`` to its root."""
    return sum(1 for _ in iter_ancestors(index, node_id, max_depth))


def sort_by_depth_desc(
    index: TreeIndex, node_ids: Iterable[str], max_depth: int = MAX_DEPTH
) -> list[str]:
    """Deepest first, so no node is removed while a child still points at it."""
    depths = {nid: depth_of(index, nid, max_depth) for nid in node_ids}
    return sorted(depths, key=lambda nid: depths[nid], reverse=True)


def can_reparent(index: TreeIndex, node_id: str, new_parent_id: str) -> bool:
    """False when the new parent is the node itself or one of its descendants."""
    if new_parent_id == node_id:
        return False
    return new_parent_id not in descendants_of(index, node_id)


# ---------------------------------------------------------------------------
# Containment
# ---------------------------------------------------------------------------


def resolve_containment(
    index: TreeIndex, parent_id: str, max_depth: int = MAX_DEPTH
) -> Containment:
    """Section/subsection a child of ``parent_id`` belongs to.

    Page parents are walked upward until a subsection or section is reached;
    the denormalized fields stored on pages are not trusted for this.
    """
    entry = index.require(parent_id)
    hops = 0
    while entry.kind == "page":
        if entry.parent_id is None or entry.parent_id not in index:
            raise ValidationError(f"Page {entry.node_id} has no containing section")
        hops += 1
        if hops > max_depth:
            raise DepthLimitExceededError(parent_id, max_depth)
        entry = index.require(entry.parent_id)

    if entry.kind == "subsection":
        return Containment(section_id=entry.parent_id, subsection_id=entry.node_id)
    if entry.kind == "section":
        return Containment(section_id=entry.node_id)
    raise ValidationError(f"{entry.node_id} cannot contain pages")


def containment_for(
    index: TreeIndex, kind: str, parent_id: str | None, max_depth: int = MAX_DEPTH
) -> Containment:
    """Containment a node of ``kind`` has under ``parent_id``."""
    if kind == "section" or parent_id is None:
        return Containment()
    if kind == "subsection":
        return Containment(section_id=parent_id)
    return resolve_containment(index, parent_id, max_depth)


def _require_kind(index: TreeIndex, node_id: str, kind: str) -> TreeEntry:
    entry = index.require(node_id)
    if entry.kind != kind:
        raise ValidationError(f"{node_id} is a {entry.kind}, not a {kind}")
    return entry


def check_parent_kind(kind: str, parent: TreeEntry | None) -> None:
    allowed = ALLOWED_PARENT_KINDS[kind]
    if parent is None:
        if allowed:
            raise ValidationError(f"A {kind} requires a parent")
        return
    if parent.kind not in allowed:
        raise ValidationError(f"A {kind} cannot be placed under a {parent.kind}")


def resolve_placement(
    index: TreeIndex,
    kind: str,
    *,
    parent_id: str | None = None,
    section_id: str | None = None,
    subsection_id: str | None = None,
    max_depth: int = MAX_DEPTH,
) -> Placement:
    """Resolve a parent reference into a structural parent and containment.

    For pages, ``parent_id`` names a section, subsection or page. Without
    it, the page becomes a root page of ``subsection_id`` (or ``section_id``).
    When a parent is given, explicit section/subsection values must agree
    with what the parent implies.
    """
    if kind == "section":
        if parent_id or section_id or subsection_id:
            raise ValidationError("Sections are workspace roots and take no parent")
        return Placement(None, Containment())

    if kind == "subsection":
        if subsection_id:
            raise ValidationError("A subsection cannot be nested in a subsection")
        if parent_id and section_id and parent_id != section_id:
            raise ValidationError("parent_id and section_id disagree for a subsection")
        target = parent_id or section_id
        if target is None:
            raise ValidationError("Subsections require a parent section")
        _require_kind(index, target, "section")
        return Placement(target, Containment(section_id=target))

    if parent_id is not None:
        parent = index.require(parent_id)
        check_parent_kind(kind, parent)
        containment = resolve_containment(index, parent_id, max_depth)
        if section_id is not None and section_id != containment.section_id:
            raise ValidationError(
                "section_id is inherited from the parent and cannot differ from it"
            )
        if subsection_id is not None and subsection_id != containment.subsection_id:
            raise ValidationError(
                "subsection_id is inherited from the parent and cannot differ from it"
            )
        return Placement(parent_id, containment)

    if subsection_id is not None:
        subsection = _require_kind(index, subsection_id, "subsection")
        if section_id is not None and subsection.parent_id != section_id:
            raise ValidationError(
                f"Subsection {subsection_id} does not belong to section {section_id}"
            )
        return Placement(
            subsection_id,
            Containment(section_id=subsection.parent_id, subsection_id=subsection_id),
        )

    if section_id is not None:
        _require_kind(index, section_id, "section")
        return Placement(section_id, Containment(section_id=section_id))

    raise ValidationError("Section ID is required for root pages")


def resolve_move(
    index: TreeIndex,
    node_id: str,
    *,
    new_parent_id: str | None = None,
    new_section_id: str | None = None,
    new_subsection_id: str | None = None,
    max_depth: int = MAX_DEPTH,
) -> Placement:
    """Validate a reparent and return the node's new placement.

    With no target at all the node keeps its parent (a pure reposition).
    """
    entry = index.require(node_id)
    if new_parent_id == node_id:
        raise ValidationError("A node cannot be its own parent")

    if new_parent_id is None and new_section_id is None and new_subsection_id is None:
        return Placement(
            entry.parent_id, containment_for(index, entry.kind, entry.parent_id, max_depth)
        )

    if entry.kind == "section":
        raise ValidationError("Sections cannot be reparented")

    target = new_parent_id or new_subsection_id or new_section_id
    index.require(target)
    if not can_reparent(index, node_id, target):
        raise CircularReferenceError(node_id, target)

    return resolve_placement(
        index,
        entry.kind,
        parent_id=new_parent_id,
        section_id=new_section_id,
        subsection_id=new_subsection_id,
        max_depth=max_depth,
    )
