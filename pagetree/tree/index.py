"""In-memory view of one workspace's parent links, built from a store read.

The same index type backs the server (built inside a transaction from the
nodes table) and the client mirror (built from its snapshot), so the
invariant functions in ``pagetree.tree.invariants`` run identically on both.
Content blocks reuse it with ``kind="block"`` and ``parent_id`` set to the
parent block.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Protocol

from pagetree.errors import NodeNotFoundError


class TreeEntry(Protocol):
    """Anything with identity, kind, parent link and sibling order."""

    node_id: str
    kind: str
    parent_id: str | None
    order: int
    title: str


@dataclass(frozen=True)
class IndexEntry:
    node_id: str
    kind: str
    parent_id: str | None
    order: int
    title: str = ""
    icon: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None

    @classmethod
    def from_node_row(cls, row: dict) -> "IndexEntry":
        return cls(
            node_id=row["node_id"],
            kind=row["kind"],
            parent_id=row["parent_id"],
            order=row["sort_order"],
            title=row["title"],
            icon=row.get("icon"),
            section_id=row.get("section_id"),
            subsection_id=row.get("subsection_id"),
        )

    @classmethod
    def from_block_row(cls, row: dict) -> "IndexEntry":
        return cls(
            node_id=row["block_id"],
            kind="block",
            parent_id=row["parent_block_id"],
            order=row["sort_order"],
            title=row["block_type"],
        )


class TreeIndex:
    """Point lookups and ordered child lists over a set of tree entries."""

    def __init__(self, entries: Iterable[TreeEntry]) -> None:
        self._entries: dict[str, TreeEntry] = {}
        self._children: dict[str | None, list[str]] = defaultdict(list)
        for entry in sorted(entries, key=lambda e: (e.order, e.node_id)):
            self._entries[entry.node_id] = entry
            self._children[entry.parent_id].append(entry.node_id)

    @classmethod
    def from_node_rows(cls, rows: Iterable[dict]) -> "TreeIndex":
        return cls(IndexEntry.from_node_row(r) for r in rows)

    @classmethod
    def from_block_rows(cls, rows: Iterable[dict]) -> "TreeIndex":
        return cls(IndexEntry.from_block_row(r) for r in rows)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TreeEntry]:
        return iter(self._entries.values())

    def get(self, node_id: str | None) -> TreeEntry | None:
        if node_id is None:
            return None
        return self._entries.get(node_id)

    def require(self, node_id: str) -> TreeEntry:
        entry = self._entries.get(node_id)
        if entry is None:
            raise NodeNotFoundError(node_id)
        return entry

    def children_of(self, node_id: str | None) -> list[str]:
        """Child ids in sibling order, across all kinds."""
        return list(self._children.get(node_id, ()))

    def siblings(self, parent_id: str | None, kind: str) -> list[TreeEntry]:
        """The sibling group (parent_id, kind), ordered."""
        return [
            self._entries[i]
            for i in self._children.get(parent_id, ())
            if self._entries[i].kind == kind
        ]
