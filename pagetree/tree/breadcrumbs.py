"""Breadcrumb and depth projection for any node in a TreeIndex."""

from pydantic import BaseModel

from pagetree.tree.index import TreeEntry, TreeIndex
from pagetree.tree.invariants import MAX_DEPTH, iter_ancestors


class BreadcrumbSegment(BaseModel):
    node_id: str
    kind: str
    title: str
    icon: str | None = None
    depth: int


def ancestors_of(
    index: TreeIndex, node_id: str, max_depth: int = MAX_DEPTH
) -> list[TreeEntry]:
    """Ancestors from the root down to the node's parent."""
    chain = list(iter_ancestors(index, node_id, max_depth))
    chain.reverse()
    return chain


def breadcrumbs(
    index: TreeIndex, node_id: str, max_depth: int = MAX_DEPTH
) -> list[BreadcrumbSegment]:
    """Ancestors plus the node itself, each tagged with its kind and depth."""
    chain = ancestors_of(index, node_id, max_depth)
    chain.append(index.require(node_id))
    return [
        BreadcrumbSegment(
            node_id=entry.node_id,
            kind=entry.kind,
            title=entry.title,
            icon=getattr(entry, "icon", None),
            depth=depth,
        )
        for depth, entry in enumerate(chain)
    ]
