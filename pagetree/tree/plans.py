"""Structural mutation plans: what a move or delete changes, computed up front.

A plan is derived from a TreeIndex alone. The tree service writes it inside
its transaction; the client mirror applies it to a new snapshot.
"""

from dataclasses import dataclass

from pagetree.errors import DepthLimitExceededError, ValidationError
from pagetree.tree.index import TreeIndex
from pagetree.tree.invariants import (
    MAX_DEPTH,
    Containment,
    Placement,
    depth_of,
    descendants_of,
    resolve_move,
    sort_by_depth_desc,
    subtree_height,
)
from pagetree.tree.ordering import apply_shifts, merge_shifts, plan_insert, plan_remove


@dataclass(frozen=True)
class MovePlan:
    node_id: str
    kind: str
    old_parent_id: str | None
    old_order: int
    placement: Placement
    new_order: int
    orders: dict[str, int]
    descendants: frozenset[str]
    # None when the subtree's containment does not change (section moves).
    descendant_containment: Containment | None

    @property
    def touched_groups(self) -> list[tuple[str | None, str]]:
        return [(self.old_parent_id, self.kind), (self.placement.parent_id, self.kind)]


@dataclass(frozen=True)
class DeletePlan:
    node_id: str
    kind: str
    parent_id: str | None
    doomed: list[str]  # deepest first
    orders: dict[str, int]


def descendant_containment(kind: str, node_id: str, containment: Containment) -> Containment | None:
    """Containment inherited by the subtree of a node placed at ``containment``."""
    if kind == "section":
        return None
    if kind == "subsection":
        return Containment(section_id=containment.section_id, subsection_id=node_id)
    return containment


def plan_move(
    index: TreeIndex,
    node_id: str,
    *,
    new_parent_id: str | None = None,
    new_section_id: str | None = None,
    new_subsection_id: str | None = None,
    new_order: int | None = None,
    max_depth: int = MAX_DEPTH,
) -> MovePlan:
    """Validate a move and compute every order and containment it changes.

    Within the same group the node is taken out, the gap closed, and the
    node reinserted at ``new_order`` (default: where it was). Across groups
    the old group closes its gap and the node is inserted into the new one
    at ``new_order`` (default: appended). A move that would put any node of
    the subtree deeper than ``max_depth`` raises DepthLimitExceededError.
    """
    entry = index.require(node_id)
    placement = resolve_move(
        index,
        node_id,
        new_parent_id=new_parent_id,
        new_section_id=new_section_id,
        new_subsection_id=new_subsection_id,
        max_depth=max_depth,
    )
    if placement.parent_id is not None:
        landing_depth = depth_of(index, placement.parent_id, max_depth) + 1
        if landing_depth + subtree_height(index, node_id) > max_depth:
            raise DepthLimitExceededError(node_id, max_depth)

    old_group = [s for s in index.siblings(entry.parent_id, entry.kind) if s.node_id != node_id]
    removal = plan_remove(old_group, entry.order)
    if placement.parent_id == entry.parent_id:
        target_group = apply_shifts(old_group, removal)
        position = new_order if new_order is not None else entry.order
    else:
        target_group = index.siblings(placement.parent_id, entry.kind)
        position = new_order
    insertion = plan_insert(target_group, position=position)

    orders = merge_shifts(removal, insertion.shifts)
    orders[node_id] = insertion.new_order
    return MovePlan(
        node_id=node_id,
        kind=entry.kind,
        old_parent_id=entry.parent_id,
        old_order=entry.order,
        placement=placement,
        new_order=insertion.new_order,
        orders=orders,
        descendants=frozenset(descendants_of(index, node_id)),
        descendant_containment=descendant_containment(
            entry.kind, node_id, placement.containment
        ),
    )


def plan_delete(
    index: TreeIndex,
    node_id: str,
    *,
    cascade: bool = True,
    max_depth: int = MAX_DEPTH,
) -> DeletePlan:
    """The node, its descendants deepest-first, and the gap-closing shifts."""
    entry = index.require(node_id)
    descendants = descendants_of(index, node_id)
    if descendants and not cascade:
        raise ValidationError(
            f"Node {node_id} has {len(descendants)} descendants; "
            "pass cascade=true to delete them"
        )
    remaining = [s for s in index.siblings(entry.parent_id, entry.kind) if s.node_id != node_id]
    return DeletePlan(
        node_id=node_id,
        kind=entry.kind,
        parent_id=entry.parent_id,
        doomed=sort_by_depth_desc(index, [node_id, *descendants], max_depth),
        orders=merge_shifts(plan_remove(remaining, entry.order)),
    )
