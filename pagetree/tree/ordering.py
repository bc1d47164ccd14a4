"""Sibling-order planning: keeps every sibling group numbered 0..n-1.

Plans are computed from an ordered sibling list and returned as explicit
shifts, so the caller decides where to write them (an SQL transaction on
the server, a new snapshot in the client mirror).
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from pagetree.errors import NotFoundError, ValidationError


class Ordered(Protocol):
    node_id: str
    order: int


@dataclass(frozen=True)
class Slot:
    node_id: str
    order: int


@dataclass(frozen=True)
class OrderShift:
    node_id: str
    old_order: int
    new_order: int


@dataclass(frozen=True)
class InsertPlan:
    new_order: int
    shifts: list[OrderShift]


def plan_insert(
    siblings: Sequence[Ordered],
    *,
    after_id: str | None = None,
    position: int | None = None,
) -> InsertPlan:
    """Choose an order for a new member of the group and the shifts it causes.

    ``after_id`` places it right after that sibling; ``position`` places it
    at that index (clamped to the group bounds). With neither, it is appended
    at ``max(order) + 1``. Every sibling at or past the chosen order moves
    down by one.
    """
    if after_id is not None:
        after = next((s for s in siblings if s.node_id == after_id), None)
        if after is None:
            raise NotFoundError(f"Sibling to insert after not found: {after_id}")
        new_order = after.order + 1
    elif position is not None:
        new_order = max(0, min(position, len(siblings)))
    else:
        new_order = max((s.order for s in siblings), default=-1) + 1

    shifts = [
        OrderShift(s.node_id, s.order, s.order + 1)
        for s in siblings
        if s.order >= new_order
    ]
    return InsertPlan(new_order=new_order, shifts=shifts)


def plan_remove(siblings: Sequence[Ordered], removed_order: int) -> list[OrderShift]:
    """Close the gap left at ``removed_order``.

    ``siblings`` must not include the member being removed.
    """
    return [
        OrderShift(s.node_id, s.order, s.order - 1)
        for s in siblings
        if s.order > removed_order
    ]


def plan_reorder(siblings: Sequence[Ordered], ordered_ids: Sequence[str]) -> list[OrderShift]:
    """Shifts that renumber the group to match ``ordered_ids`` exactly.

    The list must name every current sibling exactly once.
    """
    current = {s.node_id: s.order for s in siblings}
    if len(ordered_ids) != len(set(ordered_ids)):
        raise ValidationError("Ordered id list contains duplicates")
    if set(ordered_ids) != set(current):
        missing = sorted(set(current) - set(ordered_ids))
        extra = sorted(set(ordered_ids) - set(current))
        raise ValidationError(
            f"Ordered id list must match the sibling set exactly "
            f"(missing: {missing}, unexpected: {extra})"
        )
    return [
        OrderShift(node_id, current[node_id], index)
        for index, node_id in enumerate(ordered_ids)
        if current[node_id] != index
    ]


def apply_shifts(siblings: Sequence[Ordered], shifts: Iterable[OrderShift]) -> list[Slot]:
    """The group as it looks after ``shifts``, sorted by order."""
    moved = {s.node_id: s.new_order for s in shifts}
    slots = [Slot(s.node_id, moved.get(s.node_id, s.order)) for s in siblings]
    return sorted(slots, key=lambda s: s.order)


def merge_shifts(*plans: Iterable[OrderShift]) -> dict[str, int]:
    """Final order per id when plans are applied one after another."""
    final: dict[str, int] = {}
    for plan in plans:
        for shift in plan:
            final[shift.node_id] = shift.new_order
    return final


def is_contiguous(orders: Iterable[int]) -> bool:
    """True when the orders are exactly 0..n-1."""
    ordered = sorted(orders)
    return ordered == list(range(len(ordered)))
