"""Client tree mirror: immutable snapshots and a pure reducer over them.

``reduce(state, action)`` returns a new MirrorState and never modifies its
input. Structural actions run the same invariant and planning functions the
server uses, on a TreeIndex built from the snapshot, so a move the server is
certain to reject is rejected here before any request is made.

``TreeMirror`` wraps a current snapshot with optimistic bookkeeping: each
in-flight operation keeps the last-known-good snapshot taken before it was
applied, so a failed request can restore it without losing operations the
server has already confirmed.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from itertools import count
from typing import Any
from uuid import uuid4

from pagetree.errors import TreeError, ValidationError
from pagetree.models import DEFAULT_ICONS
from pagetree.tree.index import TreeIndex
from pagetree.tree.invariants import MAX_DEPTH, descendants_of, resolve_placement
from pagetree.tree.ordering import merge_shifts, plan_insert, plan_reorder
from pagetree.tree.plans import plan_delete, plan_move

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MirrorNode:
    node_id: str
    workspace_id: str
    kind: str
    parent_id: str | None
    order: int
    title: str
    icon: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None
    page_type: str | None = None
    status: str | None = None
    assignees: tuple[str, ...] = ()
    deadline: str | None = None
    properties: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "MirrorNode":
        """Build from a node as returned by the HTTP API."""
        return cls(
            node_id=data["node_id"],
            workspace_id=data["workspace_id"],
            kind=data["kind"],
            parent_id=data.get("parent_id"),
            order=data["order"],
            title=data["title"],
            icon=data.get("icon"),
            section_id=data.get("section_id"),
            subsection_id=data.get("subsection_id"),
            page_type=data.get("page_type"),
            status=data.get("status"),
            assignees=tuple(data.get("assignees") or ()),
            deadline=data.get("deadline"),
            properties=dict(data.get("properties") or {}),
        )


# Fields an UpdateNode action may change.
EDITABLE_FIELDS = frozenset(
    {"title", "icon", "page_type", "status", "assignees", "deadline", "properties"}
)


@dataclass(frozen=True)
class MirrorState:
    workspace_id: str
    nodes: Mapping[str, MirrorNode] = field(default_factory=dict)

    def index(self) -> TreeIndex:
        return TreeIndex(self.nodes.values())

    def get(self, node_id: str) -> MirrorNode | None:
        return self.nodes.get(node_id)

    def children(self, parent_id: str | None, kind: str) -> list[MirrorNode]:
        index = self.index()
        return [self.nodes[e.node_id] for e in index.siblings(parent_id, kind)]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateNode:
    node_id: str
    kind: str
    title: str
    parent_id: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None
    after_id: str | None = None
    position: int | None = None
    icon: str | None = None


@dataclass(frozen=True)
class MoveNode:
    node_id: str
    new_parent_id: str | None = None
    new_section_id: str | None = None
    new_subsection_id: str | None = None
    new_order: int | None = None


@dataclass(frozen=True)
class DeleteNode:
    node_id: str
    cascade: bool = True


@dataclass(frozen=True)
class ReorderSiblings:
    parent_id: str | None
    kind: str
    ordered_ids: tuple[str, ...]


@dataclass(frozen=True)
class UpdateNode:
    node_id: str
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class ReplaceSubtree:
    """Swap a subtree (or, with ``root_id=None``, everything) for server truth."""

    root_id: str | None
    nodes: tuple[MirrorNode, ...]


@dataclass(frozen=True)
class UpsertNodes:
    """Overwrite individual nodes with server truth and drop stale ids."""

    nodes: tuple[MirrorNode, ...]
    remove_ids: tuple[str, ...] = ()


Action = (
    CreateNode | MoveNode | DeleteNode | ReorderSiblings | UpdateNode | ReplaceSubtree | UpsertNodes
)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def reduce(state: MirrorState, action: Action, max_depth: int = MAX_DEPTH) -> MirrorState:
    """Apply one action, returning a new snapshot. Raises TreeError if invalid."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise ValidationError(f"Unknown mirror action: {type(action).__name__}")
    return handler(state, action, max_depth)


def _with_orders(nodes: dict[str, MirrorNode], orders: Mapping[str, int]) -> None:
    for node_id, order in orders.items():
        nodes[node_id] = replace(nodes[node_id], order=order)


def _handle_create(state: MirrorState, action: CreateNode, max_depth: int) -> MirrorState:
    if action.node_id in state.nodes:
        raise ValidationError(f"Node already exists: {action.node_id}")
    title = action.title.strip()
    if not title:
        raise ValidationError("title must not be blank")

    index = state.index()
    placement = resolve_placement(
        index,
        action.kind,
        parent_id=action.parent_id,
        section_id=action.section_id,
        subsection_id=action.subsection_id,
        max_depth=max_depth,
    )
    plan = plan_insert(
        index.siblings(placement.parent_id, action.kind),
        after_id=action.after_id,
        position=action.position,
    )

    nodes = dict(state.nodes)
    _with_orders(nodes, merge_shifts(plan.shifts))
    nodes[action.node_id] = MirrorNode(
        node_id=action.node_id,
        workspace_id=state.workspace_id,
        kind=action.kind,
        parent_id=placement.parent_id,
        order=plan.new_order,
        title=title,
        icon=action.icon or DEFAULT_ICONS[action.kind],
        section_id=placement.containment.section_id,
        subsection_id=placement.containment.subsection_id,
        page_type="page" if action.kind == "page" else None,
    )
    return MirrorState(state.workspace_id, nodes)


def _handle_move(state: MirrorState, action: MoveNode, max_depth: int) -> MirrorState:
    plan = plan_move(
        state.index(),
        action.node_id,
        new_parent_id=action.new_parent_id,
        new_section_id=action.new_section_id,
        new_subsection_id=action.new_subsection_id,
        new_order=action.new_order,
        max_depth=max_depth,
    )
    nodes = dict(state.nodes)
    _with_orders(nodes, plan.orders)
    nodes[action.node_id] = replace(
        nodes[action.node_id],
        parent_id=plan.placement.parent_id,
        section_id=plan.placement.containment.section_id,
        subsection_id=plan.placement.containment.subsection_id,
    )
    if plan.descendant_containment is not None:
        for node_id in plan.descendants:
            nodes[node_id] = replace(
                nodes[node_id],
                section_id=plan.descendant_containment.section_id,
                subsection_id=plan.descendant_containment.subsection_id,
            )
    return MirrorState(state.workspace_id, nodes)


def _handle_delete(state: MirrorState, action: DeleteNode, max_depth: int) -> MirrorState:
    plan = plan_delete(state.index(), action.node_id, cascade=action.cascade, max_depth=max_depth)
    doomed = set(plan.doomed)
    nodes = {k: v for k, v in state.nodes.items() if k not in doomed}
    _with_orders(nodes, plan.orders)
    return MirrorState(state.workspace_id, nodes)


def _handle_reorder(state: MirrorState, action: ReorderSiblings, max_depth: int) -> MirrorState:
    index = state.index()
    if action.parent_id is not None:
        index.require(action.parent_id)
    shifts = plan_reorder(index.siblings(action.parent_id, action.kind), action.ordered_ids)
    nodes = dict(state.nodes)
    _with_orders(nodes, merge_shifts(shifts))
    return MirrorState(state.workspace_id, nodes)


def _handle_update(state: MirrorState, action: UpdateNode, max_depth: int) -> MirrorState:
    state.index().require(action.node_id)
    node = state.nodes[action.node_id]
    unknown = set(action.changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Not an editable field: {sorted(unknown)}")
    if not action.changes:
        raise ValidationError("No fields to update")
    changes = dict(action.changes)
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("title must not be blank")
        changes["title"] = title
    if "assignees" in changes:
        changes["assignees"] = tuple(changes["assignees"] or ())
    nodes = dict(state.nodes)
    nodes[action.node_id] = replace(node, **changes)
    return MirrorState(state.workspace_id, nodes)


def _handle_replace_subtree(
    state: MirrorState, action: ReplaceSubtree, max_depth: int
) -> MirrorState:
    if action.root_id is None:
        return MirrorState(state.workspace_id, {n.node_id: n for n in action.nodes})
    index = state.index()
    stale: set[str] = set()
    if action.root_id in index:
        stale = {action.root_id} | descendants_of(index, action.root_id)
    nodes = {k: v for k, v in state.nodes.items() if k not in stale}
    nodes.update((n.node_id, n) for n in action.nodes)
    return MirrorState(state.workspace_id, nodes)


def _handle_upsert(state: MirrorState, action: UpsertNodes, max_depth: int) -> MirrorState:
    removed = set(action.remove_ids)
    nodes = {k: v for k, v in state.nodes.items() if k not in removed}
    nodes.update((n.node_id, n) for n in action.nodes)
    return MirrorState(state.workspace_id, nodes)


_HANDLERS: dict[type, Any] = {
    CreateNode: _handle_create,
    MoveNode: _handle_move,
    DeleteNode: _handle_delete,
    ReorderSiblings: _handle_reorder,
    UpdateNode: _handle_update,
    ReplaceSubtree: _handle_replace_subtree,
    UpsertNodes: _handle_upsert,
}


# ---------------------------------------------------------------------------
# Optimistic mirror
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _InFlight:
    seq: int
    action: Action
    # Last-known-good snapshot taken just before the action was applied.
    snapshot: MirrorState


@dataclass(frozen=True)
class _Confirmed:
    begun: int
    committed: int
    action: Action
    upsert: UpsertNodes


class TreeMirror:
    """Current snapshot plus one last-known-good snapshot per in-flight operation.

    Rolling back restores the snapshot taken before that operation began and
    replays every operation the server confirmed since then, so committed
    work is never lost. Optimistic changes begun after the rolled-back one
    are discarded and their tokens dropped. A later commit of a dropped
    token, or a replay the reducer rejects, marks the mirror ``stale``: it
    no longer reflects the server and must be reloaded.
    """

    def __init__(self, state: MirrorState, max_depth: int = MAX_DEPTH) -> None:
        self._state = state
        self._pending: dict[str, _InFlight] = {}
        self._journal: list[_Confirmed] = []
        self._seq = count(1)
        self._stale = False
        self._max_depth = max_depth

    @classmethod
    def from_nodes(
        cls, workspace_id: str, nodes: Iterable[MirrorNode], max_depth: int = MAX_DEPTH
    ) -> "TreeMirror":
        return cls(MirrorState(workspace_id, {n.node_id: n for n in nodes}), max_depth)

    @property
    def state(self) -> MirrorState:
        return self._state

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    @property
    def stale(self) -> bool:
        return self._stale

    def load(self, nodes: Iterable[MirrorNode]) -> None:
        """Replace the whole snapshot with server truth.

        Operations still in flight lose their tokens; committing one later
        marks the mirror stale again.
        """
        self._state = reduce(self._state, ReplaceSubtree(None, tuple(nodes)), self._max_depth)
        self._pending.clear()
        self._journal.clear()
        self._stale = False

    def apply(self, action: Action) -> None:
        """Apply an action with no rollback bookkeeping."""
        self._state = reduce(self._state, action, self._max_depth)

    def begin(self, action: Action) -> str:
        """Apply optimistically. Raises, leaving the snapshot unchanged, if invalid."""
        new_state = reduce(self._state, action, self._max_depth)
        token = str(uuid4())
        self._pending[token] = _InFlight(next(self._seq), action, self._state)
        self._state = new_state
        return token

    def rollback(self, token: str) -> None:
        op = self._pending.get(token)
        if op is None:
            logger.debug("Rollback of unknown or superseded operation %s", token)
            return
        for later in [t for t, p in self._pending.items() if p.seq >= op.seq]:
            del self._pending[later]

        state = op.snapshot
        for confirmed in self._journal:
            if confirmed.committed < op.seq:
                continue
            try:
                # Operations begun before this one are already in the snapshot.
                if confirmed.begun > op.seq:
                    state = reduce(state, confirmed.action, self._max_depth)
                state = reduce(state, confirmed.upsert, self._max_depth)
            except TreeError as e:
                logger.warning(
                    "Replaying a confirmed %s after rollback failed: %s",
                    type(confirmed.action).__name__, e,
                )
                self._stale = True
                break
        self._state = state
        self._prune_journal()

    def commit(
        self,
        token: str,
        server_nodes: Iterable[MirrorNode] | None = None,
        remove_ids: Iterable[str] = (),
    ) -> None:
        """Confirm an operation, reconciling with the server's version of its nodes."""
        op = self._pending.pop(token, None)
        if op is None:
            # Its optimistic effect was discarded; a partial upsert would
            # leave the sibling shifts it caused unapplied.
            logger.info("Commit of superseded operation %s; mirror is stale", token)
            self._stale = True
            return

        upsert = UpsertNodes(tuple(server_nodes or ()), tuple(remove_ids))
        if upsert.nodes or upsert.remove_ids:
            self._state = reduce(self._state, upsert, self._max_depth)
        if self._pending:
            self._journal.append(_Confirmed(op.seq, next(self._seq), op.action, upsert))
        self._prune_journal()

    def _prune_journal(self) -> None:
        """Keep only confirmations a pending rollback could still need."""
        if not self._pending:
            self._journal.clear()
            return
        oldest = min(p.seq for p in self._pending.values())
        self._journal = [c for c in self._journal if c.committed > oldest]
