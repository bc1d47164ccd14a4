"""Tree service: runs each structural mutation as one store transaction.

Every mutation follows the same shape: open a transaction, read the
workspace's parent links into a TreeIndex, validate with the invariant
engine, write, re-verify the touched sibling groups, append the change
event, commit. Notification happens only after the commit succeeds.
"""

import logging
from datetime import UTC, datetime
from uuid import uuid4

from pagetree.db.connection import Database
from pagetree.errors import (
    ConflictError,
    NodeNotFoundError,
    ValidationError,
    WorkspaceNotFoundError,
)
from pagetree.events.notifier import Notifier, dispatch
from pagetree.events.store import EventStore
from pagetree.models import (
    DEFAULT_ICONS,
    EventEnvelope,
    NodeCreatedPayload,
    NodeDeletedPayload,
    NodeMovedPayload,
    NodeUpdatedPayload,
    SiblingsReorderedPayload,
)
from pagetree.tree.breadcrumbs import breadcrumbs
from pagetree.tree.index import TreeIndex
from pagetree.tree.invariants import MAX_DEPTH, depth_of, resolve_placement
from pagetree.tree.ordering import is_contiguous, merge_shifts, plan_insert, plan_reorder
from pagetree.tree.plans import plan_delete, plan_move
from pagetree.tree.schemas import (
    ActivityEntry,
    BreadcrumbsResponse,
    CreateNodeRequest,
    CreateWorkspaceRequest,
    DeleteNodeResponse,
    MoveNodeRequest,
    NodeResponse,
    PatchNodeRequest,
    ReorderResponse,
    ReorderSiblingsRequest,
    WorkspaceDetailResponse,
    WorkspaceSummary,
)
from pagetree.tree.store import NodeStore
from pagetree.utils.json import dump_json, parse_json_list, parse_json_object

logger = logging.getLogger(__name__)

# Children of one parent are listed subsections first, then pages.
_KIND_RANK = {"section": 0, "subsection": 1, "page": 2}


def _now() -> datetime:
    return datetime.now(UTC)


class TreeService:
    """Coordinates the node store, invariant engine and activity log."""

    def __init__(
        self,
        db: Database,
        notifier: Notifier | None = None,
        max_depth: int = MAX_DEPTH,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._max_depth = max_depth

    # -- Workspaces --

    async def create_workspace(self, request: CreateWorkspaceRequest) -> WorkspaceSummary:
        now = _now().isoformat()
        row = {
            "workspace_id": str(uuid4()),
            "name": request.name,
            "description": request.description,
            "created_at": now,
            "updated_at": now,
        }
        async with self._db.transaction() as tx:
            await NodeStore(tx).insert_workspace(row)
        logger.info("Created workspace %s (%r)", row["workspace_id"], request.name)
        return WorkspaceSummary(**row)

    async def list_workspaces(self) -> list[WorkspaceSummary]:
        rows = await NodeStore(self._db).list_workspaces()
        return [WorkspaceSummary(**row) for row in rows]

    async def get_workspace(self, workspace_id: str) -> WorkspaceDetailResponse:
        """The workspace with every node in display order, each with its depth."""
        store = NodeStore(self._db)
        workspace = await store.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        rows = await store.get_workspace_nodes(workspace_id)
        index = TreeIndex.from_node_rows(rows)
        by_id = {row["node_id"]: row for row in rows}

        ordered: list[NodeResponse] = []

        def walk(parent_id: str | None, depth: int) -> None:
            children = sorted(
                (by_id[cid] for cid in index.children_of(parent_id)),
                key=lambda r: (_KIND_RANK[r["kind"]], r["sort_order"]),
            )
            for child in children:
                ordered.append(self._node_response(child, depth))
                walk(child["node_id"], depth + 1)

        walk(None, 0)
        return WorkspaceDetailResponse(**workspace, nodes=ordered)

    async def get_activity(
        self, workspace_id: str, limit: int | None = 50
    ) -> list[ActivityEntry]:
        if await NodeStore(self._db).get_workspace(workspace_id) is None:
            raise WorkspaceNotFoundError(workspace_id)
        events = await EventStore(self._db).get_events(workspace_id, limit=limit)
        return [
            ActivityEntry(
                event_id=e.event_id,
                sequence_num=e.sequence_num,
                timestamp=e.timestamp.isoformat(),
                actor=e.actor,
                event_type=e.event_type,
                payload=e.payload,
            )
            for e in events
        ]

    # -- Node reads --

    async def get_node(self, node_id: str) -> NodeResponse:
        store = NodeStore(self._db)
        row = await store.get_node(node_id)
        index = await store.load_index(row["workspace_id"])
        return self._node_response(row, depth_of(index, node_id, self._max_depth))

    async def get_children(self, node_id: str, kind: str | None = None) -> list[NodeResponse]:
        store = NodeStore(self._db)
        await store.get_node(node_id)
        rows = await store.get_children(node_id, kind)
        rows.sort(key=lambda r: (_KIND_RANK[r["kind"]], r["sort_order"]))
        return [self._node_response(r) for r in rows]

    async def get_breadcrumbs(self, node_id: str) -> BreadcrumbsResponse:
        store = NodeStore(self._db)
        row = await store.get_node(node_id)
        workspace = await store.get_workspace(row["workspace_id"])
        index = await store.load_index(row["workspace_id"])
        return BreadcrumbsResponse(
            workspace_id=row["workspace_id"],
            workspace_name=workspace["name"] if workspace else "",
            segments=breadcrumbs(index, node_id, self._max_depth),
        )

    # -- Mutations --

    async def create_node(
        self, request: CreateNodeRequest, actor: str | None = None
    ) -> NodeResponse:
        """Create a section, subsection or page at the requested position."""
        now = _now()
        stamp = now.isoformat()
        node_id = str(uuid4())

        async with self._db.transaction() as tx:
            store = NodeStore(tx)
            workspace_id = await self._resolve_workspace(
                store,
                request.workspace_id,
                request.parent_id,
                request.section_id,
                request.subsection_id,
            )
            index = await store.load_index(workspace_id)
            placement = resolve_placement(
                index,
                request.kind,
                parent_id=request.parent_id,
                section_id=request.section_id,
                subsection_id=request.subsection_id,
                max_depth=self._max_depth,
            )
            siblings = index.siblings(placement.parent_id, request.kind)
            plan = plan_insert(siblings, after_id=request.after_id, position=request.order)

            await store.set_orders(merge_shifts(plan.shifts), stamp)
            row = {
                "node_id": node_id,
                "workspace_id": workspace_id,
                "kind": request.kind,
                "parent_id": placement.parent_id,
                "section_id": placement.containment.section_id,
                "subsection_id": placement.containment.subsection_id,
                "title": request.title,
                "icon": request.icon or DEFAULT_ICONS[request.kind],
                "page_type": request.page_type if request.kind == "page" else None,
                "status": request.status,
                "assignees": dump_json(request.assignees, "[]"),
                "deadline": request.deadline,
                "properties": dump_json(request.properties),
                "sort_order": plan.new_order,
                "created_at": stamp,
                "updated_at": stamp,
            }
            await store.insert_node(row)

            index = await self._verify(store, workspace_id, [(placement.parent_id, request.kind)])
            depth = depth_of(index, node_id, self._max_depth)

            event = self._event(
                workspace_id,
                actor,
                "NodeCreated",
                NodeCreatedPayload(
                    node_id=node_id,
                    kind=request.kind,
                    title=request.title,
                    parent_id=placement.parent_id,
                    section_id=placement.containment.section_id,
                    subsection_id=placement.containment.subsection_id,
                    order=plan.new_order,
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return self._node_response(row, depth)

    async def update_node(
        self, node_id: str, request: PatchNodeRequest, actor: str | None = None
    ) -> NodeResponse:
        """Edit node fields. No structural effect."""
        fields = {name: getattr(request, name) for name in request.model_fields_set}
        if not fields:
            raise ValidationError("No fields to update")
        if "title" in fields and fields["title"] is None:
            raise ValidationError("title cannot be cleared")
        if "assignees" in fields:
            fields["assignees"] = dump_json(fields["assignees"], "[]")
        if "properties" in fields:
            fields["properties"] = dump_json(fields["properties"])

        now = _now()
        async with self._db.transaction() as tx:
            store = NodeStore(tx)
            await store.get_node(node_id)
            await store.update_fields(node_id, fields, now.isoformat())
            row = await store.get_node(node_id)
            event = self._event(
                row["workspace_id"],
                actor,
                "NodeUpdated",
                NodeUpdatedPayload(
                    node_id=node_id, title=row["title"], changed_fields=sorted(fields)
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return self._node_response(row)

    async def move_node(
        self, node_id: str, request: MoveNodeRequest, actor: str | None = None
    ) -> NodeResponse:
        """Reparent and/or reposition a node, carrying its whole subtree along.

        All checks run on the index read after the write lock is taken, so
        a concurrent move that would close a cycle is seen here.
        """
        now = _now()
        stamp = now.isoformat()

        async with self._db.transaction() as tx:
            store = NodeStore(tx)
            node = await store.get_node(node_id)
            workspace_id = node["workspace_id"]
            await self._resolve_workspace(
                store,
                workspace_id,
                request.new_parent_id,
                request.new_section_id,
                request.new_subsection_id,
            )
            index = await store.load_index(workspace_id)
            plan = plan_move(
                index,
                node_id,
                new_parent_id=request.new_parent_id,
                new_section_id=request.new_section_id,
                new_subsection_id=request.new_subsection_id,
                new_order=request.new_order,
                max_depth=self._max_depth,
            )

            await store.set_orders(plan.orders, stamp)
            await store.set_parent(
                node_id, plan.placement.parent_id, plan.placement.containment, stamp
            )
            if plan.descendants and plan.descendant_containment is not None:
                await store.set_containment(
                    plan.descendants, plan.descendant_containment, stamp
                )

            index = await self._verify(store, workspace_id, plan.touched_groups)
            depth = depth_of(index, node_id, self._max_depth)
            row = await store.get_node(node_id)

            event = self._event(
                workspace_id,
                actor,
                "NodeMoved",
                NodeMovedPayload(
                    node_id=node_id,
                    title=row["title"],
                    old_parent_id=plan.old_parent_id,
                    new_parent_id=plan.placement.parent_id,
                    old_order=plan.old_order,
                    new_order=plan.new_order,
                    section_id=plan.placement.containment.section_id,
                    subsection_id=plan.placement.containment.subsection_id,
                ),
                now,
            )
            await EventStore(tx).append(event)

        logger.debug(
            "Moved %s from %s[%d] to %s[%d] (%d descendants)",
            node_id, plan.old_parent_id, plan.old_order,
            plan.placement.parent_id, plan.new_order, len(plan.descendants),
        )
        await dispatch(self._notifier, [event])
        return self._node_response(row, depth)

    async def delete_node(
        self, node_id: str, cascade: bool = True, actor: str | None = None
    ) -> DeleteNodeResponse:
        """Delete a node, its descendants, and everything they own."""
        now = _now()

        async with self._db.transaction() as tx:
            store = NodeStore(tx)
            node = await store.get_node(node_id)
            workspace_id = node["workspace_id"]
            index = await store.load_index(workspace_id)
            plan = plan_delete(index, node_id, cascade=cascade, max_depth=self._max_depth)

            counts = await store.delete_dependents(plan.doomed)
            await store.delete_nodes(plan.doomed)
            await store.set_orders(plan.orders, now.isoformat())
            await self._verify(store, workspace_id, [(plan.parent_id, plan.kind)])

            event = self._event(
                workspace_id,
                actor,
                "NodeDeleted",
                NodeDeletedPayload(
                    node_id=node_id, title=node["title"], deleted_ids=plan.doomed
                ),
                now,
            )
            await EventStore(tx).append(event)

        logger.info(
            "Deleted %s and %d descendants (%d blocks, %d comments, %d attachments)",
            node_id, len(plan.doomed) - 1,
            counts["blocks"], counts["comments"], counts["attachments"],
        )
        await dispatch(self._notifier, [event])
        return DeleteNodeResponse(
            deleted_ids=plan.doomed,
            blocks_deleted=counts["blocks"],
            comments_deleted=counts["comments"],
            attachments_deleted=counts["attachments"],
        )

    async def reorder_siblings(
        self, request: ReorderSiblingsRequest, actor: str | None = None
    ) -> ReorderResponse:
        """Renumber a sibling group to match ``ordered_ids``. Idempotent."""
        now = _now()
        async with self._db.transaction() as tx:
            store = NodeStore(tx)
            if await store.get_workspace(request.workspace_id) is None:
                raise WorkspaceNotFoundError(request.workspace_id)
            index = await store.load_index(request.workspace_id)
            if request.parent_id is not None:
                index.require(request.parent_id)

            siblings = index.siblings(request.parent_id, request.kind)
            shifts = plan_reorder(siblings, request.ordered_ids)
            if not shifts:
                return ReorderResponse(ordered_ids=request.ordered_ids)

            await store.set_orders(merge_shifts(shifts), now.isoformat())
            await self._verify(
                store, request.workspace_id, [(request.parent_id, request.kind)]
            )
            event = self._event(
                request.workspace_id,
                actor,
                "SiblingsReordered",
                SiblingsReorderedPayload(
                    parent_id=request.parent_id,
                    kind=request.kind,
                    ordered_ids=request.ordered_ids,
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return ReorderResponse(ordered_ids=request.ordered_ids)

    # -- Helpers --

    async def _resolve_workspace(
        self,
        store: NodeStore,
        workspace_id: str | None,
        *refs: str | None,
    ) -> str:
        """Workspace a mutation runs in; every referenced node must belong to it."""
        if workspace_id is not None and await store.get_workspace(workspace_id) is None:
            raise WorkspaceNotFoundError(workspace_id)
        for ref in refs:
            if ref is None:
                continue
            row = await store.find_node(ref)
            if row is None:
                raise NodeNotFoundError(ref)
            if workspace_id is None:
                workspace_id = row["workspace_id"]
            elif row["workspace_id"] != workspace_id:
                raise ValidationError(f"{ref} belongs to a different workspace")
        if workspace_id is None:
            raise ValidationError("workspace_id or a parent reference is required")
        return workspace_id

    async def _verify(
        self,
        store: NodeStore,
        workspace_id: str,
        groups: list[tuple[str | None, str]],
    ) -> TreeIndex:
        """Re-read the workspace and check the touched groups before commit."""
        index = await store.load_index(workspace_id)
        for parent_id, kind in set(groups):
            orders = [s.order for s in index.siblings(parent_id, kind)]
            if not is_contiguous(orders):
                logger.warning(
                    "Sibling group (%s, %s) not contiguous before commit: %s",
                    parent_id, kind, orders,
                )
                raise ConflictError(
                    f"Sibling order for {kind}s under {parent_id} changed concurrently"
                )
        return index

    @staticmethod
    def _event(
        workspace_id: str,
        actor: str | None,
        event_type: str,
        payload,
        timestamp: datetime,
    ) -> EventEnvelope:
        return EventEnvelope(
            event_id=str(uuid4()),
            workspace_id=workspace_id,
            timestamp=timestamp,
            actor=actor,
            event_type=event_type,
            payload=payload.model_dump(),
        )

    @staticmethod
    def _node_response(row: dict, depth: int | None = None) -> NodeResponse:
        return NodeResponse(
            node_id=row["node_id"],
            workspace_id=row["workspace_id"],
            kind=row["kind"],
            parent_id=row["parent_id"],
            section_id=row["section_id"],
            subsection_id=row["subsection_id"],
            title=row["title"],
            icon=row["icon"],
            page_type=row["page_type"],
            status=row["status"],
            assignees=parse_json_list(row["assignees"]),
            deadline=row["deadline"],
            properties=parse_json_object(row["properties"]),
            order=row["sort_order"],
            depth=depth,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
