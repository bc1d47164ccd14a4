"""Content service: ordered blocks, comments and attachments on pages.

Blocks form their own small tree per page (``parent_block_id``) and obey the
same sibling-order rules as nodes, so this service reuses the tree index,
invariant and ordering functions with ``kind="block"``.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path, PurePath
from uuid import uuid4

import yaml

from pagetree.content.schemas import (
    AttachmentResponse,
    BlockResponse,
    BlockTypeInfo,
    CommentResponse,
    CreateAttachmentRequest,
    CreateBlockRequest,
    CreateCommentRequest,
    DeleteBlockResponse,
    PatchBlockRequest,
    ReorderBlocksRequest,
)
from pagetree.content.store import BlockStore
from pagetree.db.connection import Database
from pagetree.errors import BlockNotFoundError, ConflictError, ValidationError
from pagetree.events.notifier import Notifier, dispatch
from pagetree.events.store import EventStore
from pagetree.models import (
    AttachmentAddedPayload,
    BlockCreatedPayload,
    BlockDeletedPayload,
    BlocksReorderedPayload,
    BlockUpdatedPayload,
    CommentAddedPayload,
    EventEnvelope,
)
from pagetree.tree.index import TreeIndex
from pagetree.tree.invariants import MAX_DEPTH, descendants_of, sort_by_depth_desc
from pagetree.tree.ordering import (
    is_contiguous,
    merge_shifts,
    plan_insert,
    plan_remove,
    plan_reorder,
)
from pagetree.tree.store import NodeStore
from pagetree.utils.json import dump_json, parse_json_object

logger = logging.getLogger(__name__)

BLOCK_TYPES_PATH = Path(__file__).parent.parent / "block_types.yml"


def load_block_types(path: Path = BLOCK_TYPES_PATH) -> dict[str, BlockTypeInfo]:
    """Read the block type taxonomy, keyed by type name."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {
        entry["name"]: BlockTypeInfo(**entry)
        for entry in data.get("block_types", [])
    }


class ContentService:
    """Coordinates block/comment/attachment writes with the activity log."""

    def __init__(
        self,
        db: Database,
        notifier: Notifier | None = None,
        block_types: dict[str, BlockTypeInfo] | None = None,
        max_depth: int = MAX_DEPTH,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._block_types = block_types if block_types is not None else load_block_types()
        self._max_depth = max_depth

    def list_block_types(self) -> list[BlockTypeInfo]:
        return list(self._block_types.values())

    # -- Blocks --

    async def get_blocks(self, page_id: str) -> list[BlockResponse]:
        await self._require_page(NodeStore(self._db), page_id)
        rows = await BlockStore(self._db).get_blocks(page_id)
        return [self._block_response(r) for r in rows]

    async def create_block(
        self, page_id: str, request: CreateBlockRequest, actor: str | None = None
    ) -> BlockResponse:
        self._check_block_type(request.block_type)
        now = _now()
        stamp = now.isoformat()

        async with self._db.transaction() as tx:
            page = await self._require_page(NodeStore(tx), page_id)
            store = BlockStore(tx)
            index = await store.load_index(page_id)
            if request.parent_block_id is not None:
                parent = _require_block(index, request.parent_block_id)
                if not self._is_container(parent.title):
                    raise ValidationError(
                        f"A {parent.title} block cannot contain nested blocks"
                    )

            siblings = index.siblings(request.parent_block_id, "block")
            plan = plan_insert(siblings, after_id=request.after_id, position=request.order)
            await store.set_orders(merge_shifts(plan.shifts), stamp)

            row = {
                "block_id": str(uuid4()),
                "page_id": page_id,
                "parent_block_id": request.parent_block_id,
                "block_type": request.block_type,
                "content": request.content,
                "metadata": dump_json(request.metadata),
                "sort_order": plan.new_order,
                "created_at": stamp,
                "updated_at": stamp,
            }
            await store.insert_block(row)
            await self._verify(store, page_id, request.parent_block_id)

            event = _event(
                page["workspace_id"],
                actor,
                "BlockCreated",
                BlockCreatedPayload(
                    block_id=row["block_id"],
                    page_id=page_id,
                    block_type=request.block_type,
                    order=plan.new_order,
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return self._block_response(row)

    async def update_block(
        self, block_id: str, request: PatchBlockRequest, actor: str | None = None
    ) -> BlockResponse:
        fields = {name: getattr(request, name) for name in request.model_fields_set}
        if not fields:
            raise ValidationError("No fields to update")
        if any(value is None for value in fields.values()):
            raise ValidationError("Block fields cannot be cleared")
        if "block_type" in fields:
            self._check_block_type(fields["block_type"])
        if "metadata" in fields:
            fields["metadata"] = dump_json(fields["metadata"])

        now = _now()
        async with self._db.transaction() as tx:
            store = BlockStore(tx)
            block = await store.get_block(block_id)
            new_type = fields.get("block_type", block["block_type"])
            if not self._is_container(new_type):
                index = await store.load_index(block["page_id"])
                if index.children_of(block_id):
                    raise ValidationError(
                        f"Block {block_id} has nested blocks; {new_type} cannot contain them"
                    )
            await store.update_fields(block_id, fields, now.isoformat())
            row = await store.get_block(block_id)
            page = await NodeStore(tx).get_node(block["page_id"])

            event = _event(
                page["workspace_id"],
                actor,
                "BlockUpdated",
                BlockUpdatedPayload(
                    block_id=block_id, page_id=block["page_id"], changed_fields=sorted(fields)
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return self._block_response(row)

    async def delete_block(
        self, block_id: str, actor: str | None = None
    ) -> DeleteBlockResponse:
        """Delete a block and its nested blocks, closing the gap it leaves."""
        now = _now()
        async with self._db.transaction() as tx:
            store = BlockStore(tx)
            block = await store.get_block(block_id)
            page_id = block["page_id"]
            index = await store.load_index(page_id)

            doomed = sort_by_depth_desc(
                index, [block_id, *descendants_of(index, block_id)], self._max_depth
            )
            await store.delete_blocks(doomed)

            remaining = [
                s for s in index.siblings(block["parent_block_id"], "block")
                if s.node_id != block_id
            ]
            await store.set_orders(
                merge_shifts(plan_remove(remaining, block["sort_order"])), now.isoformat()
            )
            await self._verify(store, page_id, block["parent_block_id"])

            page = await NodeStore(tx).get_node(page_id)
            event = _event(
                page["workspace_id"],
                actor,
                "BlockDeleted",
                BlockDeletedPayload(block_id=block_id, page_id=page_id, deleted_ids=doomed),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return DeleteBlockResponse(deleted_ids=doomed)

    async def reorder_blocks(
        self, page_id: str, request: ReorderBlocksRequest, actor: str | None = None
    ) -> list[BlockResponse]:
        now = _now()
        events: list[EventEnvelope] = []
        async with self._db.transaction() as tx:
            page = await self._require_page(NodeStore(tx), page_id)
            store = BlockStore(tx)
            index = await store.load_index(page_id)
            if request.parent_block_id is not None:
                _require_block(index, request.parent_block_id)

            shifts = plan_reorder(
                index.siblings(request.parent_block_id, "block"), request.ordered_ids
            )
            if shifts:
                await store.set_orders(merge_shifts(shifts), now.isoformat())
                await self._verify(store, page_id, request.parent_block_id)
                events.append(
                    _event(
                        page["workspace_id"],
                        actor,
                        "BlocksReordered",
                        BlocksReorderedPayload(
                            page_id=page_id,
                            parent_block_id=request.parent_block_id,
                            ordered_ids=request.ordered_ids,
                        ),
                        now,
                    )
                )
                await EventStore(tx).append(events[0])
            rows = await store.get_blocks(page_id)

        await dispatch(self._notifier, events)
        return [self._block_response(r) for r in rows]

    # -- Comments --

    async def add_comment(
        self, page_id: str, request: CreateCommentRequest, actor: str | None = None
    ) -> CommentResponse:
        now = _now()
        row = {
            "comment_id": str(uuid4()),
            "page_id": page_id,
            "author": actor,
            "content": request.content,
            "created_at": now.isoformat(),
        }
        async with self._db.transaction() as tx:
            page = await self._require_page(NodeStore(tx), page_id)
            await BlockStore(tx).insert_comment(row)
            event = _event(
                page["workspace_id"],
                actor,
                "CommentAdded",
                CommentAddedPayload(comment_id=row["comment_id"], page_id=page_id),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return CommentResponse(**row)

    async def get_comments(self, page_id: str) -> list[CommentResponse]:
        await self._require_page(NodeStore(self._db), page_id)
        rows = await BlockStore(self._db).get_comments(page_id)
        return [CommentResponse(**r) for r in rows]

    # -- Attachments --

    async def add_attachment(
        self, page_id: str, request: CreateAttachmentRequest, actor: str | None = None
    ) -> AttachmentResponse:
        now = _now()
        attachment_id = str(uuid4())
        stored_name = request.stored_name or (
            attachment_id + PurePath(request.original_name).suffix
        )
        row = {
            "attachment_id": attachment_id,
            "page_id": page_id,
            "original_name": request.original_name,
            "stored_name": stored_name,
            "file_size": request.file_size,
            "mime_type": request.mime_type,
            "uploaded_by": actor,
            "created_at": now.isoformat(),
        }
        async with self._db.transaction() as tx:
            page = await self._require_page(NodeStore(tx), page_id)
            await BlockStore(tx).insert_attachment(row)
            event = _event(
                page["workspace_id"],
                actor,
                "AttachmentAdded",
                AttachmentAddedPayload(
                    attachment_id=attachment_id,
                    page_id=page_id,
                    original_name=request.original_name,
                ),
                now,
            )
            await EventStore(tx).append(event)

        await dispatch(self._notifier, [event])
        return AttachmentResponse(**row)

    async def get_attachments(self, page_id: str) -> list[AttachmentResponse]:
        await self._require_page(NodeStore(self._db), page_id)
        rows = await BlockStore(self._db).get_attachments(page_id)
        return [AttachmentResponse(**r) for r in rows]

    # -- Helpers --

    def _is_container(self, block_type: str) -> bool:
        info = self._block_types.get(block_type)
        return info is not None and info.container

    def _check_block_type(self, block_type: str) -> None:
        if block_type not in self._block_types:
            raise ValidationError(f"Unknown block type: {block_type}")

    @staticmethod
    async def _require_page(store: NodeStore, page_id: str) -> dict:
        node = await store.get_node(page_id)
        if node["kind"] != "page":
            raise ValidationError(f"{page_id} is a {node['kind']}; only pages hold content")
        return node

    @staticmethod
    async def _verify(store: BlockStore, page_id: str, parent_block_id: str | None) -> TreeIndex:
        index = await store.load_index(page_id)
        orders = [s.order for s in index.siblings(parent_block_id, "block")]
        if not is_contiguous(orders):
            logger.warning(
                "Block group (%s, %s) not contiguous before commit: %s",
                page_id, parent_block_id, orders,
            )
            raise ConflictError(f"Block order on page {page_id} changed concurrently")
        return index

    @staticmethod
    def _block_response(row: dict) -> BlockResponse:
        return BlockResponse(
            block_id=row["block_id"],
            page_id=row["page_id"],
            parent_block_id=row["parent_block_id"],
            block_type=row["block_type"],
            content=row["content"],
            metadata=parse_json_object(row["metadata"]),
            order=row["sort_order"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _require_block(index: TreeIndex, block_id: str):
    entry = index.get(block_id)
    if entry is None:
        raise BlockNotFoundError(block_id)
    return entry


def _now() -> datetime:
    return datetime.now(UTC)


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
