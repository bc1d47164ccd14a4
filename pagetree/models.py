"""Canonical data structures and change event types for pagetree.

Defined once here, referenced everywhere else. Change payloads describe a
committed structural or content mutation; the EventEnvelope wraps them with
workspace, actor and timestamp metadata. Envelopes are written to the
activity log in the same transaction as the change they describe, and handed
to the notifier after commit.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Canonical types
# ---------------------------------------------------------------------------

NodeKind = Literal["section", "subsection", "page"]
PageType = Literal["page", "database"]
PageStatus = Literal["Management", "Execution", "Inbox"]

DEFAULT_ICONS: dict[str, str] = {
    "section": "📁",
    "subsection": "📂",
    "page": "📄",
}


# ---------------------------------------------------------------------------
# Change payloads, one per event type
# ---------------------------------------------------------------------------


class NodeCreatedPayload(BaseModel):
    node_id: str
    kind: NodeKind
    title: str
    parent_id: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None
    order: int


class NodeUpdatedPayload(BaseModel):
    node_id: str
    title: str
    changed_fields: list[str]


class NodeMovedPayload(BaseModel):
    node_id: str
    title: str
    old_parent_id: str | None = None
    new_parent_id: str | None = None
    old_order: int
    new_order: int
    section_id: str | None = None
    subsection_id: str | None = None


class NodeDeletedPayload(BaseModel):
    node_id: str
    title: str
    deleted_ids: list[str]


class SiblingsReorderedPayload(BaseModel):
    parent_id: str | None = None
    kind: NodeKind
    ordered_ids: list[str]


class BlockCreatedPayload(BaseModel):
    block_id: str
    page_id: str
    block_type: str
    order: int


class BlockUpdatedPayload(BaseModel):
    block_id: str
    page_id: str
    changed_fields: list[str]


class BlockDeletedPayload(BaseModel):
    block_id: str
    page_id: str
    deleted_ids: list[str]


class BlocksReorderedPayload(BaseModel):
    page_id: str
    parent_block_id: str | None = None
    ordered_ids: list[str]


class CommentAddedPayload(BaseModel):
    comment_id: str
    page_id: str


class AttachmentAddedPayload(BaseModel):
    attachment_id: str
    page_id: str
    original_name: str


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "NodeCreated": NodeCreatedPayload,
    "NodeUpdated": NodeUpdatedPayload,
    "NodeMoved": NodeMovedPayload,
    "NodeDeleted": NodeDeletedPayload,
    "SiblingsReordered": SiblingsReorderedPayload,
    "BlockCreated": BlockCreatedPayload,
    "BlockUpdated": BlockUpdatedPayload,
    "BlockDeleted": BlockDeletedPayload,
    "BlocksReordered": BlocksReorderedPayload,
    "CommentAdded": CommentAddedPayload,
    "AttachmentAdded": AttachmentAddedPayload,
}


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class EventEnvelope(BaseModel):
    """Wraps every change with metadata. Stored in the events table."""

    event_id: str
    workspace_id: str
    timestamp: datetime
    actor: str | None = None
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence_num: int | None = None  # assigned by DB on insert

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
