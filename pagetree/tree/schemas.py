"""Request and response schemas for workspace and node endpoints."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from pagetree.models import NodeKind, PageStatus, PageType
from pagetree.tree.breadcrumbs import BreadcrumbSegment

# -- Requests --


def _clean_title(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("title must not be blank")
    return value


class CreateWorkspaceRequest(BaseModel):
    name: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _clean_title(v)


class CreateNodeRequest(BaseModel):
    """Parent reference plus attributes for a new section, subsection or page.

    Sections need ``workspace_id``. Subsections name their section through
    ``parent_id`` or ``section_id``. Pages name a parent node, or a
    ``subsection_id`` / ``section_id`` to become a root page there.
    """

    kind: NodeKind = "page"
    title: str
    workspace_id: str | None = None
    parent_id: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None
    after_id: str | None = None
    order: int | None = Field(default=None, ge=0)
    icon: str | None = None
    page_type: PageType = "page"
    status: PageStatus | None = None
    assignees: list[str] = Field(default_factory=list)
    deadline: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        return _clean_title(v)


class PatchNodeRequest(BaseModel):
    """Field edits. Only fields present in the request body are changed."""

    title: str | None = None
    icon: str | None = None
    page_type: PageType | None = None
    status: PageStatus | None = None
    assignees: list[str] | None = None
    deadline: str | None = None
    properties: dict[str, Any] | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str | None) -> str | None:
        return _clean_title(v)


class MoveNodeRequest(BaseModel):
    """Target of a move. With no parent fields the node keeps its parent."""

    new_parent_id: str | None = None
    new_section_id: str | None = None
    new_subsection_id: str | None = None
    new_order: int | None = Field(default=None, ge=0)


class ReorderSiblingsRequest(BaseModel):
    """A sibling group key and the complete new order of its members."""

    workspace_id: str
    parent_id: str | None = None
    kind: NodeKind
    ordered_ids: list[str]


# -- Responses --


class NodeResponse(BaseModel):
    node_id: str
    workspace_id: str
    kind: NodeKind
    parent_id: str | None = None
    section_id: str | None = None
    subsection_id: str | None = None
    title: str
    icon: str | None = None
    page_type: str | None = None
    status: str | None = None
    assignees: list[str] = Field(default_factory=list)
    deadline: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    order: int
    depth: int | None = None
    created_at: str
    updated_at: str


class WorkspaceSummary(BaseModel):
    workspace_id: str
    name: str
    description: str | None = None
    created_at: str
    updated_at: str


class WorkspaceDetailResponse(WorkspaceSummary):
    nodes: list[NodeResponse] = Field(default_factory=list)


class DeleteNodeResponse(BaseModel):
    deleted_ids: list[str]
    blocks_deleted: int = 0
    comments_deleted: int = 0
    attachments_deleted: int = 0


class ReorderResponse(BaseModel):
    ok: bool = True
    ordered_ids: list[str]


class BreadcrumbsResponse(BaseModel):
    workspace_id: str
    workspace_name: str
    segments: list[BreadcrumbSegment]


class ActivityEntry(BaseModel):
    event_id: str
    sequence_num: int
    timestamp: str
    actor: str | None = None
    event_type: str
    payload: dict[str, Any]
