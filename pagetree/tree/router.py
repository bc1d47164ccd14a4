"""FastAPI routes for workspaces and tree nodes."""

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from pagetree.errors import (
    CircularReferenceError,
    ConflictError,
    DepthLimitExceededError,
    NotFoundError,
    TreeError,
    ValidationError,
)
from pagetree.models import NodeKind
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
from pagetree.tree.service import TreeService

workspaces_router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])
router = APIRouter(prefix="/api/nodes", tags=["nodes"])

_STATUS_BY_ERROR: list[tuple[type[TreeError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (CircularReferenceError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DepthLimitExceededError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(error: TreeError) -> HTTPException:
    """Translate a tree error into an HTTPException carrying its code."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return HTTPException(
        status_code=status_code,
        detail={"error": error.code, "message": str(error)},
    )


def get_tree_service() -> TreeService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("TreeService not initialized")


def get_actor(x_actor_id: str | None = Header(default=None)) -> str | None:
    """Acting user, as asserted by the upstream auth layer."""
    return x_actor_id


# -- Workspaces --


@workspaces_router.post("", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    request: CreateWorkspaceRequest,
    service: TreeService = Depends(get_tree_service),
) -> WorkspaceSummary:
    return await service.create_workspace(request)


@workspaces_router.get("")
async def list_workspaces(
    service: TreeService = Depends(get_tree_service),
) -> list[WorkspaceSummary]:
    return await service.list_workspaces()


@workspaces_router.get("/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    service: TreeService = Depends(get_tree_service),
) -> WorkspaceDetailResponse:
    try:
        return await service.get_workspace(workspace_id)
    except TreeError as e:
        raise http_error(e)


@workspaces_router.get("/{workspace_id}/activity")
async def get_activity(
    workspace_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    service: TreeService = Depends(get_tree_service),
) -> list[ActivityEntry]:
    try:
        return await service.get_activity(workspace_id, limit=limit)
    except TreeError as e:
        raise http_error(e)


# -- Nodes --


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_node(
    request: CreateNodeRequest,
    service: TreeService = Depends(get_tree_service),
    actor: str | None = Depends(get_actor),
) -> NodeResponse:
    try:
        return await service.create_node(request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.post("/reorder")
async def reorder_siblings(
    request: ReorderSiblingsRequest,
    service: TreeService = Depends(get_tree_service),
    actor: str | None = Depends(get_actor),
) -> ReorderResponse:
    try:
        return await service.reorder_siblings(request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.get("/{node_id}")
async def get_node(
    node_id: str,
    service: TreeService = Depends(get_tree_service),
) -> NodeResponse:
    try:
        return await service.get_node(node_id)
    except TreeError as e:
        raise http_error(e)


@router.get("/{node_id}/children")
async def get_children(
    node_id: str,
    kind: NodeKind | None = None,
    service: TreeService = Depends(get_tree_service),
) -> list[NodeResponse]:
    try:
        return await service.get_children(node_id, kind)
    except TreeError as e:
        raise http_error(e)


@router.patch("/{node_id}")
async def update_node(
    node_id: str,
    request: PatchNodeRequest,
    service: TreeService = Depends(get_tree_service),
    actor: str | None = Depends(get_actor),
) -> NodeResponse:
    try:
        return await service.update_node(node_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.post("/{node_id}/move")
async def move_node(
    node_id: str,
    request: MoveNodeRequest,
    service: TreeService = Depends(get_tree_service),
    actor: str | None = Depends(get_actor),
) -> NodeResponse:
    try:
        return await service.move_node(node_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.delete("/{node_id}")
async def delete_node(
    node_id: str,
    cascade: bool = True,
    service: TreeService = Depends(get_tree_service),
    actor: str | None = Depends(get_actor),
) -> DeleteNodeResponse:
    try:
        return await service.delete_node(node_id, cascade=cascade, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.get("/{node_id}/breadcrumbs")
async def get_breadcrumbs(
    node_id: str,
    service: TreeService = Depends(get_tree_service),
) -> BreadcrumbsResponse:
    try:
        return await service.get_breadcrumbs(node_id)
    except TreeError as e:
        raise http_error(e)
