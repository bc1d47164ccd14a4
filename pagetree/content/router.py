"""FastAPI routes for page content: blocks, comments and attachments."""

from fastapi import APIRouter, Depends, status

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
from pagetree.content.service import ContentService
from pagetree.errors import TreeError
from pagetree.tree.router import get_actor, http_error

router = APIRouter(prefix="/api", tags=["content"])


def get_content_service() -> ContentService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("ContentService not initialized")


@router.get("/block-types")
async def list_block_types(
    service: ContentService = Depends(get_content_service),
) -> list[BlockTypeInfo]:
    return service.list_block_types()


# -- Blocks --


@router.get("/pages/{page_id}/blocks")
async def get_blocks(
    page_id: str,
    service: ContentService = Depends(get_content_service),
) -> list[BlockResponse]:
    try:
        return await service.get_blocks(page_id)
    except TreeError as e:
        raise http_error(e)


@router.post("/pages/{page_id}/blocks", status_code=status.HTTP_201_CREATED)
async def create_block(
    page_id: str,
    request: CreateBlockRequest,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> BlockResponse:
    try:
        return await service.create_block(page_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.post("/pages/{page_id}/blocks/reorder")
async def reorder_blocks(
    page_id: str,
    request: ReorderBlocksRequest,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> list[BlockResponse]:
    try:
        return await service.reorder_blocks(page_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.patch("/blocks/{block_id}")
async def update_block(
    block_id: str,
    request: PatchBlockRequest,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> BlockResponse:
    try:
        return await service.update_block(block_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


@router.delete("/blocks/{block_id}")
async def delete_block(
    block_id: str,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> DeleteBlockResponse:
    try:
        return await service.delete_block(block_id, actor=actor)
    except TreeError as e:
        raise http_error(e)


# -- Comments --


@router.get("/pages/{page_id}/comments")
async def get_comments(
    page_id: str,
    service: ContentService = Depends(get_content_service),
) -> list[CommentResponse]:
    try:
        return await service.get_comments(page_id)
    except TreeError as e:
        raise http_error(e)


@router.post("/pages/{page_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    page_id: str,
    request: CreateCommentRequest,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> CommentResponse:
    try:
        return await service.add_comment(page_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)


# -- Attachments --


@router.get("/pages/{page_id}/attachments")
async def get_attachments(
    page_id: str,
    service: ContentService = Depends(get_content_service),
) -> list[AttachmentResponse]:
    try:
        return await service.get_attachments(page_id)
    except TreeError as e:
        raise http_error(e)


@router.post("/pages/{page_id}/attachments", status_code=status.HTTP_201_CREATED)
async def add_attachment(
    page_id: str,
    request: CreateAttachmentRequest,
    service: ContentService = Depends(get_content_service),
    actor: str | None = Depends(get_actor),
) -> AttachmentResponse:
    try:
        return await service.add_attachment(page_id, request, actor=actor)
    except TreeError as e:
        raise http_error(e)
