"""Request and response schemas for page content: blocks, comments, attachments."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

# -- Blocks --


class CreateBlockRequest(BaseModel):
    block_type: str
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_block_id: str | None = None
    after_id: str | None = None
    order: int | None = Field(default=None, ge=0)


class PatchBlockRequest(BaseModel):
    block_type: str | None = None
    content: str | None = None
    metadata: dict[str, Any] | None = None


class ReorderBlocksRequest(BaseModel):
    parent_block_id: str | None = None
    ordered_ids: list[str]


class BlockResponse(BaseModel):
    block_id: str
    page_id: str
    parent_block_id: str | None = None
    block_type: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    order: int
    created_at: str
    updated_at: str


class DeleteBlockResponse(BaseModel):
    deleted_ids: list[str]


class BlockTypeInfo(BaseModel):
    name: str
    label: str
    container: bool = False


# -- Comments --


class CreateCommentRequest(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("comment must not be blank")
        return v


class CommentResponse(BaseModel):
    comment_id: str
    page_id: str
    author: str | None = None
    content: str
    created_at: str


# -- Attachments --


class CreateAttachmentRequest(BaseModel):
    """Metadata of a file already placed in storage by the upload layer."""

    original_name: str
    stored_name: str | None = None
    file_size: int = Field(ge=0)
    mime_type: str = "application/octet-stream"


class AttachmentResponse(BaseModel):
    attachment_id: str
    page_id: str
    original_name: str
    stored_name: str
    file_size: int
    mime_type: str
    uploaded_by: str | None = None
    created_at: str
