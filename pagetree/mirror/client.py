"""HTTP session that keeps a TreeMirror in step with the server.

Each mutation is applied to the mirror first, then sent. A successful
response commits the operation with the server's version of the node. An
error response rolls the mirror back, reloads it from the server when the
service rejected the change, and is raised again as the same TreeError
subclass the server raised.
"""

import logging
from typing import Any
from uuid import uuid4

import httpx

from pagetree.errors import ERRORS_BY_CODE, TreeError, ValidationError
from pagetree.mirror.state import (
    CreateNode,
    DeleteNode,
    MirrorNode,
    MoveNode,
    ReorderSiblings,
    TreeMirror,
    UpdateNode,
)

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def error_from_response(response: httpx.Response) -> TreeError:
    """Rebuild the server's typed error from an HTTP error response."""
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, dict) and "error" in detail:
        cls = ERRORS_BY_CODE.get(detail["error"], TreeError)
        return cls.from_message(detail.get("message", ""))
    if response.status_code == 422:
        # Request body rejected by schema validation before reaching the service.
        return ValidationError.from_message(str(detail))
    return TreeError.from_message(f"HTTP {response.status_code}: {detail or response.text}")


class MirrorSession:
    """Optimistic client for one workspace."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        mirror: TreeMirror,
        actor: str | None = None,
    ) -> None:
        self._client = client
        self._mirror = mirror
        self._headers = {"X-Actor-Id": actor} if actor else {}

    @classmethod
    async def open(
        cls, client: httpx.AsyncClient, workspace_id: str, actor: str | None = None
    ) -> "MirrorSession":
        """Load the workspace from the server and start a session on it."""
        session = cls(client, TreeMirror.from_nodes(workspace_id, ()), actor=actor)
        await session.refresh()
        return session

    @property
    def mirror(self) -> TreeMirror:
        return self._mirror

    @property
    def workspace_id(self) -> str:
        return self._mirror.state.workspace_id

    async def refresh(self) -> None:
        """Replace the whole mirror with the server's current tree."""
        response = await self._client.get(f"/api/workspaces/{self.workspace_id}")
        if response.is_error:
            raise error_from_response(response)
        nodes = [MirrorNode.from_response(n) for n in response.json()["nodes"]]
        self._mirror.load(nodes)

    async def create_node(
        self,
        kind: str,
        title: str,
        *,
        parent_id: str | None = None,
        section_id: str | None = None,
        subsection_id: str | None = None,
        after_id: str | None = None,
        order: int | None = None,
        icon: str | None = None,
    ) -> MirrorNode:
        temp_id = f"{TEMP_ID_PREFIX}{uuid4()}"
        token = self._mirror.begin(
            CreateNode(
                node_id=temp_id,
                kind=kind,
                title=title,
                parent_id=parent_id,
                section_id=section_id,
                subsection_id=subsection_id,
                after_id=after_id,
                position=order,
                icon=icon,
            )
        )
        body = {
            "kind": kind,
            "title": title,
            "parent_id": parent_id,
            "section_id": section_id,
            "subsection_id": subsection_id,
            "after_id": after_id,
            "order": order,
            "icon": icon,
        }
        if kind == "section":
            body["workspace_id"] = self.workspace_id
        data = await self._send(token, "POST", "/api/nodes", json=body)
        node = MirrorNode.from_response(data)
        await self._commit(token, [node], remove_ids=[temp_id])
        return node

    async def update_node(self, node_id: str, **changes: Any) -> MirrorNode:
        token = self._mirror.begin(UpdateNode(node_id, changes))
        data = await self._send(token, "PATCH", f"/api/nodes/{node_id}", json=changes)
        node = MirrorNode.from_response(data)
        await self._commit(token, [node])
        return node

    async def move_node(
        self,
        node_id: str,
        *,
        new_parent_id: str | None = None,
        new_section_id: str | None = None,
        new_subsection_id: str | None = None,
        new_order: int | None = None,
    ) -> MirrorNode:
        """Move a node. A move that cannot succeed raises before any request."""
        token = self._mirror.begin(
            MoveNode(
                node_id,
                new_parent_id=new_parent_id,
                new_section_id=new_section_id,
                new_subsection_id=new_subsection_id,
                new_order=new_order,
            )
        )
        data = await self._send(
            token,
            "POST",
            f"/api/nodes/{node_id}/move",
            json={
                "new_parent_id": new_parent_id,
                "new_section_id": new_section_id,
                "new_subsection_id": new_subsection_id,
                "new_order": new_order,
            },
        )
        node = MirrorNode.from_response(data)
        await self._commit(token, [node])
        return node

    async def delete_node(self, node_id: str, cascade: bool = True) -> list[str]:
        token = self._mirror.begin(DeleteNode(node_id, cascade=cascade))
        data = await self._send(
            token,
            "DELETE",
            f"/api/nodes/{node_id}",
            params={"cascade": "true" if cascade else "false"},
        )
        await self._commit(token, remove_ids=data["deleted_ids"])
        return data["deleted_ids"]

    async def reorder_siblings(
        self, parent_id: str | None, kind: str, ordered_ids: list[str]
    ) -> None:
        token = self._mirror.begin(ReorderSiblings(parent_id, kind, tuple(ordered_ids)))
        await self._send(
            token,
            "POST",
            "/api/nodes/reorder",
            json={
                "workspace_id": self.workspace_id,
                "parent_id": parent_id,
                "kind": kind,
                "ordered_ids": ordered_ids,
            },
        )
        await self._commit(token)

    async def _send(self, token: str, method: str, url: str, **kwargs: Any) -> dict:
        """Send a request for an in-flight operation, rolling back on any failure.

        A rejection from the service means the local checks passed on data
        the server no longer agrees with, so the mirror is reloaded before
        the error is raised. Schema rejections (422) say nothing about the
        tree and only roll back.
        """
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError:
            self._mirror.rollback(token)
            raise
        if response.is_error:
            self._mirror.rollback(token)
            error = error_from_response(response)
            logger.info("Rolled back %s %s: %s (%s)", method, url, error.code, error)
            if response.status_code != 422 or self._mirror.stale:
                await self._resync()
            raise error
        return response.json()

    async def _commit(
        self,
        token: str,
        server_nodes: list[MirrorNode] | None = None,
        remove_ids: list[str] | None = None,
    ) -> None:
        self._mirror.commit(token, server_nodes, remove_ids or ())
        if self._mirror.stale:
            await self.refresh()

    async def _resync(self) -> None:
        """Reload after a rejected request; the caller still sees the rejection."""
        try:
            await self.refresh()
        except (httpx.HTTPError, TreeError) as e:
            logger.warning("Could not reload workspace %s: %s", self.workspace_id, e)
