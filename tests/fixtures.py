"""Shared test helpers."""

from httpx import AsyncClient

from pagetree.models import EventEnvelope
from pagetree.tree.index import IndexEntry, TreeIndex


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[EventEnvelope] = []

    async def notify(self, event: EventEnvelope) -> None:
        self.events.append(event)

    @property
    def event_types(self) -> list[str]:
        return [e.event_type for e in self.events]


class FailingNotifier:
    """Notifier whose delivery always fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, event: EventEnvelope) -> None:
        self.calls += 1
        raise RuntimeError("delivery failed")


# -- Index helpers (pure engine tests) --


def entry(
    node_id: str,
    parent_id: str | None = None,
    order: int = 0,
    kind: str = "page",
    title: str | None = None,
) -> IndexEntry:
    return IndexEntry(
        node_id=node_id,
        kind=kind,
        parent_id=parent_id,
        order=order,
        title=title or node_id,
    )


def make_index(*entries: IndexEntry) -> TreeIndex:
    return TreeIndex(entries)


def sample_index() -> TreeIndex:
    """S1 with pages P1 (child P1a, grandchild P1a1) and P2; S2 with subsection Sub2 holding P3."""
    return make_index(
        entry("S1", kind="section", order=0),
        entry("S2", kind="section", order=1),
        entry("Sub2", parent_id="S2", kind="subsection", order=0),
        entry("P1", parent_id="S1", order=0),
        entry("P2", parent_id="S1", order=1),
        entry("P1a", parent_id="P1", order=0),
        entry("P1a1", parent_id="P1a", order=0),
        entry("P3", parent_id="Sub2", order=0),
    )


# -- API-level helpers --


async def create_workspace(client: AsyncClient, name: str = "Test Workspace") -> dict:
    """Create a workspace via the API and return the response JSON."""
    resp = await client.post("/api/workspaces", json={"name": name})
    assert resp.status_code == 201
    return resp.json()


async def create_node(client: AsyncClient, **body) -> dict:
    """Create a node via the API, asserting success."""
    resp = await client.post("/api/nodes", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_section(client: AsyncClient, workspace_id: str, title: str = "Section") -> dict:
    return await create_node(client, kind="section", workspace_id=workspace_id, title=title)


async def create_subsection(client: AsyncClient, section_id: str, title: str = "Subsection") -> dict:
    return await create_node(client, kind="subsection", parent_id=section_id, title=title)


async def create_page(client: AsyncClient, parent_id: str, title: str = "Page", **extra) -> dict:
    return await create_node(client, kind="page", parent_id=parent_id, title=title, **extra)


async def create_block(
    client: AsyncClient, page_id: str, block_type: str = "text", content: str = "", **extra
) -> dict:
    resp = await client.post(
        f"/api/pages/{page_id}/blocks",
        json={"block_type": block_type, "content": content, **extra},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_workspace_tree(client: AsyncClient) -> dict:
    """Workspace with S1 (pages P1 -> P1a, P2) and S2 (subsection Sub2).

    Returns {"workspace_id": str, "ids": {"S1": ..., "S2": ..., "Sub2": ...,
    "P1": ..., "P1a": ..., "P2": ...}}
    """
    workspace = await create_workspace(client)
    ws = workspace["workspace_id"]
    s1 = await create_section(client, ws, "S1")
    s2 = await create_section(client, ws, "S2")
    sub2 = await create_subsection(client, s2["node_id"], "Sub2")
    p1 = await create_page(client, s1["node_id"], "P1")
    p2 = await create_page(client, s1["node_id"], "P2")
    p1a = await create_page(client, p1["node_id"], "P1a")
    return {
        "workspace_id": ws,
        "ids": {
            "S1": s1["node_id"],
            "S2": s2["node_id"],
            "Sub2": sub2["node_id"],
            "P1": p1["node_id"],
            "P2": p2["node_id"],
            "P1a": p1a["node_id"],
        },
    }


async def sibling_orders(client: AsyncClient, parent_id: str, kind: str = "page") -> dict[str, int]:
    """title -> order for one sibling group."""
    resp = await client.get(f"/api/nodes/{parent_id}/children", params={"kind": kind})
    assert resp.status_code == 200
    return {n["title"]: n["order"] for n in resp.json()}
