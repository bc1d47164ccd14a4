"""Contract and integration tests for workspace and node CRUD endpoints."""

from tests.fixtures import (
    create_node,
    create_page,
    create_section,
    create_subsection,
    create_workspace,
    create_workspace_tree,
    sibling_orders,
)


class TestWorkspaces:
    async def test_create_and_list(self, client):
        await create_workspace(client, "Alpha")
        await create_workspace(client, "Beta")
        resp = await client.get("/api/workspaces")
        assert resp.status_code == 200
        assert {w["name"] for w in resp.json()} == {"Alpha", "Beta"}

    async def test_blank_name_rejected(self, client):
        resp = await client.post("/api/workspaces", json={"name": "   "})
        assert resp.status_code == 422

    async def test_detail_lists_nodes_in_tree_order(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.get(f"/api/workspaces/{tree['workspace_id']}")
        assert resp.status_code == 200
        nodes = resp.json()["nodes"]
        assert [(n["title"], n["depth"]) for n in nodes] == [
            ("S1", 0),
            ("P1", 1),
            ("P1a", 2),
            ("P2", 1),
            ("S2", 0),
            ("Sub2", 1),
        ]

    async def test_unknown_workspace(self, client):
        resp = await client.get("/api/workspaces/missing")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "not_found"


class TestCreateNode:
    async def test_section_needs_workspace(self, client):
        resp = await client.post("/api/nodes", json={"kind": "section", "title": "S"})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "validation_error"

    async def test_sections_are_ordered_per_workspace(self, client):
        ws = (await create_workspace(client))["workspace_id"]
        other = (await create_workspace(client, "Other"))["workspace_id"]
        a = await create_section(client, ws, "A")
        b = await create_section(client, ws, "B")
        c = await create_section(client, other, "C")
        assert (a["order"], b["order"], c["order"]) == (0, 1, 0)

    async def test_page_inherits_containment(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        page = await create_page(client, ids["Sub2"], "Deep")
        child = await create_page(client, page["node_id"], "Deeper")
        assert page["section_id"] == ids["S2"]
        assert page["subsection_id"] == ids["Sub2"]
        assert child["section_id"] == ids["S2"]
        assert child["subsection_id"] == ids["Sub2"]
        assert child["depth"] == 3

    async def test_root_page_by_section_id(self, client):
        tree = await create_workspace_tree(client)
        page = await create_node(
            client, kind="page", section_id=tree["ids"]["S1"], title="Root page"
        )
        assert page["parent_id"] == tree["ids"]["S1"]
        assert page["order"] == 2

    async def test_insert_after_shifts_later_siblings(self, client):
        """S1 holds P1(0), P2(1); a page created after P1 gets 1 and P2 moves to 2."""
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        new = await create_page(client, ids["S1"], "New", after_id=ids["P1"])
        assert new["order"] == 1
        assert await sibling_orders(client, ids["S1"]) == {"P1": 0, "New": 1, "P2": 2}

    async def test_insert_at_position(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        await create_page(client, ids["S1"], "First", order=0)
        assert await sibling_orders(client, ids["S1"]) == {"First": 0, "P1": 1, "P2": 2}

    async def test_unknown_after_id(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.post(
            "/api/nodes",
            json={"parent_id": tree["ids"]["S1"], "title": "X", "after_id": "missing"},
        )
        assert resp.status_code == 404

    async def test_missing_parent(self, client):
        resp = await client.post("/api/nodes", json={"parent_id": "missing", "title": "X"})
        assert resp.status_code == 404

    async def test_kind_mismatch(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.post(
            "/api/nodes",
            json={"kind": "subsection", "parent_id": tree["ids"]["P1"], "title": "X"},
        )
        assert resp.status_code == 400

    async def test_override_disagreeing_with_parent(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        resp = await client.post(
            "/api/nodes",
            json={"parent_id": ids["P1"], "section_id": ids["S2"], "title": "X"},
        )
        assert resp.status_code == 400

    async def test_cross_workspace_reference(self, client):
        tree = await create_workspace_tree(client)
        other = (await create_workspace(client, "Other"))["workspace_id"]
        resp = await client.post(
            "/api/nodes",
            json={"workspace_id": other, "parent_id": tree["ids"]["S1"], "title": "X"},
        )
        assert resp.status_code == 400

    async def test_blank_title_rejected(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.post(
            "/api/nodes", json={"parent_id": tree["ids"]["S1"], "title": "  "}
        )
        assert resp.status_code == 422

    async def test_page_fields_round_trip(self, client):
        tree = await create_workspace_tree(client)
        page = await create_page(
            client,
            tree["ids"]["S1"],
            "Tracker",
            page_type="database",
            status="Execution",
            assignees=["ana", "li"],
            deadline="2026-12-01",
            properties={"priority": "high"},
        )
        resp = await client.get(f"/api/nodes/{page['node_id']}")
        data = resp.json()
        assert data["page_type"] == "database"
        assert data["status"] == "Execution"
        assert data["assignees"] == ["ana", "li"]
        assert data["properties"] == {"priority": "high"}
        assert data["icon"] == "📄"


class TestReadNodes:
    async def test_get_node_with_depth(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.get(f"/api/nodes/{tree['ids']['P1a']}")
        assert resp.status_code == 200
        assert resp.json()["depth"] == 2

    async def test_get_missing_node(self, client):
        resp = await client.get("/api/nodes/missing")
        assert resp.status_code == 404

    async def test_children_subsections_before_pages(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        await create_page(client, ids["S2"], "Root page")
        resp = await client.get(f"/api/nodes/{ids['S2']}/children")
        assert [n["title"] for n in resp.json()] == ["Sub2", "Root page"]

    async def test_children_filtered_by_kind(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        await create_subsection(client, ids["S1"], "Sub1")
        resp = await client.get(f"/api/nodes/{ids['S1']}/children", params={"kind": "page"})
        assert [n["title"] for n in resp.json()] == ["P1", "P2"]


class TestUpdateNode:
    async def test_update_fields(self, client):
        tree = await create_workspace_tree(client)
        node_id = tree["ids"]["P1"]
        resp = await client.patch(
            f"/api/nodes/{node_id}",
            json={"title": "Renamed", "status": "Inbox", "assignees": ["kim"]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Renamed"
        assert data["status"] == "Inbox"
        assert data["assignees"] == ["kim"]
        assert data["order"] == 0
        assert data["parent_id"] == tree["ids"]["S1"]

    async def test_empty_update_rejected(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.patch(f"/api/nodes/{tree['ids']['P1']}", json={})
        assert resp.status_code == 400

    async def test_update_missing_node(self, client):
        resp = await client.patch("/api/nodes/missing", json={"title": "X"})
        assert resp.status_code == 404


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
