"""Tests for the activity log and the notification boundary."""

import logging

from pagetree.events.notifier import LoggingNotifier, dispatch
from pagetree.models import EventEnvelope
from pagetree.tree.schemas import CreateNodeRequest, CreateWorkspaceRequest
from pagetree.tree.service import TreeService
from tests.fixtures import FailingNotifier, create_block, create_workspace_tree


class TestActivityLog:
    async def test_newest_first_with_actor(self, client):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        await client.patch(
            f"/api/nodes/{ids['P2']}",
            json={"title": "Renamed"},
            headers={"X-Actor-Id": "editor-7"},
        )

        resp = await client.get(f"/api/workspaces/{tree['workspace_id']}/activity")
        assert resp.status_code == 200
        entries = resp.json()
        assert entries[0]["event_type"] == "NodeUpdated"
        assert entries[0]["actor"] == "editor-7"
        assert entries[0]["payload"]["changed_fields"] == ["title"]
        sequence = [e["sequence_num"] for e in entries]
        assert sequence == sorted(sequence, reverse=True)

    async def test_limit(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.get(
            f"/api/workspaces/{tree['workspace_id']}/activity", params={"limit": 2}
        )
        assert len(resp.json()) == 2

    async def test_limit_bounds(self, client):
        tree = await create_workspace_tree(client)
        resp = await client.get(
            f"/api/workspaces/{tree['workspace_id']}/activity", params={"limit": 0}
        )
        assert resp.status_code == 422

    async def test_unknown_workspace(self, client):
        resp = await client.get("/api/workspaces/missing/activity")
        assert resp.status_code == 404

    async def test_failed_operation_leaves_no_event(self, client):
        tree = await create_workspace_tree(client)
        url = f"/api/workspaces/{tree['workspace_id']}/activity"
        before = len((await client.get(url)).json())

        resp = await client.post(
            f"/api/nodes/{tree['ids']['P1']}/move",
            json={"new_parent_id": tree["ids"]["P1a"]},
        )
        assert resp.status_code == 400
        assert len((await client.get(url)).json()) == before


class TestNotifications:
    async def test_committed_changes_are_notified(self, client, notifier):
        tree = await create_workspace_tree(client)
        ids = tree["ids"]
        await create_block(client, ids["P2"], content="hello")
        await client.post(f"/api/nodes/{ids['P2']}/move", json={"new_parent_id": ids["Sub2"]})
        await client.delete(f"/api/nodes/{ids['P1']}")

        assert notifier.event_types == ["NodeCreated"] * 6 + [
            "BlockCreated",
            "NodeMoved",
            "NodeDeleted",
        ]
        moved = notifier.events[-2]
        assert moved.payload["old_parent_id"] == ids["S1"]
        assert moved.payload["new_parent_id"] == ids["Sub2"]
        assert moved.payload["section_id"] == ids["S2"]

    async def test_rejected_change_is_not_notified(self, client, notifier):
        tree = await create_workspace_tree(client)
        count = len(notifier.events)
        await client.delete(f"/api/nodes/{tree['ids']['P1']}", params={"cascade": "false"})
        assert len(notifier.events) == count

    async def test_failing_notifier_keeps_change(self, db):
        notifier = FailingNotifier()
        service = TreeService(db, notifier=notifier)
        workspace = await service.create_workspace(CreateWorkspaceRequest(name="W"))

        section = await service.create_node(
            CreateNodeRequest(kind="section", title="S", workspace_id=workspace.workspace_id)
        )

        assert notifier.calls == 1
        stored = await service.get_node(section.node_id)
        assert stored.title == "S"

    async def test_logging_notifier(self, caplog):
        event = EventEnvelope(
            event_id="e1",
            workspace_id="w1",
            timestamp="2026-01-01T00:00:00+00:00",
            actor=None,
            event_type="NodeCreated",
            payload={"node_id": "n1", "title": "Roadmap"},
        )
        with caplog.at_level(logging.INFO, logger="pagetree.events.notifier"):
            await dispatch(LoggingNotifier(), [event])
        assert "NodeCreated in workspace w1 by anonymous: n1 'Roadmap'" in caplog.text

    async def test_no_notifier(self):
        await dispatch(None, [])
