"""Node store: row-level reads and writes for workspaces and tree nodes.

Works on either a ``Database`` (autocommitted reads) or a ``Transaction``
(all reads and writes of one mutation). Orchestration and invariant checks
live in the tree service; this module only speaks SQL.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from pagetree.db.connection import Database, Transaction
from pagetree.errors import NodeNotFoundError
from pagetree.tree.index import TreeIndex
from pagetree.tree.invariants import Containment

# Columns a plain field edit may touch. Structural columns (parent, containment,
# order) only change through move/reorder.
UPDATABLE_NODE_FIELDS = (
    "title",
    "icon",
    "page_type",
    "status",
    "assignees",
    "deadline",
    "properties",
)


# Page-owned tables cleared before their nodes are deleted.
DEPENDENT_TABLES = ("blocks", "comments", "attachments")
DELETE_CHUNK_SIZE = 500


class NodeStore:
    """Durable table of sections, subsections and pages."""

    def __init__(self, conn: Database | Transaction) -> None:
        self._conn = conn

    # -- Workspaces --

    async def get_workspace(self, workspace_id: str) -> dict | None:
        row = await self._conn.fetchone(
            "SELECT * FROM workspaces WHERE workspace_id = ?", (workspace_id,)
        )
        return dict(row) if row is not None else None

    async def list_workspaces(self) -> list[dict]:
        rows = await self._conn.fetchall("SELECT * FROM workspaces ORDER BY created_at")
        return [dict(r) for r in rows]

    async def insert_workspace(self, row: dict) -> None:
        await self._conn.execute(
            """
            INSERT INTO workspaces (workspace_id, name, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                row["workspace_id"],
                row["name"],
                row.get("description"),
                row["created_at"],
                row["updated_at"],
            ),
        )

    # -- Node reads --

    async def find_node(self, node_id: str) -> dict | None:
        row = await self._conn.fetchone(
            "SELECT * FROM nodes WHERE node_id = ?", (node_id,)
        )
        return dict(row) if row is not None else None

    async def get_node(self, node_id: str) -> dict:
        row = await self.find_node(node_id)
        if row is None:
            raise NodeNotFoundError(node_id)
        return row

    async def get_children(self, parent_id: str, kind: str | None = None) -> list[dict]:
        """Direct children of ``parent_id`` in sibling order."""
        if kind is None:
            rows = await self._conn.fetchall(
                "SELECT * FROM nodes WHERE parent_id = ? ORDER BY kind, sort_order",
                (parent_id,),
            )
        else:
            rows = await self._conn.fetchall(
                "SELECT * FROM nodes WHERE parent_id = ? AND kind = ? ORDER BY sort_order",
                (parent_id, kind),
            )
        return [dict(r) for r in rows]

    async def get_sections(self, workspace_id: str) -> list[dict]:
        rows = await self._conn.fetchall(
            "SELECT * FROM nodes WHERE workspace_id = ? AND kind = 'section' "
            "ORDER BY sort_order",
            (workspace_id,),
        )
        return [dict(r) for r in rows]

    async def get_workspace_nodes(self, workspace_id: str) -> list[dict]:
        rows = await self._conn.fetchall(
            "SELECT * FROM nodes WHERE workspace_id = ? ORDER BY sort_order, created_at",
            (workspace_id,),
        )
        return [dict(r) for r in rows]

    async def load_index(self, workspace_id: str) -> TreeIndex:
        """Read every parent link of the workspace into a TreeIndex."""
        return TreeIndex.from_node_rows(await self.get_workspace_nodes(workspace_id))

    # -- Node writes --

    async def insert_node(self, row: dict) -> None:
        await self._conn.execute(
            """
            INSERT INTO nodes
                (node_id, workspace_id, kind, parent_id, section_id, subsection_id,
                 title, icon, page_type, status, assignees, deadline, properties,
                 sort_order, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["node_id"],
                row["workspace_id"],
                row["kind"],
                row["parent_id"],
                row["section_id"],
                row["subsection_id"],
                row["title"],
                row["icon"],
                row["page_type"],
                row["status"],
                row["assignees"],
                row["deadline"],
                row["properties"],
                row["sort_order"],
                row["created_at"],
                row["updated_at"],
            ),
        )

    async def update_fields(self, node_id: str, fields: dict[str, Any], now: str) -> None:
        unknown = set(fields) - set(UPDATABLE_NODE_FIELDS)
        if unknown:
            raise ValueError(f"Not an updatable node field: {sorted(unknown)}")
        assignments = ", ".join(f"{name} = ?" for name in fields)
        await self._conn.execute(
            f"UPDATE nodes SET {assignments}, updated_at = ? WHERE node_id = ?",
            (*fields.values(), now, node_id),
        )

    async def set_parent(
        self, node_id: str, parent_id: str | None, containment: Containment, now: str
    ) -> None:
        await self._conn.execute(
            "UPDATE nodes SET parent_id = ?, section_id = ?, subsection_id = ?, "
            "updated_at = ? WHERE node_id = ?",
            (parent_id, containment.section_id, containment.subsection_id, now, node_id),
        )

    async def set_containment(
        self, node_ids: Iterable[str], containment: Containment, now: str
    ) -> None:
        await self._conn.executemany(
            "UPDATE nodes SET section_id = ?, subsection_id = ?, updated_at = ? "
            "WHERE node_id = ?",
            (
                (containment.section_id, containment.subsection_id, now, nid)
                for nid in node_ids
            ),
        )

    async def set_orders(self, orders: dict[str, int], now: str) -> None:
        await self._conn.executemany(
            "UPDATE nodes SET sort_order = ?, updated_at = ? WHERE node_id = ?",
            ((order, now, nid) for nid, order in orders.items()),
        )

    async def delete_dependents(self, node_ids: Sequence[str]) -> dict[str, int]:
        """Delete blocks, comments and attachments owned by ``node_ids``.

        Owners are handled in chunks so a large subtree never exceeds
        SQLite's bound-variable limit.
        """
        counts = dict.fromkeys(DEPENDENT_TABLES, 0)
        for start in range(0, len(node_ids), DELETE_CHUNK_SIZE):
            chunk = tuple(node_ids[start:start + DELETE_CHUNK_SIZE])
            marks = ", ".join("?" for _ in chunk)
            for table in DEPENDENT_TABLES:
                # Nested blocks cascade from their parent block, so count before deleting.
                row = await self._conn.fetchone(
                    f"SELECT COUNT(*) AS n FROM {table} WHERE page_id IN ({marks})", chunk
                )
                if row["n"]:
                    await self._conn.execute(
                        f"DELETE FROM {table} WHERE page_id IN ({marks})", chunk
                    )
                    counts[table] += row["n"]
        return counts

    async def delete_nodes(self, node_ids_in_order: list[str]) -> int:
        """Delete nodes one by one in the given order (deepest first)."""
        deleted = 0
        for node_id in node_ids_in_order:
            cursor = await self._conn.execute(
                "DELETE FROM nodes WHERE node_id = ?", (node_id,)
            )
            deleted += cursor.rowcount
        return deleted
