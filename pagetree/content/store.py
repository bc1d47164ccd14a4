"""Row-level reads and writes for content blocks, comments and attachments."""

from pagetree.db.connection import Database, Transaction
from pagetree.errors import BlockNotFoundError
from pagetree.tree.index import TreeIndex

UPDATABLE_BLOCK_FIELDS = ("block_type", "content", "metadata")


class BlockStore:
    """Durable tables owned by pages."""

    def __init__(self, conn: Database | Transaction) -> None:
        self._conn = conn

    # -- Blocks --

    async def find_block(self, block_id: str) -> dict | None:
        row = await self._conn.fetchone(
            "SELECT * FROM blocks WHERE block_id = ?", (block_id,)
        )
        return dict(row) if row is not None else None

    async def get_block(self, block_id: str) -> dict:
        row = await self.find_block(block_id)
        if row is None:
            raise BlockNotFoundError(block_id)
        return row

    async def get_blocks(self, page_id: str) -> list[dict]:
        rows = await self._conn.fetchall(
            "SELECT * FROM blocks WHERE page_id = ? ORDER BY sort_order, created_at",
            (page_id,),
        )
        return [dict(r) for r in rows]

    async def load_index(self, page_id: str) -> TreeIndex:
        return TreeIndex.from_block_rows(await self.get_blocks(page_id))

    async def insert_block(self, row: dict) -> None:
        await self._conn.execute(
            """
            INSERT INTO blocks
                (block_id, page_id, parent_block_id, block_type, content, metadata,
                 sort_order, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["block_id"],
                row["page_id"],
                row["parent_block_id"],
                row["block_type"],
                row["content"],
                row["metadata"],
                row["sort_order"],
                row["created_at"],
                row["updated_at"],
            ),
        )

    async def update_fields(self, block_id: str, fields: dict, now: str) -> None:
        unknown = set(fields) - set(UPDATABLE_BLOCK_FIELDS)
        if unknown:
            raise ValueError(f"Not an updatable block field: {sorted(unknown)}")
        assignments = ", ".join(f"{name} = ?" for name in fields)
        await self._conn.execute(
            f"UPDATE blocks SET {assignments}, updated_at = ? WHERE block_id = ?",
            (*fields.values(), now, block_id),
        )

    async def set_orders(self, orders: dict[str, int], now: str) -> None:
        await self._conn.executemany(
            "UPDATE blocks SET sort_order = ?, updated_at = ? WHERE block_id = ?",
            ((order, now, bid) for bid, order in orders.items()),
        )

    async def delete_blocks(self, block_ids_in_order: list[str]) -> int:
        deleted = 0
        for block_id in block_ids_in_order:
            cursor = await self._conn.execute(
                "DELETE FROM blocks WHERE block_id = ?", (block_id,)
            )
            deleted += cursor.rowcount
        return deleted

    # -- Comments --

    async def insert_comment(self, row: dict) -> None:
        await self._conn.execute(
            "INSERT INTO comments (comment_id, page_id, author, content, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                row["comment_id"],
                row["page_id"],
                row["author"],
                row["content"],
                row["created_at"],
            ),
        )

    async def get_comments(self, page_id: str) -> list[dict]:
        rows = await self._conn.fetchall(
            "SELECT * FROM comments WHERE page_id = ? ORDER BY created_at",
            (page_id,),
        )
        return [dict(r) for r in rows]

    # -- Attachments --

    async def insert_attachment(self, row: dict) -> None:
        await self._conn.execute(
            """
            INSERT INTO attachments
                (attachment_id, page_id, original_name, stored_name, file_size,
                 mime_type, uploaded_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["attachment_id"],
                row["page_id"],
                row["original_name"],
                row["stored_name"],
                row["file_size"],
                row["mime_type"],
                row["uploaded_by"],
                row["created_at"],
            ),
        )

    async def get_attachments(self, page_id: str) -> list[dict]:
        rows = await self._conn.fetchall(
            "SELECT * FROM attachments WHERE page_id = ? ORDER BY created_at",
            (page_id,),
        )
        return [dict(r) for r in rows]
