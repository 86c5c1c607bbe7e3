"""Pantry inventory CRUD operations."""

from __future__ import annotations

import sqlite3

from ..models import PantryItem
from .schema import SQLiteDB, scope_clause


def _row_to_item(row: sqlite3.Row) -> PantryItem:
    return PantryItem(
        id=row["id"],
        user_id=row["user_id"],
        household_id=row["household_id"],
        name=row["name"],
        category=row["category"],
        source=row["source"],
        receipt_id=row["receipt_id"],
        store_name=row["store_name"],
        created_at=row["created_at"],
    )


class PantryDB(SQLiteDB):
    """Manages the pantry_items table."""

    @staticmethod
    def _insert(conn: sqlite3.Connection, item: PantryItem) -> int | None:
        cur = conn.execute(
            """INSERT OR IGNORE INTO pantry_items
               (user_id, household_id, name, category, source,
                receipt_id, store_name)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                item.user_id,
                item.household_id,
                item.name,
                item.category,
                item.source,
                item.receipt_id,
                item.store_name,
            ),
        )
        return cur.lastrowid if cur.rowcount == 1 else None

    def add_items(self, items: list[PantryItem]) -> list[int]:
        """Insert pantry items, skipping any (receipt_id, name) already present.

        Returns:
            Row IDs of the items actually inserted.
        """
        conn = self._get_conn()
        ids: list[int] = []
        with conn:
            for item in items:
                row_id = self._insert(conn, item)
                if row_id is not None:
                    ids.append(row_id)
        return ids

    def add_receipt_items(self, receipt_id: int, items: list[PantryItem]) -> list[int] | None:
        """Mark a receipt as transferred and insert its items in one transaction.

        Returns:
            Row IDs of the inserted items, or None when the receipt was
            already transferred (or does not exist). If an insert fails the
            flag is rolled back with it.
        """
        conn = self._get_conn()
        ids: list[int] = []
        with conn:
            cur = conn.execute(
                "UPDATE receipts SET added_to_pantry = 1 WHERE id = ? AND added_to_pantry = 0",
                (receipt_id,),
            )
            if cur.rowcount != 1:
                return None
            for item in items:
                row_id = self._insert(conn, item)
                if row_id is not None:
                    ids.append(row_id)
        return ids

    def get(self, item_id: int) -> PantryItem | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM pantry_items WHERE id = ?", (item_id,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def list_visible(self, user_id: str, household_id: int | None = None) -> list[PantryItem]:
        """Return pantry items visible to a user, newest first."""
        conn = self._get_conn()
        where, params = scope_clause(user_id, household_id)
        rows = conn.execute(
            f"SELECT * FROM pantry_items WHERE {where} ORDER BY created_at DESC, id DESC",
            params,
        ).fetchall()
        return [_row_to_item(r) for r in rows]

    def update(self, item_id: int, *, name: str | None = None, category: str | None = None) -> None:
        conn = self._get_conn()
        with conn:
            if name is not None:
                conn.execute(
                    "UPDATE pantry_items SET name = ? WHERE id = ?", (name, item_id)
                )
            if category is not None:
                conn.execute(
                    "UPDATE pantry_items SET category = ? WHERE id = ?",
                    (category, item_id),
                )

    def delete_item(self, item_id: int) -> None:
        """Delete a pantry item by ID."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM pantry_items WHERE id = ?", (item_id,))
