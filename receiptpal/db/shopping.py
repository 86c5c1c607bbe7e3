"""Shopping list CRUD operations."""

from __future__ import annotations

import sqlite3

from ..models import ShoppingItem
from .schema import SQLiteDB, scope_clause


def _row_to_item(row: sqlite3.Row) -> ShoppingItem:
    return ShoppingItem(
        id=row["id"],
        user_id=row["user_id"],
        household_id=row["household_id"],
        name=row["name"],
        quantity=row["quantity"],
        notes=row["notes"],
        category=row["category"],
        checked=bool(row["checked"]),
        from_recipe=row["from_recipe"],
        manual=bool(row["manual"]),
        estimated_price=row["estimated_price"],
        created_at=row["created_at"],
    )


class ShoppingDB(SQLiteDB):
    """Manages the shopping_items table."""

    def add_items(self, items: list[ShoppingItem]) -> list[int]:
        conn = self._get_conn()
        ids: list[int] = []
        with conn:
            for item in items:
                cur = conn.execute(
                    """INSERT INTO shopping_items
                       (user_id, household_id, name, quantity, notes, category,
                        checked, from_recipe, manual, estimated_price)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        item.user_id,
                        item.household_id,
                        item.name,
                        item.quantity,
                        item.notes,
                        item.category,
                        int(item.checked),
                        item.from_recipe,
                        int(item.manual),
                        item.estimated_price,
                    ),
                )
                ids.append(cur.lastrowid)
        return ids

    def get(self, item_id: int) -> ShoppingItem | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM shopping_items WHERE id = ?", (item_id,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def list_visible(self, user_id: str, household_id: int | None = None) -> list[ShoppingItem]:
        """Return shopping items visible to a user, newest first."""
        conn = self._get_conn()
        where, params = scope_clause(user_id, household_id)
        rows = conn.execute(
            f"SELECT * FROM shopping_items WHERE {where} ORDER BY created_at DESC, id DESC",
            params,
        ).fetchall()
        return [_row_to_item(r) for r in rows]

    def set_checked(self, item_id: int, checked: bool) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute(
                "UPDATE shopping_items SET checked = ? WHERE id = ?",
                (int(checked), item_id),
            )

    def update(
        self,
        item_id: int,
        *,
        quantity: str | None = None,
        notes: str | None = None,
        category: str | None = None,
    ) -> None:
        conn = self._get_conn()
        with conn:
            for column, value in (
                ("quantity", quantity),
                ("notes", notes),
                ("category", category),
            ):
                if value is not None:
                    conn.execute(
                        f"UPDATE shopping_items SET {column} = ? WHERE id = ?",
                        (value, item_id),
                    )

    def delete_item(self, item_id: int) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM shopping_items WHERE id = ?", (item_id,))

    def delete_checked(self, user_id: str, household_id: int | None = None) -> int:
        """Delete every checked item visible to the user.

        Returns:
            Number of rows deleted.
        """
        conn = self._get_conn()
        where, params = scope_clause(user_id, household_id)
        with conn:
            cur = conn.execute(
                f"DELETE FROM shopping_items WHERE checked = 1 AND {where}",
                params,
            )
        return cur.rowcount
