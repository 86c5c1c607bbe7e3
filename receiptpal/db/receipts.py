"""Receipt and receipt item storage, including analysis status transitions."""

from __future__ import annotations

import json
import sqlite3
from typing import TYPE_CHECKING

from ..models import (
    AnalysisStatus,
    Receipt,
    ReceiptItem,
    ReceiptMetadata,
    StoreInfo,
    Summary,
)
from .schema import SQLiteDB, scope_clause

if TYPE_CHECKING:
    from ..parsing import ParsedReceipt


def _row_to_receipt(row: sqlite3.Row, items: list[ReceiptItem]) -> Receipt:
    return Receipt(
        id=row["id"],
        user_id=row["user_id"],
        household_id=row["household_id"],
        image_url=row["image_url"],
        image_path=row["image_path"],
        store_info=StoreInfo(
            name=row["store_name"],
            location=row["store_location"],
            date=row["store_date"],
        ),
        items=items,
        summary=Summary(
            subtotal=row["subtotal"],
            tax=row["tax"],
            total=row["total"],
        ),
        metadata=ReceiptMetadata(
            analysis_status=AnalysisStatus(row["analysis_status"]),
            processing_error=row["processing_error"],
            processed_at=row["processed_at"],
            confidence=row["confidence"],
        ),
        notes=row["notes"],
        tags=json.loads(row["tags"] or "[]"),
        added_to_pantry=bool(row["added_to_pantry"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ReceiptDB(SQLiteDB):
    """Manages the receipts and receipt_items tables."""

    def insert(self, receipt: Receipt) -> int:
        """Insert a receipt with its items.

        Returns:
            The new receipt ID.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                """INSERT INTO receipts
                   (user_id, household_id, image_url, image_path,
                    store_name, store_location, store_date,
                    subtotal, tax, total, analysis_status, notes, tags)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    receipt.user_id,
                    receipt.household_id,
                    receipt.image_url,
                    receipt.image_path,
                    receipt.store_info.name,
                    receipt.store_info.location,
                    receipt.store_info.date,
                    receipt.summary.subtotal,
                    receipt.summary.tax,
                    receipt.summary.total,
                    receipt.metadata.analysis_status.value,
                    receipt.notes,
                    json.dumps(receipt.tags),
                ),
            )
            receipt_id = cur.lastrowid
            self._write_items(conn, receipt_id, receipt.items)
        return receipt_id

    @staticmethod
    def _write_items(
        conn: sqlite3.Connection, receipt_id: int, items: list[ReceiptItem]
    ) -> None:
        conn.execute("DELETE FROM receipt_items WHERE receipt_id = ?", (receipt_id,))
        conn.executemany(
            """INSERT INTO receipt_items
               (receipt_id, position, name, category, quantity,
                unit_price, total_price, keywords)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    receipt_id,
                    position,
                    item.name,
                    item.category,
                    item.quantity,
                    item.unit_price,
                    item.total_price,
                    json.dumps(item.keywords),
                )
                for position, item in enumerate(items)
            ],
        )

    def _items_for(self, receipt_ids: list[int]) -> dict[int, list[ReceiptItem]]:
        if not receipt_ids:
            return {}
        conn = self._get_conn()
        placeholders = ",".join("?" for _ in receipt_ids)
        rows = conn.execute(
            f"""SELECT * FROM receipt_items
                WHERE receipt_id IN ({placeholders})
                ORDER BY receipt_id, position""",
            receipt_ids,
        ).fetchall()
        result: dict[int, list[ReceiptItem]] = {rid: [] for rid in receipt_ids}
        for row in rows:
            result[row["receipt_id"]].append(
                ReceiptItem(
                    name=row["name"],
                    category=row["category"],
                    quantity=row["quantity"],
                    unit_price=row["unit_price"],
                    total_price=row["total_price"],
                    keywords=json.loads(row["keywords"] or "[]"),
                )
            )
        return result

    def get(self, receipt_id: int) -> Receipt | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM receipts WHERE id = ?", (receipt_id,)
        ).fetchone()
        if row is None:
            return None
        return _row_to_receipt(row, self._items_for([receipt_id])[receipt_id])

    def get_by_image_path(self, image_path: str) -> Receipt | None:
        """Return the receipt whose stored image lives at ``image_path``."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM receipts WHERE image_path = ?", (image_path,)
        ).fetchone()
        if row is None:
            return None
        return _row_to_receipt(row, self._items_for([row["id"]])[row["id"]])

    def list_visible(self, user_id: str, household_id: int | None = None) -> list[Receipt]:
        """Return receipts visible to a user, newest first."""
        conn = self._get_conn()
        where, params = scope_clause(user_id, household_id)
        rows = conn.execute(
            f"SELECT * FROM receipts WHERE {where} ORDER BY created_at DESC, id DESC",
            params,
        ).fetchall()
        items = self._items_for([r["id"] for r in rows])
        return [_row_to_receipt(r, items[r["id"]]) for r in rows]

    def list_by_status(self, status: AnalysisStatus) -> list[Receipt]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM receipts WHERE analysis_status = ? ORDER BY id",
            (status.value,),
        ).fetchall()
        items = self._items_for([r["id"] for r in rows])
        return [_row_to_receipt(r, items[r["id"]]) for r in rows]

    def transition(
        self,
        receipt_id: int,
        from_statuses: tuple[AnalysisStatus, ...],
        to_status: AnalysisStatus,
        *,
        error: str | None = None,
    ) -> bool:
        """Atomically move a receipt between analysis statuses.

        Only applies when the current status is one of ``from_statuses``.

        Returns:
            True if the row was updated.
        """
        conn = self._get_conn()
        placeholders = ",".join("?" for _ in from_statuses)
        with conn:
            cur = conn.execute(
                f"""UPDATE receipts
                    SET analysis_status = ?,
                        processing_error = ?,
                        updated_at = datetime('now', 'localtime')
                    WHERE id = ? AND analysis_status IN ({placeholders})""",
                (to_status.value, error, receipt_id, *(s.value for s in from_statuses)),
            )
        return cur.rowcount == 1

    def complete(self, receipt_id: int, parsed: ParsedReceipt) -> bool:
        """Write extracted data and mark a processing receipt completed.

        All fields are written in one transaction; nothing is written unless
        the receipt is still ``processing``.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                """UPDATE receipts
                   SET store_name = ?, store_location = ?, store_date = ?,
                       subtotal = ?, tax = ?, total = ?,
                       confidence = ?,
                       analysis_status = 'completed',
                       processing_error = NULL,
                       processed_at = datetime('now', 'localtime'),
                       updated_at = datetime('now', 'localtime')
                   WHERE id = ? AND analysis_status = 'processing'""",
                (
                    parsed.store_info.name,
                    parsed.store_info.location,
                    parsed.store_info.date,
                    parsed.summary.subtotal,
                    parsed.summary.tax,
                    parsed.summary.total,
                    parsed.confidence,
                    receipt_id,
                ),
            )
            if cur.rowcount != 1:
                return False
            self._write_items(conn, receipt_id, parsed.items)
        return True

    def update_item_name(self, receipt_id: int, position: int, name: str) -> bool:
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                "UPDATE receipt_items SET name = ? WHERE receipt_id = ? AND position = ?",
                (name, receipt_id, position),
            )
            if cur.rowcount == 1:
                conn.execute(
                    "UPDATE receipts SET updated_at = datetime('now', 'localtime') WHERE id = ?",
                    (receipt_id,),
                )
        return cur.rowcount == 1

    def update_notes(self, receipt_id: int, notes: str, tags: list[str] | None = None) -> None:
        conn = self._get_conn()
        with conn:
            if tags is None:
                conn.execute(
                    """UPDATE receipts SET notes = ?,
                       updated_at = datetime('now', 'localtime') WHERE id = ?""",
                    (notes, receipt_id),
                )
            else:
                conn.execute(
                    """UPDATE receipts SET notes = ?, tags = ?,
                       updated_at = datetime('now', 'localtime') WHERE id = ?""",
                    (notes, json.dumps(tags), receipt_id),
                )

    def delete(self, receipt_id: int) -> None:
        """Delete a receipt (its items cascade)."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
