"""User profiles, households and household membership."""

from __future__ import annotations

import sqlite3

from ..models import Household, User
from .schema import SQLiteDB


class UserDB(SQLiteDB):
    """Manages the users table."""

    def upsert(self, user: User) -> None:
        """Create the user, or refresh email/display name if already known."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                """INSERT INTO users (id, email, display_name)
                   VALUES (?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                     email = COALESCE(excluded.email, users.email),
                     display_name = COALESCE(excluded.display_name, users.display_name),
                     updated_at = datetime('now', 'localtime')""",
                (user.id, user.email, user.display_name),
            )

    def get(self, user_id: str) -> User | None:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            household_id=row["household_id"],
        )

    def set_household(self, user_id: str, household_id: int | None) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute(
                """UPDATE users SET household_id = ?,
                   updated_at = datetime('now', 'localtime') WHERE id = ?""",
                (household_id, user_id),
            )


class HouseholdDB(SQLiteDB):
    """Manages the households and household_members tables."""

    def invite_code_exists(self, invite_code: str) -> bool:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT 1 FROM households WHERE invite_code = ?", (invite_code,)
        ).fetchone()
        return row is not None

    def create(self, name: str, invite_code: str, created_by: str) -> int:
        """Insert a household with its creator as the first member.

        Raises:
            sqlite3.IntegrityError: If the invite code is already taken.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                "INSERT INTO households (name, invite_code, created_by) VALUES (?, ?, ?)",
                (name, invite_code, created_by),
            )
            household_id = cur.lastrowid
            conn.execute(
                "INSERT INTO household_members (household_id, user_id) VALUES (?, ?)",
                (household_id, created_by),
            )
        return household_id

    def _members(self, conn: sqlite3.Connection, household_id: int) -> list[str]:
        rows = conn.execute(
            """SELECT user_id FROM household_members
               WHERE household_id = ? ORDER BY joined_at, rowid""",
            (household_id,),
        ).fetchall()
        return [r["user_id"] for r in rows]

    def _row_to_household(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Household:
        return Household(
            id=row["id"],
            name=row["name"],
            invite_code=row["invite_code"],
            created_by=row["created_by"],
            members=self._members(conn, row["id"]),
            created_at=row["created_at"],
        )

    def get(self, household_id: int) -> Household | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM households WHERE id = ?", (household_id,)
        ).fetchone()
        return self._row_to_household(conn, row) if row else None

    def get_by_invite_code(self, invite_code: str) -> Household | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM households WHERE invite_code = ?", (invite_code,)
        ).fetchone()
        return self._row_to_household(conn, row) if row else None

    def add_member(self, household_id: int, user_id: str) -> bool:
        """Returns False if the user was already a member."""
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                """INSERT OR IGNORE INTO household_members (household_id, user_id)
                   VALUES (?, ?)""",
                (household_id, user_id),
            )
            conn.execute(
                "UPDATE households SET updated_at = datetime('now', 'localtime') WHERE id = ?",
                (household_id,),
            )
        return cur.rowcount == 1

    def remove_member(self, household_id: int, user_id: str) -> int:
        """Remove a member.

        Returns:
            Number of members left.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "DELETE FROM household_members WHERE household_id = ? AND user_id = ?",
                (household_id, user_id),
            )
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM household_members WHERE household_id = ?",
                (household_id,),
            ).fetchone()
        return row["n"]

    def rename(self, household_id: int, name: str) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute(
                """UPDATE households SET name = ?,
                   updated_at = datetime('now', 'localtime') WHERE id = ?""",
                (name, household_id),
            )

    def set_invite_code(self, household_id: int, invite_code: str) -> None:
        """Raises sqlite3.IntegrityError if the code is already taken."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                """UPDATE households SET invite_code = ?,
                   updated_at = datetime('now', 'localtime') WHERE id = ?""",
                (invite_code, household_id),
            )

    def delete(self, household_id: int) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM households WHERE id = ?", (household_id,))
