"""User records and record visibility."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from ..models import User

if TYPE_CHECKING:
    from ..db import Database


class Scoped(Protocol):
    user_id: str
    household_id: int | None


def is_visible(record: Scoped, user_id: str, household_id: int | None) -> bool:
    """Whether a user (in ``household_id``, or none) may see ``record``.

    The owner always sees a record, including after leaving the household it
    was shared with. Other users see it only while in that household.
    """
    if record.user_id == user_id:
        return True
    return record.household_id is not None and record.household_id == household_id


class UserService:
    """Creates user rows on first use and resolves their household."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def ensure_user(
        self,
        user_id: str,
        email: str | None = None,
        display_name: str | None = None,
    ) -> User:
        self._db.users.upsert(User(id=user_id, email=email, display_name=display_name))
        return self._db.users.get(user_id)

    def household_of(self, user_id: str) -> int | None:
        user = self._db.users.get(user_id)
        return user.household_id if user else None
