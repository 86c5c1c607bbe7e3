"""Household creation, invite codes and membership."""

from __future__ import annotations

import logging
import random
import sqlite3
from typing import TYPE_CHECKING

from ..errors import HouseholdError, NotFoundError, ValidationError
from ..models import Household, User
from .users import UserService

if TYPE_CHECKING:
    from ..db import Database

logger = logging.getLogger(__name__)

# No 0/O or 1/I
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 100


def generate_invite_code(rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


class HouseholdService:
    """Manages households shared between users.

    A user belongs to at most one household. Receipts, pantry and shopping
    records created while in a household are visible to every member.
    """

    def __init__(self, db: Database, rng: random.Random | None = None) -> None:
        self._db = db
        self._rng = rng or random.SystemRandom()
        self._users = UserService(db)

    def _new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_invite_code(self._rng)
            if not self._db.households.invite_code_exists(code):
                return code
            logger.debug("Invite code collision: %s", code)
        raise HouseholdError("Could not generate a unique invite code")

    def _with_unique_code(self, write) -> str:
        """Call ``write(code)`` until the UNIQUE constraint accepts a code."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._new_code()
            try:
                write(code)
            except sqlite3.IntegrityError:
                logger.debug("Invite code taken concurrently: %s", code)
                continue
            return code
        raise HouseholdError("Could not generate a unique invite code")

    def _current(self, user_id: str) -> Household:
        household_id = self._users.household_of(user_id)
        if household_id is None:
            raise HouseholdError("You are not part of any household.")
        household = self._db.households.get(household_id)
        if household is None:
            raise NotFoundError(f"Household not found: {household_id}")
        return household

    def create_household(self, user_id: str, name: str) -> Household:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Household name is required")
        self._users.ensure_user(user_id)
        if self._users.household_of(user_id) is not None:
            raise HouseholdError("You are already part of a household.")

        created: list[int] = []
        self._with_unique_code(
            lambda code: created.append(self._db.households.create(name, code, user_id))
        )
        household_id = created[0]
        self._db.users.set_household(user_id, household_id)
        logger.info("Created household %s for %s", household_id, user_id)
        return self._db.households.get(household_id)

    def join_household(self, user_id: str, invite_code: str) -> Household:
        """Join by invite code (case-insensitive)."""
        self._users.ensure_user(user_id)
        household = self._db.households.get_by_invite_code((invite_code or "").strip().upper())
        if household is None:
            raise HouseholdError("Invalid invite code. Please check and try again.")
        if user_id in household.members:
            raise HouseholdError("You are already a member of this household.")
        if self._users.household_of(user_id) is not None:
            raise HouseholdError("You are already part of a household.")

        self._db.households.add_member(household.id, user_id)
        self._db.users.set_household(user_id, household.id)
        logger.info("%s joined household %s", user_id, household.id)
        return self._db.households.get(household.id)

    def leave_household(self, user_id: str) -> None:
        """Leave the current household, deleting it when nobody is left."""
        household_id = self._users.household_of(user_id)
        if household_id is None:
            raise HouseholdError("You are not part of any household.")

        if self._db.households.get(household_id) is not None:
            remaining = self._db.households.remove_member(household_id, user_id)
            if remaining == 0:
                self._db.households.delete(household_id)
                logger.info("Deleted empty household %s", household_id)
        self._db.users.set_household(user_id, None)

    def get_household(self, user_id: str) -> Household | None:
        household_id = self._users.household_of(user_id)
        if household_id is None:
            return None
        return self._db.households.get(household_id)

    def list_members(self, user_id: str) -> list[User]:
        household = self._current(user_id)
        members = []
        for member_id in household.members:
            user = self._db.users.get(member_id) or User(id=member_id)
            if not user.display_name:
                user.display_name = "Unknown"
            members.append(user)
        return members

    def rename_household(self, user_id: str, name: str) -> Household:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Household name is required")
        household = self._current(user_id)
        self._db.households.rename(household.id, name)
        return self._db.households.get(household.id)

    def regenerate_invite_code(self, user_id: str) -> str:
        household = self._current(user_id)
        code = self._with_unique_code(
            lambda c: self._db.households.set_invite_code(household.id, c)
        )
        logger.info("New invite code for household %s", household.id)
        return code
