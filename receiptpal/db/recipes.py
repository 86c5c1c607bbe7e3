"""Saved recipe storage."""

from __future__ import annotations

import json
import sqlite3

from ..models import Recipe
from .schema import SQLiteDB

_LIST_COLUMNS = ("ingredients", "instructions", "matched_ingredients", "missing_ingredients")


def _row_to_recipe(row: sqlite3.Row) -> Recipe:
    d = dict(row)
    for column in _LIST_COLUMNS:
        try:
            d[column] = json.loads(d[column] or "[]")
        except (json.JSONDecodeError, TypeError):
            d[column] = []
    return Recipe(**d)


class RecipeDB(SQLiteDB):
    """Manages the saved_recipes table."""

    def save(self, user_id: str, recipe: Recipe) -> int:
        """Save a recipe for a user.

        Returns:
            The inserted row ID.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                """INSERT INTO saved_recipes
                   (user_id, name, description, ingredients, instructions,
                    prep_time, cook_time, servings, image_url, source_url,
                    matched_ingredients, missing_ingredients)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    recipe.name,
                    recipe.description,
                    json.dumps(recipe.ingredients),
                    json.dumps(recipe.instructions),
                    recipe.prep_time,
                    recipe.cook_time,
                    recipe.servings,
                    recipe.image_url,
                    recipe.source_url,
                    json.dumps(recipe.matched_ingredients),
                    json.dumps(recipe.missing_ingredients),
                ),
            )
        return cur.lastrowid

    def get(self, recipe_id: int) -> Recipe | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM saved_recipes WHERE id = ?", (recipe_id,)
        ).fetchone()
        return _row_to_recipe(row) if row else None

    def list_for_user(self, user_id: str) -> list[Recipe]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM saved_recipes WHERE user_id = ? ORDER BY saved_at DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_recipe(r) for r in rows]

    def delete(self, recipe_id: int) -> None:
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM saved_recipes WHERE id = ?", (recipe_id,))
