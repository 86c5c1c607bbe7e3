"""Tests for ShoppingListService."""

import pytest

from receiptpal.errors import NotFoundError, ValidationError
from receiptpal.models import Receipt, ReceiptItem, StoreInfo


def _history(database, store, *items, user_id="u1"):
    database.receipts.insert(
        Receipt(
            user_id=user_id,
            image_url="/images/x",
            image_path="x",
            store_info=StoreInfo(name=store, date="2024-03-01"),
            items=[ReceiptItem(name=n, total_price=p) for n, p in items],
        )
    )


class TestAddItem:
    @pytest.mark.asyncio
    async def test_price_estimated_from_history(self, services, database):
        _history(database, "FreshMart", ("Milk", 3.50))
        _history(database, "CornerShop", ("Whole Milk", 4.00), ("Eggs", 2.99))

        item = await services.shopping.add_item("u1", "milk", category="dairy")

        assert item.estimated_price == 3.75
        assert item.manual is True
        assert item.checked is False

    @pytest.mark.asyncio
    async def test_no_history_means_no_estimate(self, services):
        item = await services.shopping.add_item("u1", "saffron", category="pantry")
        assert item.estimated_price is None

    @pytest.mark.asyncio
    async def test_other_users_history_is_ignored(self, services, database):
        _history(database, "FreshMart", ("Milk", 9.99), user_id="u2")
        item = await services.shopping.add_item("u1", "milk", category="dairy")
        assert item.estimated_price is None

    @pytest.mark.asyncio
    async def test_category_from_assistant(self, services, backend):
        backend.responses = ["Beverages"]

        item = await services.shopping.add_item("u1", "Orange Juice", quantity="2")

        assert item.category == "beverages"
        assert item.quantity == "2"
        stored = services.shopping.list_items("u1")
        assert [(i.name, i.category) for i in stored] == [("Orange Juice", "beverages")]

    @pytest.mark.asyncio
    async def test_requires_name(self, services):
        with pytest.raises(ValidationError):
            await services.shopping.add_item("u1", "")


class TestRecipeIngredients:
    def test_adds_selected_ingredients(self, services, database):
        _history(database, "FreshMart", ("Eggs", 3.0))

        items = services.shopping.add_recipe_ingredients(
            "u1", "Pancakes", ["flour", " ", "eggs"]
        )

        assert [i.name for i in items] == ["flour", "eggs"]
        assert all(i.from_recipe == "Pancakes" and i.manual is False for i in items)
        assert items[1].estimated_price == 3.0
        assert len(services.shopping.list_items("u1")) == 2

    def test_empty_selection(self, services):
        with pytest.raises(ValidationError, match="Please select ingredients"):
            services.shopping.add_recipe_ingredients("u1", "Pancakes", [])


class TestChecking:
    @pytest.mark.asyncio
    async def test_toggle_and_clear_checked(self, services):
        bread = await services.shopping.add_item("u1", "bread", category="bakery")
        await services.shopping.add_item("u1", "milk", category="dairy")

        assert services.shopping.toggle_checked("u1", bread.id).checked is True
        assert services.shopping.clear_checked("u1") == 1
        assert [i.name for i in services.shopping.list_items("u1")] == ["milk"]

    @pytest.mark.asyncio
    async def test_toggle_twice_unchecks(self, services):
        item = await services.shopping.add_item("u1", "bread", category="bakery")
        services.shopping.toggle_checked("u1", item.id)
        assert services.shopping.toggle_checked("u1", item.id).checked is False

    @pytest.mark.asyncio
    async def test_update_item(self, services):
        item = await services.shopping.add_item("u1", "bread", category="bakery")

        updated = services.shopping.update_item("u1", item.id, quantity="2 loaves", notes="rye")

        assert updated.quantity == "2 loaves"
        assert updated.notes == "rye"
        assert updated.category == "bakery"

    @pytest.mark.asyncio
    async def test_other_user_cannot_touch_item(self, services):
        item = await services.shopping.add_item("u1", "bread", category="bakery")
        with pytest.raises(NotFoundError):
            services.shopping.toggle_checked("u2", item.id)
        with pytest.raises(NotFoundError):
            services.shopping.delete_item("u2", item.id)


class TestStoreSuggestions:
    @pytest.mark.asyncio
    async def test_ranks_stores_by_unchecked_items(self, services, database):
        _history(database, "FreshMart", ("Milk", 3.5))
        _history(database, "CornerShop", ("Milk", 4.0), ("Eggs", 2.99))
        await services.shopping.add_item("u1", "milk", category="dairy")
        await services.shopping.add_item("u1", "eggs", category="dairy")
        bread = await services.shopping.add_item("u1", "bread", category="bakery")
        _history(database, "Bakery", ("Bread", 2.0))
        services.shopping.set_checked("u1", bread.id, True)

        assert services.shopping.store_suggestions("u1") == [
            {"store": "CornerShop", "count": 2},
            {"store": "FreshMart", "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_grouped(self, services):
        await services.shopping.add_item("u1", "milk", category="dairy")
        await services.shopping.add_item("u1", "apples", category="produce")
        await services.shopping.add_item("u1", "mystery", category="gizmos")

        assert list(services.shopping.grouped("u1")) == ["produce", "dairy", "other"]
