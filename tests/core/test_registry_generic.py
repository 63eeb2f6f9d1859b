"""Tests for the generic keyed Registry."""

import pytest

from stepflow.core.errors import NotFoundError
from stepflow.core.registry import DEFAULT_CATEGORY, Registry


@pytest.fixture
def items() -> Registry[int]:
    registry: Registry[int] = Registry(kind="strategy")
    registry.register("one", 1, category="small")
    registry.register("two", 2, category="small")
    registry.register("hundred", 100, category="large")
    return registry


class TestRegistryCrud:
    """register / get / remove / clear."""

    def test_register_and_get(self, items):
        assert items.get("two") == 2
        assert items.has("two")
        assert "two" in items
        assert len(items) == 3

    def test_default_category(self):
        registry: Registry[str] = Registry()
        registry.register("x", "value")

        assert registry.category_of("x") == DEFAULT_CATEGORY

    def test_get_unknown_raises_with_kind(self, items):
        with pytest.raises(NotFoundError) as exc_info:
            items.get("missing")

        assert exc_info.value.message.startswith("Strategy not found: missing")
        assert exc_info.value.available == ["one", "two", "hundred"]

    def test_reregister_moves_category(self, items):
        """Overwriting a key replaces the item and re-indexes it."""
        items.register("two", 22, category="large")

        assert items.get("two") == 22
        assert items.by_category("small") == [1]
        assert sorted(items.by_category("large")) == [22, 100]

    def test_remove_drops_empty_category(self, items):
        items.remove("hundred")

        assert "hundred" not in items
        assert items.categories() == ["small"]

    def test_remove_unknown_raises(self, items):
        with pytest.raises(NotFoundError):
            items.remove("missing")

    def test_clear(self, items):
        items.clear()

        assert len(items) == 0
        assert items.categories() == []


class TestRegistryQueries:
    """Listing and stats."""

    def test_keys_keep_registration_order(self, items):
        assert items.keys() == ["one", "two", "hundred"]
        assert list(items) == ["one", "two", "hundred"]

    def test_by_category_unknown_is_empty(self, items):
        assert items.by_category("nope") == []

    def test_stats(self, items):
        assert items.stats() == {"total": 3, "categories": {"large": 1, "small": 2}}
