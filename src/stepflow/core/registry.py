"""Generic Registry: keyed catalog with a category index.

Manifesto:
Steps, branch strategies, and anything else the engine looks up by name
need the same four things: a keyed catalog, a category index, CRUD, and a
stats snapshot.  ``Registry[T]`` implements that once; domain registries
(``StepRegistry``) compose it instead of re-implementing the bookkeeping.

There is no module-level default instance.  The composition root
constructs registries explicitly so tests and concurrent runs never share
hidden state.

ARCHITECTURE
────────────
::

    Registry[T]
      ├── .register(key, item, category)  ─ store / overwrite
      ├── .get(key)                       ─ lookup or NotFoundError
      ├── .has(key) / `key in registry`   ─ existence check
      ├── .remove(key)                    ─ drop item + empty category
      ├── .by_category(category)          ─ items in one category
      ├── .categories()                   ─ category names
      └── .stats()                        ─ total + per-category counts

Example::

    registry: Registry[Callable] = Registry(kind="strategy")
    registry.register("feature", make_feature_branch, category="branch")
    registry.get("feature")
    registry.stats()   # {"total": 1, "categories": {"branch": 1}}

Tags:
    stepflow, registry, catalog, category-index, lookup
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Generic, TypeVar

from stepflow.core.errors import NotFoundError

T = TypeVar("T")

DEFAULT_CATEGORY = "general"


class Registry(Generic[T]):
    """Keyed catalog with a category index.

    Keys are unique; registering an existing key overwrites the item and
    moves it to the new category.

    Args:
        kind: Noun used in ``NotFoundError`` messages ("step", "strategy").
    """

    def __init__(self, kind: str = "item") -> None:
        self._kind = kind
        self._items: dict[str, T] = {}
        self._category_of: dict[str, str] = {}
        self._categories: dict[str, set[str]] = {}

    @property
    def kind(self) -> str:
        return self._kind

    # ── CRUD ─────────────────────────────────────────────────────────

    def register(self, key: str, item: T, category: str | None = None) -> T:
        """Store *item* under *key*, replacing any previous registration."""
        category = category or DEFAULT_CATEGORY
        if key in self._items:
            self._unindex(key)
        self._items[key] = item
        self._category_of[key] = category
        self._categories.setdefault(category, set()).add(key)
        return item

    def get(self, key: str) -> T:
        """Return the item for *key*.

        Raises:
            NotFoundError: If nothing is registered under *key*.
        """
        try:
            return self._items[key]
        except KeyError:
            raise NotFoundError(self._kind, key, available=list(self._items)) from None

    def has(self, key: str) -> bool:
        return key in self._items

    def remove(self, key: str) -> T:
        """Remove and return the item for *key*.

        Raises:
            NotFoundError: If nothing is registered under *key*.
        """
        item = self.get(key)
        self._unindex(key)
        del self._items[key]
        return item

    def clear(self) -> None:
        self._items.clear()
        self._category_of.clear()
        self._categories.clear()

    def _unindex(self, key: str) -> None:
        category = self._category_of.pop(key, None)
        if category is None:
            return
        names = self._categories.get(category)
        if names is not None:
            names.discard(key)
            if not names:
                del self._categories[category]

    # ── Queries ──────────────────────────────────────────────────────

    def keys(self) -> list[str]:
        return list(self._items)

    def values(self) -> list[T]:
        return list(self._items.values())

    def items(self) -> list[tuple[str, T]]:
        return list(self._items.items())

    def categories(self) -> list[str]:
        return sorted(self._categories)

    def category_of(self, key: str) -> str:
        self.get(key)
        return self._category_of[key]

    def by_category(self, category: str) -> list[T]:
        """Items registered under *category*, in registration order."""
        names = self._categories.get(category, set())
        return [item for key, item in self._items.items() if key in names]

    def stats(self) -> dict[str, Any]:
        return {
            "total": len(self._items),
            "categories": {name: len(keys) for name, keys in sorted(self._categories.items())},
        }

    # ── Dunder ───────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __repr__(self) -> str:
        return f"Registry(kind={self._kind!r}, items={len(self._items)})"


__all__ = ["Registry", "DEFAULT_CATEGORY"]
