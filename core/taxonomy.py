"""
taxonomy.py
------------
Comfort-category classification layer.

The stress-spending detector never hardcodes which categories count as
"comfort" spending. It is handed a CategoryClassifier, so the same detector
can be run against any category taxonomy. The default classifier is built
from the comfort_categories list in config.yaml.

Taxonomy updates happen in config.yaml. No code changes required.
"""

from typing import Iterable, Protocol, runtime_checkable

from config.config_loader import get_comfort_categories


@runtime_checkable
class CategoryClassifier(Protocol):
    """Anything that can answer: is this category emotionally driven spend?"""

    def is_comfort_category(self, category_id: str) -> bool:
        ...


class ComfortCategoryLookup:
    """
    Set-backed CategoryClassifier.

    Built once at init. Matching is case-insensitive. Thread-safe for reads.
    """

    def __init__(self, categories: Iterable[str] | None = None):
        if categories is None:
            categories = get_comfort_categories()
        self._categories = frozenset(c.strip().lower() for c in categories)

    def is_comfort_category(self, category_id: str) -> bool:
        if not category_id:
            return False
        return category_id.strip().lower() in self._categories

    def extend(self, categories: Iterable[str]) -> "ComfortCategoryLookup":
        """Returns a new lookup with extra categories added."""
        return ComfortCategoryLookup(set(self._categories) | set(categories))

    def __contains__(self, category_id: str) -> bool:
        return self.is_comfort_category(category_id)

    def __len__(self) -> int:
        return len(self._categories)

    def __repr__(self) -> str:
        return f"ComfortCategoryLookup(categories={sorted(self._categories)})"
