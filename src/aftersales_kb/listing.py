"""Filtering, sorting and pagination for the item management list"""

import math
from typing import Any, List, Literal, Optional, Tuple

from .models import KBItem
from .utils import parse_update_time

SEARCH_FIELDS = ("problem_description", "sku", "vehicle_model", "category", "id")
SORTABLE_FIELDS = tuple(KBItem.model_fields)
DEFAULT_PAGE_SIZE = 20

SortOrder = Literal["asc", "desc"]


def _sort_key(item: KBItem, field: str) -> Tuple[int, Any]:
    value = getattr(item, field)

    if field == "update_time":
        return (0, parse_update_time(value))

    if field == "id":
        # Numeric ids compare as numbers, before any non-numeric id
        try:
            return (0, int(value))
        except (TypeError, ValueError):
            return (1, str(value))

    if isinstance(value, (int, float)):
        return (0, value)
    return (0, str(value))


def filter_items(items: List[KBItem], search: Optional[str]) -> List[KBItem]:
    """Case-insensitive substring match over SEARCH_FIELDS"""
    if not search:
        return list(items)

    needle = search.lower()
    return [
        item for item in items
        if any(needle in str(getattr(item, field)).lower() for field in SEARCH_FIELDS)
    ]


def sort_items(items: List[KBItem], field: Optional[str], order: SortOrder = "asc") -> List[KBItem]:
    if not field:
        return list(items)
    if field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by '{field}'. Sortable fields: {', '.join(SORTABLE_FIELDS)}")
    return sorted(items, key=lambda item: _sort_key(item, field), reverse=(order == "desc"))


def list_items(
    items: List[KBItem],
    search: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_order: SortOrder = "asc",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[KBItem], int, int]:
    """
    Filter, sort and slice one page.

    Args:
        items: All live items
        search: Substring to look for (optional)
        sort_field: KBItem field to sort by (optional, keeps input order if unset)
        sort_order: "asc" or "desc"
        page: 1-based page number
        page_size: Items per page

    Returns:
        (page_items, total_items, total_pages)

    Raises:
        ValueError: Unknown sort field or non-positive page/page_size
    """
    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be >= 1")

    filtered = sort_items(filter_items(items, search), sort_field, sort_order)

    total = len(filtered)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size

    return filtered[start:start + page_size], total, total_pages
