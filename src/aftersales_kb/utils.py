"""Utility functions for the knowledge base"""

import uuid
from datetime import datetime
from typing import Any, Mapping

UPDATE_TIME_FORMAT = "%Y-%m-%d %H:%M"


def now_timestamp() -> str:
    """
    Current local time in the update_time format.

    Examples:
        >>> now_timestamp()
        '2025-03-18 09:42'
    """
    return datetime.now().strftime(UPDATE_TIME_FORMAT)


def new_item_id() -> str:
    """Generate an id for a manually created knowledge item (KB-<12 hex>)."""
    return f"KB-{uuid.uuid4().hex[:12]}"


def dedupe_key(item: Mapping[str, Any]) -> str:
    """
    Identity of a knowledge item for import deduplication.

    Two items describe the same problem when SKU, vehicle model and
    problem description all match.

    Examples:
        >>> dedupe_key({"sku": "A1", "vehicle_model": "通用", "problem_description": "松动"})
        'A1|通用|松动'
    """
    return f"{item.get('sku', '')}|{item.get('vehicle_model', '')}|{item.get('problem_description', '')}"


def parse_update_time(value: Any) -> datetime:
    """
    Parse an update_time string for sorting.

    Accepts "YYYY-MM-DD HH:MM", "YYYY-MM-DD HH:MM:SS", "YYYY-MM-DD" and ISO 8601.
    Unparseable values sort first (datetime.min).
    """
    text = str(value or "").strip()
    for fmt in (UPDATE_TIME_FORMAT, "%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%Y/%m/%d %H:%M", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        return datetime.min
