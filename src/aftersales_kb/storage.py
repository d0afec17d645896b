"""
Local storage module for knowledge items

Persists the knowledge base as a single UTF-8 JSON file:

{
    "items": [ {KBItem fields}, ... ],
    "deleted_ids": [ "KB-...", ... ]
}

Deletion is soft: ids are recorded in deleted_ids and filtered out of
reads, so a later cloud refresh cannot resurrect them and they can be
restored.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Union

from .models import KBItem
from .utils import now_timestamp, parse_update_time

logger = logging.getLogger(__name__)

ITEMS_KEY = "items"
DELETED_KEY = "deleted_ids"


class ItemNotFoundError(KeyError):
    """Knowledge item does not exist (or is deleted)"""

    def __init__(self, item_id: str):
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Item {self.item_id} not found"


class KnowledgeStore:
    """JSON file store for knowledge items"""

    def __init__(self, path: Union[str, Path] = "data/kb_items.json"):
        """
        Args:
            path: JSON file location (created on first write)
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, list]:
        """Read the whole file; missing or corrupt files read as empty"""
        if not self.path.exists():
            return {ITEMS_KEY: [], DELETED_KEY: []}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read {self.path}, treating as empty: {e}")
            return {ITEMS_KEY: [], DELETED_KEY: []}

        if not isinstance(data, dict):
            logger.warning(f"Unexpected content in {self.path}, treating as empty")
            return {ITEMS_KEY: [], DELETED_KEY: []}

        items = data.get(ITEMS_KEY)
        deleted = data.get(DELETED_KEY)
        return {
            ITEMS_KEY: items if isinstance(items, list) else [],
            DELETED_KEY: deleted if isinstance(deleted, list) else [],
        }

    def _write(self, data: Dict[str, list]):
        """Atomic write: temp file in the same directory, then replace"""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _load_items(self, raw_items: list) -> List[KBItem]:
        items = []
        for raw in raw_items:
            try:
                items.append(KBItem.model_validate(raw))
            except ValueError as e:
                logger.warning(f"Skipping malformed stored item {raw!r:.80}: {e}")
        return items

    # Raw accessors (mirror the two persisted keys)

    def get_items(self, include_deleted: bool = False) -> List[KBItem]:
        """All stored items, excluding soft-deleted ones unless requested"""
        data = self._read()
        items = self._load_items(data[ITEMS_KEY])
        if include_deleted:
            return items
        deleted = set(data[DELETED_KEY])
        return [item for item in items if item.id not in deleted]

    def set_items(self, items: List[KBItem]):
        with self._lock:
            data = self._read()
            data[ITEMS_KEY] = [item.model_dump() for item in items]
            self._write(data)
        logger.debug(f"Saved {len(items)} items to {self.path}")

    def get_deleted_ids(self) -> List[str]:
        return [str(i) for i in self._read()[DELETED_KEY]]

    def set_deleted_ids(self, ids: List[str]):
        with self._lock:
            data = self._read()
            data[DELETED_KEY] = list(dict.fromkeys(ids))
            self._write(data)

    # Item operations

    def get_item(self, item_id: str) -> KBItem:
        """
        Get a live item by id

        Raises:
            ItemNotFoundError: Unknown or deleted id
        """
        for item in self.get_items():
            if item.id == item_id:
                return item
        raise ItemNotFoundError(item_id)

    def add_items(self, new_items: List[KBItem]) -> List[KBItem]:
        """Append items; an item reusing an existing id replaces it"""
        with self._lock:
            data = self._read()
            new_ids = {item.id for item in new_items}
            kept = [raw for raw in data[ITEMS_KEY] if not (isinstance(raw, dict) and raw.get("id") in new_ids)]
            data[ITEMS_KEY] = kept + [item.model_dump() for item in new_items]
            # Re-adding an id makes it live again
            data[DELETED_KEY] = [i for i in data[DELETED_KEY] if i not in new_ids]
            self._write(data)

        logger.info(f"Added {len(new_items)} items to {self.path}")
        return new_items

    def merge_remote(self, remote_items: List[KBItem]) -> List[KBItem]:
        """
        Merge items fetched from the cloud mirror

        Unknown ids are added. A known id is replaced only when the remote
        update_time is strictly newer than the local one. Soft-deleted ids
        are never revived.

        Returns:
            Items that were added or replaced
        """
        with self._lock:
            data = self._read()
            deleted = set(data[DELETED_KEY])
            local_times = {
                raw.get("id"): parse_update_time(raw.get("update_time"))
                for raw in data[ITEMS_KEY]
                if isinstance(raw, dict)
            }

            merged = []
            for item in remote_items:
                if item.id in deleted:
                    continue
                local_time = local_times.get(item.id)
                if local_time is not None and parse_update_time(item.update_time) <= local_time:
                    continue
                merged.append(item)

            if merged:
                merged_ids = {item.id for item in merged}
                kept = [raw for raw in data[ITEMS_KEY] if not (isinstance(raw, dict) and raw.get("id") in merged_ids)]
                data[ITEMS_KEY] = kept + [item.model_dump() for item in merged]
                self._write(data)

        logger.info(f"Merged {len(merged)} of {len(remote_items)} cloud items into {self.path}")
        return merged

    def add_item(self, item: KBItem) -> KBItem:
        return self.add_items([item])[0]

    def update_item(self, item_id: str, changes: Dict) -> KBItem:
        """
        Apply field changes to a live item and refresh update_time

        Raises:
            ItemNotFoundError: Unknown or deleted id
        """
        with self._lock:
            data = self._read()
            if item_id in data[DELETED_KEY]:
                raise ItemNotFoundError(item_id)

            for i, raw in enumerate(data[ITEMS_KEY]):
                if isinstance(raw, dict) and raw.get("id") == item_id:
                    updated = KBItem.model_validate({
                        **raw,
                        **changes,
                        "id": item_id,
                        "update_time": now_timestamp(),
                    })
                    data[ITEMS_KEY][i] = updated.model_dump()
                    self._write(data)
                    logger.info(f"Updated item {item_id}: {sorted(changes)}")
                    return updated

        raise ItemNotFoundError(item_id)

    def delete_items(self, ids: List[str]) -> List[str]:
        """
        Soft-delete items

        Returns:
            Ids that were live and are now deleted (unknown ids are ignored)
        """
        with self._lock:
            data = self._read()
            live_ids = {raw.get("id") for raw in data[ITEMS_KEY] if isinstance(raw, dict)}
            already = set(data[DELETED_KEY])
            deleted = [i for i in dict.fromkeys(ids) if i in live_ids and i not in already]
            if deleted:
                data[DELETED_KEY] = data[DELETED_KEY] + deleted
                self._write(data)

        logger.info(f"Deleted {len(deleted)} of {len(ids)} requested items")
        return deleted

    def restore_items(self, ids: List[str]) -> List[str]:
        """Undo soft deletion; returns the ids that were restored"""
        with self._lock:
            data = self._read()
            restore = set(ids)
            restored = [i for i in data[DELETED_KEY] if i in restore]
            if restored:
                data[DELETED_KEY] = [i for i in data[DELETED_KEY] if i not in restore]
                self._write(data)

        logger.info(f"Restored {len(restored)} items")
        return restored
