"""
Cloud sync module for PostgreSQL

Optional mirror of the local knowledge base in a hosted PostgreSQL database
(any provider: Supabase, Cloud SQL, RDS...). Enabled only when DATABASE_URL
is set. The local JSON store stays the source of truth for reads; cloud
writes are best effort and never block a local change.
"""

import json
import logging
import os
from typing import List, Optional

import asyncpg

from .models import KBItem

logger = logging.getLogger(__name__)

TABLE_NAME = "kb_items"


class CloudSync:
    """PostgreSQL mirror of knowledge items"""

    def __init__(self, database_url: Optional[str] = None):
        self.pool: Optional[asyncpg.Pool] = None
        db_url = database_url if database_url is not None else os.getenv("DATABASE_URL", "")
        # asyncpg doesn't understand 'postgresql+asyncpg://', only 'postgresql://'
        self.connection_string = db_url.replace("postgresql+asyncpg://", "postgresql://")

    @property
    def enabled(self) -> bool:
        return bool(self.connection_string)

    @property
    def connected(self) -> bool:
        return self.pool is not None

    async def connect(self):
        """Initialize connection pool"""
        if not self.enabled:
            logger.info("DATABASE_URL not set - cloud sync disabled")
            return

        self.pool = await asyncpg.create_pool(
            self.connection_string,
            min_size=1,
            max_size=5,
        )
        logger.info(f"Connected to PostgreSQL: {self.connection_string.split('@')[-1]}")

    async def disconnect(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Disconnected from PostgreSQL")

    async def init_schema(self):
        """Create the items table"""
        if not self.connected:
            return

        async with self.pool.acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    id TEXT PRIMARY KEY,
                    sku TEXT NOT NULL,
                    category TEXT DEFAULT '',
                    vehicle_model TEXT DEFAULT '',
                    problem_level TEXT DEFAULT '',
                    problem_type TEXT DEFAULT '',
                    problem_description TEXT NOT NULL,
                    standard_answer TEXT DEFAULT '',
                    internal_solution TEXT DEFAULT '',
                    error_avoidance TEXT DEFAULT '',
                    update_time TEXT DEFAULT '',
                    attachments TEXT DEFAULT '[]',
                    attachment_count INTEGER DEFAULT 0,
                    is_deleted BOOLEAN DEFAULT FALSE
                )
            """)

            # Tables created before the count column existed
            await conn.execute(f"""
                ALTER TABLE {TABLE_NAME}
                ADD COLUMN IF NOT EXISTS attachment_count INTEGER DEFAULT 0
            """)

            await conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_sku
                ON {TABLE_NAME} (sku)
            """)

    async def upsert_item(self, item: KBItem) -> bool:
        """
        Insert or replace an item (clears is_deleted)

        Returns:
            True if written, False if sync is off or the write failed
        """
        if not self.connected:
            return False

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME} (
                        id, sku, category, vehicle_model, problem_level, problem_type,
                        problem_description, standard_answer, internal_solution,
                        error_avoidance, update_time, attachments, attachment_count, is_deleted
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, FALSE)
                    ON CONFLICT (id) DO UPDATE SET
                        sku = EXCLUDED.sku,
                        category = EXCLUDED.category,
                        vehicle_model = EXCLUDED.vehicle_model,
                        problem_level = EXCLUDED.problem_level,
                        problem_type = EXCLUDED.problem_type,
                        problem_description = EXCLUDED.problem_description,
                        standard_answer = EXCLUDED.standard_answer,
                        internal_solution = EXCLUDED.internal_solution,
                        error_avoidance = EXCLUDED.error_avoidance,
                        update_time = EXCLUDED.update_time,
                        attachments = EXCLUDED.attachments,
                        attachment_count = EXCLUDED.attachment_count,
                        is_deleted = FALSE
                    """,
                    item.id,
                    item.sku,
                    item.category,
                    item.vehicle_model,
                    item.problem_level,
                    item.problem_type,
                    item.problem_description,
                    item.standard_answer,
                    item.internal_solution,
                    item.common_mistakes,
                    item.update_time,
                    json.dumps(item.attachment_urls, ensure_ascii=False),
                    item.attachments,
                )
            logger.debug(f"Synced item {item.id} to cloud")
            return True
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Cloud sync failed for item {item.id}: {e}")
            return False

    async def upsert_items(self, items: List[KBItem]) -> int:
        """Sync several items; returns how many were written"""
        written = 0
        for item in items:
            if await self.upsert_item(item):
                written += 1
        return written

    async def mark_deleted(self, item_ids: List[str]) -> bool:
        """Soft-delete items in the cloud table"""
        if not self.connected or not item_ids:
            return False

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    f"UPDATE {TABLE_NAME} SET is_deleted = TRUE WHERE id = ANY($1::text[])",
                    list(item_ids),
                )
            logger.debug(f"Marked {len(item_ids)} items deleted in cloud")
            return True
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Cloud delete failed for {len(item_ids)} items: {e}")
            return False

    async def fetch_items(self) -> List[KBItem]:
        """All non-deleted items from the cloud table"""
        if not self.connected:
            return []

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT
                    id, sku, category, vehicle_model, problem_level, problem_type,
                    problem_description, standard_answer, internal_solution,
                    error_avoidance, update_time, attachments, attachment_count
                FROM {TABLE_NAME}
                WHERE is_deleted = FALSE
                ORDER BY update_time DESC
            """)

        return [self._row_to_item(row) for row in rows]

    @staticmethod
    def _row_to_item(row) -> KBItem:
        try:
            urls = json.loads(row["attachments"] or "[]")
        except (TypeError, json.JSONDecodeError):
            urls = []
        if not isinstance(urls, list):
            urls = []

        # Imported items carry a count without URLs
        count = row.get("attachment_count")
        if count is None:
            count = len(urls)

        return KBItem(
            id=row["id"],
            sku=row["sku"],
            category=row["category"] or "",
            vehicle_model=row["vehicle_model"] or "",
            problem_level=row["problem_level"] or "",
            problem_type=row["problem_type"] or "",
            problem_description=row["problem_description"],
            standard_answer=row["standard_answer"] or "",
            internal_solution=row["internal_solution"] or "",
            common_mistakes=row["error_avoidance"] or "",
            update_time=row["update_time"] or "",
            attachments=count,
            attachment_urls=[str(u) for u in urls],
        )


# Global instance
cloud_sync = CloudSync()
