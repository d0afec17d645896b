"""
Inventory export - pulls SKU stock from the order management open API and
saves it as an Excel file, once or on a fixed interval.

API contract (POST {base_url}/webApi/userSkuStock/v1/queryInventory):
    Request body:  {"pageNum": 1, "pageSize": 500, "totalStockGreaterThanZero": true}
    Response body: {"code": 200, "msg": "...", "total": 1234, "rows": [{...}, ...]}

Authentication headers: Bearer token, appKey, timestamp, sign, and
optionally openApiAdminSecret (test environments, bypasses signature check).
Credentials come from environment variables only; a .env.local file found
from the working directory upwards is loaded first.
"""

import argparse
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests
from dotenv import find_dotenv, load_dotenv

from .logging_config import setup_logging

logger = logging.getLogger(__name__)

API_PATH = "/webApi/userSkuStock/v1/queryInventory"
MAX_PAGE_SIZE = 500
PAGE_DELAY_SECONDS = 0.2  # Simple rate limit between pages
REQUEST_TIMEOUT = 30
SHEET_NAME = "Inventory"


class InventoryAPIError(Exception):
    """Inventory API returned an error (HTTP or application level)"""


@dataclass
class InventoryConfig:
    base_url: str
    token: str
    app_key: str
    admin_secret: str = ""
    sign: str = ""
    page_size: int = MAX_PAGE_SIZE
    output_dir: str = "./inventory_exports"
    interval: int = 3600  # seconds, 0 = run once

    @classmethod
    def from_env(cls, **overrides) -> "InventoryConfig":
        """
        Build config from INVENTORY_* environment variables.

        Raises:
            ValueError: INVENTORY_API_BASE_URL, INVENTORY_TOKEN or INVENTORY_APP_KEY missing
        """
        values = {
            "base_url": os.getenv("INVENTORY_API_BASE_URL", ""),
            "token": os.getenv("INVENTORY_TOKEN", ""),
            "app_key": os.getenv("INVENTORY_APP_KEY", ""),
            "admin_secret": os.getenv("INVENTORY_ADMIN_SECRET", ""),
            "sign": os.getenv("INVENTORY_SIGN", ""),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})

        missing = [name for name in ("base_url", "token", "app_key") if not values[name]]
        if missing:
            env_names = ", ".join(f"INVENTORY_{'API_BASE_URL' if m == 'base_url' else m.upper()}" for m in missing)
            raise ValueError(f"Missing inventory API configuration: {env_names}")

        config = cls(**values)
        config.page_size = max(1, min(config.page_size, MAX_PAGE_SIZE))
        return config


class InventoryClient:
    """Paged client for the inventory query endpoint"""

    def __init__(self, config: InventoryConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}{API_PATH}"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.token}",
            "timestamp": str(int(time.time() * 1000)),
            "appKey": self.config.app_key,
        }
        if self.config.sign:
            headers["sign"] = self.config.sign
        if self.config.admin_secret:
            headers["openApiAdminSecret"] = self.config.admin_secret
        return headers

    def fetch_page(self, page_num: int) -> dict:
        """
        Fetch one page.

        Raises:
            InventoryAPIError: Non-2xx HTTP status or response code != 200
        """
        body = {
            "pageNum": page_num,
            "pageSize": self.config.page_size,
            "totalStockGreaterThanZero": True,
        }

        logger.info(f"Fetching inventory page {page_num}...")
        response = self.session.post(self.url, json=body, headers=self._headers(), timeout=REQUEST_TIMEOUT)

        if not response.ok:
            raise InventoryAPIError(f"HTTP Error: {response.status_code} {response.reason}")

        result = response.json()
        if result.get("code") != 200:
            raise InventoryAPIError(f"API Error: {result.get('code')} - {result.get('msg')}")

        return result

    def fetch_all(self) -> List[dict]:
        """Fetch every page until a short page or the reported total is reached"""
        all_rows: List[dict] = []
        page_num = 1
        start = time.monotonic()

        while True:
            result = self.fetch_page(page_num)
            rows = result.get("rows") or []
            total = result.get("total") or 0
            all_rows.extend(rows)

            logger.info(f"Fetched {len(all_rows)} / {total} rows")

            if len(rows) < self.config.page_size or len(all_rows) >= total:
                break

            page_num += 1
            time.sleep(PAGE_DELAY_SECONDS)

        logger.info(f"Fetched {len(all_rows)} rows in {time.monotonic() - start:.2f}s")
        return all_rows


def save_to_excel(rows: List[dict], output_dir: str) -> Optional[Path]:
    """
    Write rows to inventory_export_<timestamp>.xlsx.

    Returns:
        Path of the written file, or None when there is nothing to export
    """
    if not rows:
        logger.warning("No inventory data to export")
        return None

    out_dir = Path(output_dir).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filepath = out_dir / f"inventory_export_{timestamp}.xlsx"

    pd.DataFrame(rows).to_excel(filepath, sheet_name=SHEET_NAME, index=False, engine="openpyxl")

    logger.info(f"Saved {len(rows)} rows to {filepath}")
    return filepath


def run_task(client: InventoryClient) -> Optional[Path]:
    """One export run; failures are logged so a scheduled loop keeps going"""
    logger.info(f"Inventory export started at {datetime.now():%Y-%m-%d %H:%M:%S}")
    try:
        rows = client.fetch_all()
        path = save_to_excel(rows, client.config.output_dir)
        logger.info("Inventory export finished")
        return path
    except (InventoryAPIError, requests.RequestException, OSError, ValueError) as e:
        logger.error(f"Inventory export failed: {e}")
        return None


def run(config: InventoryConfig, max_runs: Optional[int] = None, sleep=time.sleep):
    """Run once, then repeat every config.interval seconds (0 = once)"""
    client = InventoryClient(config)
    runs = 0

    while True:
        run_task(client)
        runs += 1

        if config.interval <= 0 or (max_runs is not None and runs >= max_runs):
            return

        logger.info(f"Next run in {config.interval / 60:.0f} minutes (Ctrl+C to stop)")
        sleep(config.interval)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export SKU inventory to Excel")
    parser.add_argument("--output-dir", default="./inventory_exports", help="Directory for .xlsx files")
    parser.add_argument("--interval", type=int, default=3600, help="Seconds between runs (0 = run once)")
    parser.add_argument("--page-size", type=int, default=MAX_PAGE_SIZE, help=f"Rows per page (max {MAX_PAGE_SIZE})")
    parser.add_argument("--base-url", help="API base URL (overrides INVENTORY_API_BASE_URL)")
    parser.add_argument("--log-file", default="logs/inventory-export.log")
    args = parser.parse_args(argv)

    env_local = find_dotenv(".env.local", usecwd=True)
    if env_local:
        load_dotenv(env_local)

    setup_logging(log_file=args.log_file, console_level=logging.INFO)

    try:
        config = InventoryConfig.from_env(
            base_url=args.base_url,
            output_dir=args.output_dir,
            interval=args.interval,
            page_size=args.page_size,
        )
    except ValueError as e:
        logger.error(str(e))
        return 2

    try:
        run(config)
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0
