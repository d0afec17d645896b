#!/usr/bin/env python3
"""
Export SKU inventory from the order management API to Excel.

Reads INVENTORY_API_BASE_URL, INVENTORY_TOKEN, INVENTORY_APP_KEY and
(optionally) INVENTORY_ADMIN_SECRET / INVENTORY_SIGN from the environment
or .env.local.

Usage:
    python scripts/export_inventory.py                 # every hour
    python scripts/export_inventory.py --interval 0    # once
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from aftersales_kb.inventory_export import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
