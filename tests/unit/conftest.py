"""Unit test configuration - isolated files and no cloud database"""

import os
import tempfile
from pathlib import Path

import pytest

# CRITICAL: Set env vars BEFORE importing aftersales_kb.main
# main.py configures logging and the store path at module level (on import)
_test_dir = Path(tempfile.mkdtemp(prefix="aftersales-kb-tests-"))
os.environ["LOG_FILE"] = str(_test_dir / "logs" / "test.log")
os.environ["KB_DATA_FILE"] = str(_test_dir / "kb_items.json")
os.environ["KB_SYNONYMS_FILE"] = ""
os.environ["DATABASE_URL"] = ""

from aftersales_kb.storage import KnowledgeStore  # noqa: E402


@pytest.fixture
def store(tmp_path):
    """Empty store backed by a temporary file"""
    return KnowledgeStore(tmp_path / "kb_items.json")


@pytest.fixture
def seeded_store(store, sample_items):
    """Store pre-filled with sample_items"""
    store.add_items(sample_items)
    return store
