"""Pytest configuration shared by all test suites"""

import sys
from pathlib import Path

import pytest

# Add src to path for package imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from aftersales_kb.models import KBItem  # noqa: E402


@pytest.fixture
def sample_items():
    """Small knowledge base covering fitment, installation and cosmetic problems"""
    return [
        KBItem(
            id="1",
            sku="RK-2041",
            category="行李架",
            vehicle_model="RAV4 2020",
            problem_level="P2",
            problem_type="安装问题",
            problem_description="货架安装不上，螺丝孔对不齐",
            standard_answer="请确认车型年份，2019 款需使用转接支架。",
            internal_solution="核对订单车型后补发转接支架",
            update_time="2025-03-01 10:00",
        ),
        KBItem(
            id="2",
            sku="BP-1100",
            category="保险杠",
            vehicle_model="通用",
            problem_level="P3",
            problem_type="质量问题",
            problem_description="保险杠表面有划痕",
            standard_answer="拍照反馈后安排补发。",
            update_time="2025-02-15 09:30",
        ),
        KBItem(
            id="10",
            sku="BR-0007",
            category="支架",
            vehicle_model="Model 3",
            problem_level="P1",
            problem_type="使用问题",
            problem_description="支架使用一段时间后松动",
            standard_answer="重新紧固螺丝并加装防松垫片。",
            update_time="2025-03-10 16:45",
        ),
    ]
