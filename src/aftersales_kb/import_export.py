"""
Spreadsheet import/export for knowledge items

Supported formats:
- CSV: UTF-8 (a leading BOM is accepted on import and written on export,
  so Excel opens the file with the right encoding)
- Excel: .xlsx, first sheet on import

Both formats share one fixed header row (Chinese column names used by the
support team). Import is lenient per row: rows missing SKU or the problem
description are skipped and reported, the rest are kept. A file with
missing columns is rejected as a whole.
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import Dict, List, Literal, Tuple

import pandas as pd
from fastapi import HTTPException, status

from .models import DEFAULT_COMMON_MISTAKES, DEFAULT_PROBLEM_LEVEL, DEFAULT_VEHICLE_MODEL, KBItem
from .utils import dedupe_key, now_timestamp

logger = logging.getLogger(__name__)

# Column header -> KBItem field
COLUMNS: Dict[str, str] = {
    "序号": "id",
    "SKU": "sku",
    "品类": "category",
    "车型": "vehicle_model",
    "问题层级": "problem_level",
    "问题类型": "problem_type",
    "具体问题描述": "problem_description",
    "标准回答(对外)": "standard_answer",
    "内部解决方案/操作步骤": "internal_solution",
    "常见错误规避": "common_mistakes",
    "更新时间": "update_time",
    "附件数量": "attachments",
}
REQUIRED_HEADERS = list(COLUMNS)

EXPORT_SHEET = "知识库"
TEMPLATE_SHEET = "模板"

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ImportMode = Literal["append", "dedupe"]
ExportFormat = Literal["csv", "xlsx"]


class ImportFormatError(HTTPException):
    """Uploaded file cannot be imported (wrong type, unreadable, missing columns)"""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )


def _read_frame(filename: str, content: bytes) -> pd.DataFrame:
    suffix = Path(filename or "").suffix.lower()

    try:
        if suffix == ".csv":
            return pd.read_csv(
                io.BytesIO(content),
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                skip_blank_lines=True,
            )
        if suffix == ".xlsx":
            return pd.read_excel(
                io.BytesIO(content),
                sheet_name=0,
                dtype=str,
                keep_default_na=False,
                engine="openpyxl",
            )
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise ImportFormatError(f"Failed to parse {filename}: {e}")

    raise ImportFormatError(
        f"Unsupported file type '{suffix or filename}'. Supported: .csv, .xlsx"
    )


def _cell(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _parse_attachments(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_upload(filename: str, content: bytes) -> Tuple[List[KBItem], List[str]]:
    """
    Parse an uploaded CSV/XLSX file into knowledge items.

    Args:
        filename: Original file name (extension selects the parser)
        content: Raw file bytes

    Returns:
        (items, row_errors)
        Row numbers in errors are spreadsheet rows (header is row 1).

    Raises:
        ImportFormatError: Unsupported type, unparseable file or missing headers

    Example:
        >>> csv = "序号,SKU,品类,车型,问题层级,问题类型,具体问题描述,标准回答(对外),内部解决方案/操作步骤,常见错误规避,更新时间,附件数量\\n"
        >>> csv += "1,RK-1,行李架,,P2,安装,孔位对不齐,,,,,\\n"
        >>> items, errors = parse_upload("kb.csv", csv.encode("utf-8"))
        >>> items[0].id, items[0].vehicle_model, errors
        ('IMP-1-1', '通用', [])
    """
    frame = _read_frame(filename, content)
    frame.columns = [str(c).strip() for c in frame.columns]

    missing = [h for h in REQUIRED_HEADERS if h not in frame.columns]
    if missing:
        raise ImportFormatError(f"缺少表头: {', '.join(missing)}")

    items: List[KBItem] = []
    errors: List[str] = []

    for position, (_, row) in enumerate(frame.iterrows(), start=1):
        cells = {header: _cell(row[header]) for header in REQUIRED_HEADERS}

        if not any(cells.values()):
            continue

        if not cells["SKU"] or not cells["具体问题描述"]:
            errors.append(f"第 {position + 1} 行缺少必填字段 SKU 或 具体问题描述")
            continue

        id_raw = cells["序号"] or str(position)
        items.append(KBItem(
            id=f"IMP-{position}-{id_raw}",
            sku=cells["SKU"],
            category=cells["品类"],
            vehicle_model=cells["车型"] or DEFAULT_VEHICLE_MODEL,
            problem_level=cells["问题层级"] or DEFAULT_PROBLEM_LEVEL,
            problem_type=cells["问题类型"],
            problem_description=cells["具体问题描述"],
            standard_answer=cells["标准回答(对外)"],
            internal_solution=cells["内部解决方案/操作步骤"],
            common_mistakes=cells["常见错误规避"] or DEFAULT_COMMON_MISTAKES,
            update_time=cells["更新时间"] or now_timestamp(),
            attachments=_parse_attachments(cells["附件数量"]),
        ))

    logger.info(f"Parsed {filename}: {len(items)} items, {len(errors)} rows skipped")
    return items, errors


def merge_items(existing: List[KBItem], imported: List[KBItem], mode: ImportMode = "dedupe") -> List[KBItem]:
    """
    Select which imported items to add.

    Args:
        existing: Items already in the knowledge base
        imported: Parsed items
        mode: "append" adds everything, "dedupe" skips items whose
            SKU|vehicle model|problem description already exists

    Returns:
        Items to add
    """
    if mode == "append":
        return list(imported)

    existing_keys = {dedupe_key(item.model_dump()) for item in existing}
    return [item for item in imported if dedupe_key(item.model_dump()) not in existing_keys]


def _to_frame(items: List[KBItem]) -> pd.DataFrame:
    rows = [
        [getattr(item, field) for field in COLUMNS.values()]
        for item in items
    ]
    return pd.DataFrame(rows, columns=REQUIRED_HEADERS)


def _to_xlsx(frame: pd.DataFrame, sheet_name: str) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()


def export_items(items: List[KBItem], fmt: ExportFormat = "xlsx") -> bytes:
    """
    Serialize items with the import header row.

    Args:
        items: Items to export (序号 column holds the item id)
        fmt: "csv" (UTF-8 with BOM) or "xlsx" (sheet 知识库)

    Returns:
        File content
    """
    frame = _to_frame(items)

    if fmt == "csv":
        return frame.to_csv(index=False).encode("utf-8-sig")
    if fmt == "xlsx":
        return _to_xlsx(frame, EXPORT_SHEET)

    raise ValueError(f"Unsupported export format: {fmt}")


def export_filename(fmt: ExportFormat) -> str:
    return f"知识库导出_{now_timestamp()[:10]}.{fmt}"


def template_xlsx() -> bytes:
    """Empty import template with one sample row"""
    sample = KBItem(
        id="1",
        sku="RK-2041",
        category="行李架",
        vehicle_model="RAV4 2020",
        problem_level="P2",
        problem_type="安装问题",
        problem_description="行李架安装不上，孔位对不齐",
        standard_answer="请确认车型年份，2019 款需使用转接支架。",
        internal_solution="1. 核对订单车型 2. 补发转接支架",
        common_mistakes="不要强行扩孔",
        update_time=now_timestamp(),
        attachments=0,
    )
    return _to_xlsx(_to_frame([sample]), TEMPLATE_SHEET)


def media_type(fmt: ExportFormat) -> str:
    return CSV_MEDIA_TYPE if fmt == "csv" else XLSX_MEDIA_TYPE
