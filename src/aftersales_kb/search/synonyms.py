"""
Domain synonym table for query expansion.

Expansion is asymmetric: only query terms are expanded, indexed document
terms are left as they are. This keeps the index small and bounds the
query-time cost by query length.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

import yaml

logger = logging.getLogger(__name__)

# After-sales fitment vocabulary: term -> near-synonyms
SYNONYMS: Dict[str, List[str]] = {
    "不适配": ["不匹配", "不吻合", "对不齐", "不合适", "不兼容", "不匹配性"],
    "安装": ["安装不上", "装配", "固定", "组装", "装上"],
    "支架": ["安装支架", "固定件", "支撑件", "卡扣"],
    "孔位": ["螺丝孔", "孔洞", "孔位对齐", "孔距"],
    "松动": ["不稳", "晃动", "松旷", "松脱"],
}


def expand_synonyms(
    term: str,
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[str]:
    """
    Expand a single query term.

    Args:
        term: Query term (already tokenized)
        synonyms: Table to use (default: SYNONYMS)

    Returns:
        The term itself followed by its listed synonyms

    Examples:
        >>> expand_synonyms("松动")
        ['松动', '不稳', '晃动', '松旷', '松脱']
        >>> expand_synonyms("划痕")
        ['划痕']
    """
    table = SYNONYMS if synonyms is None else synonyms
    return [term, *table.get(term, [])]


def expand_query_terms(
    terms: Iterable[str],
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> Set[str]:
    """Union of expansions of all query terms (flat, not combinatorial)."""
    expanded: Set[str] = set()
    for term in terms:
        expanded.update(expand_synonyms(term, synonyms))
    return expanded


def load_synonyms(path: Union[str, Path]) -> Dict[str, List[str]]:
    """
    Load the default table merged with extra entries from a YAML file.

    File format (mapping of term to list of synonyms):

        划痕: [刮花, 擦伤]
        松动: [松垮]

    Entries in the file replace the default entry for the same term.
    A missing file returns the default table unchanged.
    """
    table = {term: list(values) for term, values in SYNONYMS.items()}

    path = Path(path)
    if not path.exists():
        logger.warning(f"Synonyms file not found: {path}, using built-in table")
        return table

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Synonyms file must contain a mapping, got {type(data).__name__}")

    for term, values in data.items():
        if isinstance(values, str):
            values = [values]
        table[str(term)] = [str(v) for v in (values or [])]

    logger.info(f"Loaded {len(data)} synonym entries from {path}")
    return table
