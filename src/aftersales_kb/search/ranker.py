"""
Search entry point: tokenize, expand, index, score, rank.

Stateless: every call rebuilds the index from the documents it is given.
For a knowledge base of a few thousand short entries this stays cheap;
callers searching a large, unchanging corpus repeatedly should build the
index once with build_index() and reuse BM25Scorer directly.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .index_builder import as_search_doc, build_index
from .scorer import BM25Scorer
from .synonyms import expand_query_terms
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 50

_scorer = BM25Scorer()


def search(
    query: str,
    documents: Sequence[Any],
    top_k: int = DEFAULT_TOP_K,
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[Dict[str, Union[str, float]]]:
    """
    Rank documents against a free-text query.

    Args:
        query: User query (mixed Chinese/English)
        documents: Items with "id" and "text"
            Callers concatenate searchable record fields into "text"
        top_k: Maximum number of results
        synonyms: Synonym table override (default: built-in SYNONYMS)

    Returns:
        [{"id": str, "score": float}, ...] sorted by descending score.
        Order among equal scores follows the order in which documents first
        matched and is otherwise unspecified.

    Example:
        >>> docs = [
        ...     {"id": "Q1", "text": "货架安装不上，螺丝孔对不齐"},
        ...     {"id": "Q2", "text": "保险杠表面有划痕"},
        ... ]
        >>> [r["id"] for r in search("安装不上", docs)]
        ['Q1']
    """
    if not isinstance(query, str) or not query.strip():
        return []

    docs = [as_search_doc(d) for d in documents]
    index = build_index(docs)

    query_terms = expand_query_terms(tokenize(query), synonyms)

    scores = _scorer.score(query_terms, index)
    _scorer.apply_substring_bonus(scores, query, docs)

    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    results = [{"id": doc_id, "score": score} for doc_id, score in ranked[:max(top_k, 0)]]

    logger.debug(
        f"Search '{query}': {len(query_terms)} expanded terms, "
        f"{len(scores)} matching of {len(docs)} documents, returning {len(results)}"
    )

    return results


def build_search_text(item: Mapping[str, Any]) -> str:
    """
    Concatenate the searchable fields of a knowledge item.

    Question, standard answer, internal solution, then labeled SKU and
    vehicle model, joined with double spaces.

    Example:
        >>> build_search_text({
        ...     "problem_description": "支架松动",
        ...     "standard_answer": "重新紧固",
        ...     "internal_solution": "",
        ...     "sku": "BR-01",
        ...     "vehicle_model": "通用",
        ... })
        '支架松动  重新紧固    SKU:BR-01  车型:通用'
    """
    def field(name: str) -> str:
        value = item.get(name)
        return "" if value is None else str(value)

    return "  ".join([
        field("problem_description"),
        field("standard_answer"),
        field("internal_solution"),
        f"SKU:{field('sku')}",
        f"车型:{field('vehicle_model')}",
    ])
