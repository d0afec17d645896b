"""
Search index builder - per-query term statistics over a document set.

The index is ephemeral: it is built for a single search call and discarded
afterwards. Nothing here is cached or persisted.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from .tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass
class SearchIndex:
    """
    Term statistics for BM25 scoring.

    Attributes:
        n_docs: Document count (1 for an empty corpus, never 0)
        avg_len: Mean document length in tokens
        doc_lengths: {doc_id: token count}
        tf: {term: {doc_id: raw term frequency}}
        df: {term: number of documents containing the term}
    """

    n_docs: int = 1
    avg_len: float = 0.0
    doc_lengths: Dict[str, int] = field(default_factory=dict)
    tf: Dict[str, Dict[str, int]] = field(default_factory=dict)
    df: Dict[str, int] = field(default_factory=dict)

    def postings(self, term: str) -> Dict[str, int]:
        """Documents containing the term, with frequencies."""
        return self.tf.get(term, {})


def as_search_doc(doc: Any) -> Dict[str, str]:
    """
    Coerce a document into {"id": str, "text": str}.

    Accepts mappings or objects with ``id``/``text`` attributes.
    Missing or non-string text becomes "".
    """
    if isinstance(doc, Mapping):
        doc_id = doc.get("id")
        text = doc.get("text")
    else:
        doc_id = getattr(doc, "id", None)
        text = getattr(doc, "text", None)

    return {
        "id": "" if doc_id is None else str(doc_id),
        "text": text if isinstance(text, str) else "",
    }


def build_index(documents: Iterable[Any]) -> SearchIndex:
    """
    Build term statistics from documents.

    Document frequency counts each document once per distinct term,
    regardless of how often the term occurs in it.

    Args:
        documents: Items with "id" and "text" (see as_search_doc)

    Returns:
        SearchIndex for this document set

    Example:
        >>> index = build_index([
        ...     {"id": "1", "text": "支架 松动"},
        ...     {"id": "2", "text": "bracket loose bracket"},
        ... ])
        >>> index.df["bracket"], index.tf["bracket"]
        (1, {'2': 2})
        >>> index.doc_lengths
        {'1': 6, '2': 3}
    """
    index = SearchIndex()
    docs: List[Dict[str, str]] = [as_search_doc(d) for d in documents]

    for doc in docs:
        tokens = tokenize(doc["text"])
        index.doc_lengths[doc["id"]] = len(tokens)

        for term, count in Counter(tokens).items():
            index.tf.setdefault(term, {})[doc["id"]] = count
            index.df[term] = index.df.get(term, 0) + 1

    index.n_docs = len(docs) or 1
    index.avg_len = sum(index.doc_lengths.values()) / index.n_docs

    logger.debug(
        f"Built search index: {len(index.df)} unique terms from {len(docs)} documents "
        f"(avg_len={index.avg_len:.1f})"
    )

    return index
