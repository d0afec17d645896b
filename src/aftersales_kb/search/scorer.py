"""
BM25 scorer over a per-query SearchIndex.

BM25 (Best Match 25) is a probabilistic ranking function used for information retrieval.

Formula:
    idf(term) = ln((N - df + 0.5) / (df + 0.5) + 1)
    score(term, doc) = idf × (tf × (k1 + 1)) / (tf + k1 × (1 - b + b × dl/avgdl))

Where:
    N = number of documents
    df = number of documents containing the term
    tf = term frequency in document
    k1 = term frequency saturation parameter (1.5)
    b = length normalization parameter (0.75)
    dl = document length (number of tokens)
    avgdl = average document length

The "+1 inside the log" keeps idf non-negative even when a term occurs in
more than half of the documents.

Substring bonus:
    Documents whose normalized text contains the whole normalized query
    get a flat +3 on top of the term-based score.
"""

import math
from typing import Any, Dict, Iterable

from .index_builder import SearchIndex, as_search_doc
from .tokenizer import normalize

K1 = 1.5
B = 0.75
SUBSTRING_BONUS = 3.0


class BM25Scorer:
    """BM25 with full corpus IDF, computed over an ephemeral index."""

    def __init__(self, k1: float = K1, b: float = B, substring_bonus: float = SUBSTRING_BONUS):
        """
        Initialize BM25 scorer.

        Args:
            k1: Term frequency saturation parameter
                Higher = more weight to term frequency

            b: Length normalization parameter
                Higher = more penalty for long documents
                Range: 0.0 - 1.0

            substring_bonus: Flat score added for literal query containment
        """
        self.k1 = k1
        self.b = b
        self.substring_bonus = substring_bonus

    def idf(self, index: SearchIndex, term: str) -> float:
        df = index.df.get(term, 0)
        return math.log((index.n_docs - df + 0.5) / (df + 0.5) + 1)

    def score(self, query_terms: Iterable[str], index: SearchIndex) -> Dict[str, float]:
        """
        Compute BM25 scores for every document matching any query term.

        Args:
            query_terms: Expanded query terms (each scored once)
            index: Index built from the candidate documents

        Returns:
            {doc_id: score}, only documents with at least one matching term,
            in the order they first received a score
        """
        scores: Dict[str, float] = {}

        for term in query_terms:
            # Unknown terms contribute nothing
            if index.df.get(term, 0) == 0:
                continue

            idf = self.idf(index, term)

            for doc_id, tf in index.postings(term).items():
                length = index.doc_lengths.get(doc_id) or 1
                ratio = length / index.avg_len if index.avg_len else 1.0

                numerator = tf * (self.k1 + 1)
                denominator = tf + self.k1 * (1 - self.b + self.b * ratio)

                scores[doc_id] = scores.get(doc_id, 0.0) + idf * numerator / denominator

        return scores

    def apply_substring_bonus(
        self,
        scores: Dict[str, float],
        query: str,
        documents: Iterable[Any],
    ) -> Dict[str, float]:
        """
        Add the substring bonus in place and return the scores.

        The raw query is normalized (not tokenized), so a multi-word
        Latin phrase must appear contiguously to earn the bonus.
        """
        normalized_query = normalize(query).strip()
        if not normalized_query:
            return scores

        for doc in documents:
            doc = as_search_doc(doc)
            if normalized_query in normalize(doc["text"]):
                scores[doc["id"]] = scores.get(doc["id"], 0.0) + self.substring_bonus

        return scores
