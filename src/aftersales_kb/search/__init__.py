"""
BM25 lexical search for the after-sales knowledge base.

Components:
- tokenizer: CJK-aware tokenization (unigrams + bigrams for CJK, whole words otherwise)
- synonyms: Query-side domain synonym expansion
- index_builder: Per-query term statistics (tf, df, document lengths)
- scorer: BM25 scoring with a substring-containment bonus
- ranker: search() entry point

The index is rebuilt on every search call; nothing is persisted.
"""

from .tokenizer import tokenize, normalize, is_cjk
from .synonyms import SYNONYMS, expand_synonyms, expand_query_terms, load_synonyms
from .index_builder import SearchIndex, build_index
from .scorer import BM25Scorer, K1, B, SUBSTRING_BONUS
from .ranker import search, build_search_text, DEFAULT_TOP_K

__all__ = [
    "tokenize",
    "normalize",
    "is_cjk",
    "SYNONYMS",
    "expand_synonyms",
    "expand_query_terms",
    "load_synonyms",
    "SearchIndex",
    "build_index",
    "BM25Scorer",
    "K1",
    "B",
    "SUBSTRING_BONUS",
    "search",
    "build_search_text",
    "DEFAULT_TOP_K",
]
