"""
Unit tests for the per-query search index.
"""

from types import SimpleNamespace

import pytest
from aftersales_kb.search.index_builder import SearchIndex, as_search_doc, build_index


class TestBuildIndex:

    def test_basic_statistics(self):
        """Lengths, tf, df and average length"""
        index = build_index([
            {"id": "1", "text": "支架 松动"},
            {"id": "2", "text": "bracket loose bracket"},
        ])

        assert index.n_docs == 2
        assert index.doc_lengths == {"1": 6, "2": 3}
        assert index.avg_len == pytest.approx(4.5)
        assert index.tf["bracket"] == {"2": 2}
        assert index.df["bracket"] == 1
        assert index.tf["松动"] == {"1": 1}

    def test_document_frequency_counts_documents(self):
        """df counts each document once, however often the term occurs"""
        index = build_index([
            {"id": "a", "text": "rack rack rack"},
            {"id": "b", "text": "rack"},
        ])

        assert index.df["rack"] == 2
        assert index.tf["rack"] == {"a": 3, "b": 1}

    def test_terms_come_from_documents(self):
        """Every indexed term has postings matching its df"""
        index = build_index([
            {"id": "1", "text": "货架安装不上，螺丝孔对不齐"},
            {"id": "2", "text": "保险杠表面有划痕"},
        ])

        assert set(index.tf) == set(index.df)
        for term, postings in index.tf.items():
            assert len(postings) == index.df[term] >= 1

    def test_empty_corpus(self):
        """Empty corpus keeps N at 1"""
        index = build_index([])

        assert index.n_docs == 1
        assert index.avg_len == 0
        assert index.tf == {}
        assert index.df == {}

    def test_missing_text(self):
        """None text is indexed as an empty document"""
        index = build_index([{"id": "1", "text": None}, {"id": "2"}])

        assert index.doc_lengths == {"1": 0, "2": 0}
        assert index.avg_len == 0

    def test_attribute_documents(self):
        """Objects with id/text attributes are accepted"""
        index = build_index([SimpleNamespace(id=7, text="rack")])

        assert index.doc_lengths == {"7": 1}

    def test_postings_unknown_term(self):
        assert SearchIndex().postings("nothing") == {}


class TestAsSearchDoc:

    def test_coercion(self):
        assert as_search_doc({"id": 5, "text": 42}) == {"id": "5", "text": ""}
        assert as_search_doc({}) == {"id": "", "text": ""}
