"""
Unit tests for query-side synonym expansion.
"""

import pytest
from aftersales_kb.search.synonyms import (
    SYNONYMS,
    expand_query_terms,
    expand_synonyms,
    load_synonyms,
)


class TestExpandSynonyms:

    def test_known_term(self):
        """Known term expands to itself plus listed synonyms"""
        assert expand_synonyms("不适配") == [
            "不适配", "不匹配", "不吻合", "对不齐", "不合适", "不兼容", "不匹配性"
        ]

    def test_unknown_term(self):
        """Unknown term returns only itself"""
        assert expand_synonyms("划痕") == ["划痕"]

    def test_custom_table(self):
        """A caller-supplied table replaces the built-in one"""
        table = {"划痕": ["刮花"]}
        assert expand_synonyms("划痕", table) == ["划痕", "刮花"]
        assert expand_synonyms("松动", table) == ["松动"]

    def test_empty_table_disables_expansion(self):
        assert expand_synonyms("安装", {}) == ["安装"]

    def test_query_terms_flat_union(self):
        """Expansions of different terms merge into one set"""
        expanded = expand_query_terms(["安装", "划痕", "安装"])
        assert expanded == {"安装", "安装不上", "装配", "固定", "组装", "装上", "划痕"}


class TestLoadSynonyms:

    def test_merge_yaml_entries(self, tmp_path):
        """File entries are added and replace defaults for the same term"""
        path = tmp_path / "synonyms.yaml"
        path.write_text("划痕: [刮花, 擦伤]\n松动: 松垮\n", encoding="utf-8")

        table = load_synonyms(path)

        assert table["划痕"] == ["刮花", "擦伤"]
        assert table["松动"] == ["松垮"]
        assert table["支架"] == SYNONYMS["支架"]

    def test_defaults_not_mutated(self, tmp_path):
        path = tmp_path / "synonyms.yaml"
        path.write_text("松动: [松垮]\n", encoding="utf-8")

        load_synonyms(path)

        assert "松垮" not in SYNONYMS["松动"]

    def test_missing_file(self, tmp_path):
        """Missing file falls back to the built-in table"""
        assert load_synonyms(tmp_path / "absent.yaml") == SYNONYMS

    def test_invalid_content(self, tmp_path):
        path = tmp_path / "synonyms.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_synonyms(path)
