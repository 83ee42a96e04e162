"""Tests for name-similarity grouping."""

import pytest

from src.classifier.similarity import extract_product_base_name, group_similar_names


class TestExtractProductBaseName:
    @pytest.mark.parametrize("name, expected", [
        ("Free Sugar Pro 3 bottles", "Free Sugar"),
        ("Free Sugar Pro 6 bottles + 3 free", "Free Sugar"),
        ("Free Sugar Pro", "Free Sugar"),
        ("Men Balance 2 Units", "Men Balance"),
        ("GLPro 1 pack", "GLPro"),
        ("Vigor Boost Plus", "Vigor Boost"),
        ("Glucose Reset Ritual Premium", "Glucose Reset Ritual"),
        ("T-Max", "T-Max"),
    ])
    def test_strips_variations(self, name, expected):
        assert extract_product_base_name(name) == expected

    def test_collapses_whitespace(self):
        assert extract_product_base_name("  Men   Balance  ") == "Men Balance"

    def test_nothing_left_returns_original(self):
        assert extract_product_base_name("3 bottles") == "3 bottles"


class TestGroupSimilarNames:
    def test_groups_by_base_name(self):
        groups = group_similar_names([
            "Free Sugar Pro 3 bottles",
            "Men Balance",
            "Free Sugar Pro 6 bottles + 3 free",
            "Men Balance 2 units",
        ])
        assert groups == {
            "Free Sugar": ["Free Sugar Pro 3 bottles", "Free Sugar Pro 6 bottles + 3 free"],
            "Men Balance": ["Men Balance", "Men Balance 2 units"],
        }

    def test_sorted_by_base_name(self):
        groups = group_similar_names(["Zeta", "Alpha"])
        assert list(groups) == ["Alpha", "Zeta"]

    def test_duplicates_listed_once(self):
        groups = group_similar_names(["GLPro", "GLPro"])
        assert groups == {"GLPro": ["GLPro"]}
