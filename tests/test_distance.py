"""Tests for the weighted edit-distance metric."""

import pytest

from phrasenote.distance import LEVENSHTEIN, build_edit_distance_metric, metric_for
from phrasenote.models import Sorter


@pytest.fixture
def levenshtein():
    return build_edit_distance_metric()


class TestLevenshtein:

    @pytest.mark.parametrize("w1, w2, expected", [
        ("cat", "cat", 0),
        ("", "", 0),
        ("", "abc", 3),
        ("kitten", "sitting", 3),
        ("cat", "act", 2),
        ("flaw", "lawn", 2),
    ])
    def test_plain_distance(self, levenshtein, w1, w2, expected):
        assert levenshtein(w1, w2) == expected

    def test_default_sorter(self):
        assert LEVENSHTEIN.pk == 0
        assert LEVENSHTEIN.name == "Levenshtein"
        assert metric_for(LEVENSHTEIN)("kitten", "sitting") == 3


class TestDiscounts:

    def test_prefix_is_marginal(self):
        d = build_edit_distance_metric(prefix=1)
        assert d("cat", "bat") == 0.5
        assert d("cat", "cot") == 1

    def test_suffix_is_marginal(self):
        d = build_edit_distance_metric(suffix=1)
        assert d("cat", "cab") == 0.5
        assert d("cat", "cot") == 1

    def test_marginal_insertion(self):
        d = build_edit_distance_metric(prefix=1)
        assert d("", "ab") == 1.5
        assert d("ab", "") == 1.5

    def test_doubled_insertable(self):
        d = build_edit_distance_metric(insertables="t")
        assert d("cat", "catt") == 0.5
        assert d("ca", "cat") == 1

    def test_similar_substitution(self):
        d = build_edit_distance_metric(similars=["aeiou"])
        assert d("woman", "women") == 0.5
        assert d("woman", "wobman") == 1

    def test_discounts_multiply(self):
        d = build_edit_distance_metric(prefix=1, similars=["aeiou"])
        assert d("at", "et") == 0.25

    def test_negative_margins_rejected(self):
        with pytest.raises(ValueError):
            build_edit_distance_metric(prefix=-1)
        with pytest.raises(ValueError):
            build_edit_distance_metric(suffix=-1)


@pytest.mark.parametrize("w1, w2", [
    ("cat", "catt"),
    ("woman", "women"),
    ("abc", ""),
    ("kitten", "sitting"),
    ("letter", "leter"),
    ("straße", "strasse"),
])
def test_symmetric(w1, w2):
    d = build_edit_distance_metric(
        prefix=1, suffix=2, insertables="lst", similars=["aeiou", "sß"],
    )
    assert d(w1, w2) == d(w2, w1)
    assert d(w1, w1) == 0


def test_metric_for_sorter():
    sorter = Sorter(name="Vowels", pk=1, similars=("aeiou",))
    assert metric_for(sorter)("woman", "women") == 0.5
