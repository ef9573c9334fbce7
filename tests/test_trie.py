"""Tests for the trie regular expression compiler."""

import random
import re

import pytest

from phrasenote.trie import LEFT_BOUNDARY as L
from phrasenote.trie import NEVER
from phrasenote.trie import RIGHT_BOUNDARY as R
from phrasenote.trie import trie, trie_pattern


class TestPatterns:

    @pytest.mark.parametrize("words, expected", [
        (["cat"], f"{L}cat{R}"),
        (["fooooo"], f"{L}fo{{5}}{R}"),
        (["foo"], f"{L}foo{R}"),
        (["cat", "cats"], f"{L}cats?{R}"),
        (["cat", "bat"], f"{L}[bc]at{R}"),
        (["CAT", "BAT"], f"{L}[bc]at{R}"),
        (["scats", "shits"], f"{L}s(?:ca|hi)ts{R}"),
        (["cat foo"], f"{L}cat\\s+foo{R}"),
        (["cat", "cat", " cat "], f"{L}cat{R}"),
    ])
    def test_expected_pattern(self, words, expected):
        assert trie_pattern(words) == expected

    def test_no_boundary(self):
        assert trie_pattern(["cat", "cats"], boundary=False) == "cats?"

    def test_capture(self):
        assert trie_pattern(["cat"], boundary=False, capture=True) == "(cat)"

    def test_empty_list_never_matches(self):
        assert trie_pattern([]) == NEVER
        assert trie_pattern(["", "   "]) == NEVER
        assert trie([]).search("anything at all") is None

    def test_metacharacters_escaped(self):
        assert trie_pattern(["a.b"], boundary=False) == "a\\.b"
        assert trie(["c++"]).fullmatch("c++")
        assert trie(["c++"]).fullmatch("cc") is None

    def test_no_boundary_for_non_letters(self):
        assert trie_pattern(["42"]) == "42"


class TestMatching:

    def test_respects_letter_boundaries(self):
        rx = trie(["cat"])
        assert rx.search("the cat sat")
        assert rx.search("concatenate") is None
        assert rx.search("cat's") is not None

    def test_case_insensitive(self):
        assert trie(["cat"]).search("A CAT")

    def test_whitespace_is_flexible(self):
        assert trie(["ice cream"]).search("ice   cream")

    def test_optional_prefix(self):
        rx = trie(["ab", "b"])
        assert rx.fullmatch("ab")
        assert rx.fullmatch("b")
        assert rx.fullmatch("a") is None

    @pytest.mark.parametrize("seed", range(10))
    def test_random_lists(self, seed):
        rng = random.Random(seed)

        def word():
            return "".join(
                rng.choice("abc") for _ in range(rng.randint(1, 5))
            )

        words = {word() for _ in range(rng.randint(1, 30))}
        rx = trie(words)
        for w in words:
            assert rx.fullmatch(w), (w, rx.pattern)
        duds = {word() for _ in range(50)} - words
        for d in duds:
            assert rx.fullmatch(d) is None, (d, rx.pattern)

    def test_pattern_compiles_for_punctuation(self):
        words = ["a-b", "a+b", "(x)", "[y]", "^z$", "a|b", "q?", "{1}"]
        rx = trie(words)
        assert isinstance(rx, re.Pattern)
        for w in words:
            assert rx.fullmatch(w), (w, rx.pattern)
