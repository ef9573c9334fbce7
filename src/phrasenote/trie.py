"""Compile word lists into minimal, non-backtracking regular expressions.

For example ``["cat", "cats"]`` becomes ``cats?`` wrapped in letter
boundary assertions.

Words are treated as literals. Common prefixes and suffixes are factored
out recursively, single-character alternatives become classes, and runs
of a repeated character become ``{n}`` counts when that is shorter.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# "not preceded/followed by a letter", i.e. a letter boundary or string edge
LEFT_BOUNDARY = r"(?<![^\W\d_])"
RIGHT_BOUNDARY = r"(?![^\W\d_])"
NEVER = "(?!)"

_METACHARACTERS = frozenset("/\\^$*+?.()|[]{}")
_LETTER = re.compile(r"[^\W\d_]")
_SINGLE = re.compile(r"\\?.", re.DOTALL)


class _Slice:
    """A window ``[start, end)`` onto a sequence of pattern atoms."""

    __slots__ = ("atoms", "start", "end")

    def __init__(self, atoms: list[str]) -> None:
        self.atoms = atoms
        self.start = 0
        self.end = len(atoms)

    def __len__(self) -> int:
        return self.end - self.start

    def first(self) -> str | None:
        return self.atoms[self.start] if len(self) else None

    def last(self) -> str | None:
        return self.atoms[self.end - 1] if len(self) else None

    def rest(self) -> list[str]:
        return self.atoms[self.start:self.end]


def trie_pattern(
    words: Iterable[str], *, boundary: bool = True, capture: bool = False,
) -> str:
    """Build the pattern source matching any of ``words``."""
    rx = _condense(_to_slices(words, boundary))
    return f"({rx})" if capture else rx


def trie(
    words: Iterable[str], *, boundary: bool = True, capture: bool = False,
) -> re.Pattern[str]:
    """Compile a case-insensitive matcher for any of ``words``."""
    return re.compile(
        trie_pattern(words, boundary=boundary, capture=capture), re.IGNORECASE
    )


def _condense(slices: list[_Slice]) -> str:
    if not slices:
        return NEVER
    slices, suffix = _extract_suffix(slices)
    if len(slices) == 1 and not len(slices[0]):
        return suffix
    slices, prefix = _extract_prefix(slices)
    remainder = [sl for sl in slices if len(sl)]
    optional = "?" if len(remainder) < len(slices) else ""
    parts = sorted(_condense(group) for group in _group_by_first(remainder))
    if len(parts) == 1 and _SINGLE.fullmatch(parts[0]):
        alternates = parts[0]
    elif all(_SINGLE.fullmatch(p) for p in parts):
        alternates = "[" + "".join(parts).replace("-", "\\-") + "]"
    else:
        alternates = "(?:" + "|".join(parts) + ")"
    return f"{prefix}{alternates}{optional}{suffix}"


def _group_by_first(slices: list[_Slice]) -> list[list[_Slice]]:
    groups: dict[str, list[_Slice]] = {}
    for sl in slices:
        groups.setdefault(sl.first(), []).append(sl)
    return list(groups.values())


def _extract_prefix(slices: list[_Slice]) -> tuple[list[_Slice], str]:
    if len(slices) == 1:
        sl = slices[0]
        prefix = sl.rest()
        sl.start = sl.end
        return slices, _reduce_duplicates(prefix)
    prefix: list[str] = []
    c = slices[0].first()
    while c is not None and all(sl.first() == c for sl in slices):
        for sl in slices:
            sl.start += 1
        prefix.append(c)
        c = slices[0].first()
    return slices, _reduce_duplicates(prefix)


def _extract_suffix(slices: list[_Slice]) -> tuple[list[_Slice], str]:
    if len(slices) == 1:
        sl = slices[0]
        suffix = sl.rest()
        sl.end = sl.start
        return slices, _reduce_duplicates(suffix)
    suffix: list[str] = []
    c = slices[0].last()
    while c is not None and all(sl.last() == c for sl in slices):
        for sl in slices:
            sl.end -= 1
        suffix.append(c)
        c = slices[0].last()
    suffix.reverse()
    return slices, _reduce_duplicates(suffix)


def _reduce_duplicates(atoms: list[str]) -> str:
    """Render atoms, turning runs like ``aaaaa`` into ``a{5}``."""
    if not atoms:
        return ""
    reduced: list[str] = []
    unit, count = atoms[0], 1
    for atom in atoms[1:]:
        if atom == unit:
            count += 1
        else:
            reduced.append(_maybe_reduce(count, unit))
            unit, count = atom, 1
    reduced.append(_maybe_reduce(count, unit))
    return "".join(reduced)


def _maybe_reduce(count: int, unit: str) -> str:
    # never longer than the literal repetition
    if count > 1 and count * len(unit) > len(unit) + 3:
        return f"{unit}{{{count}}}"
    return unit * count


def _to_slices(words: Iterable[str], boundary: bool) -> list[_Slice]:
    normalized = (" ".join(w.lower().split()) for w in words)
    slices = []
    for word in dict.fromkeys(w for w in normalized if w):
        atoms = [_quotemeta(c) for c in word]
        if boundary:
            if _needs_boundary(atoms[0]):
                atoms.insert(0, LEFT_BOUNDARY)
            if _needs_boundary(atoms[-1]):
                atoms.append(RIGHT_BOUNDARY)
        slices.append(_Slice(atoms))
    return slices


def _needs_boundary(atom: str) -> bool:
    return len(atom) == 1 and _LETTER.fullmatch(atom) is not None


def _quotemeta(c: str) -> str:
    if c in _METACHARACTERS:
        return "\\" + c
    if c == " ":
        return r"\s+"
    return c
