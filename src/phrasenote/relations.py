"""Relation vocabulary helpers for phrasenote.

A realm's relation table is a sequence of ``(label_a, label_b)`` pairs:
a note related to another under ``label_a`` is related back under
``label_b``. A pair ``(label, label)`` is symmetric.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from phrasenote.exceptions import ValidationError

# The only relation available by default, and the only relation allowed
# between notes in different realms.
SEE_ALSO = "see also"

DEFAULT_RELATIONS: tuple[tuple[str, str], ...] = ((SEE_ALSO, SEE_ALSO),)

RelationPairs = Sequence[Sequence[str]]


def reverse_relation(pairs: RelationPairs, relation: str) -> str | None:
    """Get the reverse of a relation label, or None if the table lacks it."""
    for a, b in pairs:
        if a == relation:
            return b
        if b == relation:
            return a
    return None


def relation_labels(pairs: RelationPairs) -> frozenset[str]:
    """All labels known to a relation table."""
    labels: set[str] = set()
    for a, b in pairs:
        labels.add(a)
        labels.add(b)
    return frozenset(labels)


def is_symmetric(pairs: RelationPairs, relation: str) -> bool:
    """Check if a relation label is its own reverse."""
    return reverse_relation(pairs, relation) == relation


def normalize_pairs(
    pairs: Iterable[Sequence[str]] | None,
) -> tuple[tuple[str, str], ...]:
    """Coerce a relation table into a tuple of 2-tuples, deduplicated in order."""
    if not pairs:
        return DEFAULT_RELATIONS
    seen: list[tuple[str, str]] = []
    for pair in pairs:
        if len(pair) != 2:
            raise ValidationError(f"Relation pair must have two labels: {pair!r}")
        a, b = (" ".join(str(label).split()) for label in pair)
        if not a or not b:
            raise ValidationError(f"Relation labels must not be blank: {pair!r}")
        if (a, b) not in seen:
            seen.append((a, b))
    return tuple(seen)
