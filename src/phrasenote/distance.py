"""Weighted edit-distance metric used to rank similar phrases.

The metric is a Levenshtein distance whose costs can be discounted:

* edits within the first ``prefix`` or last ``suffix`` characters of
  either word ("marginal" positions) cost half;
* inserting or deleting a character listed in ``insertables`` next to
  another occurrence of itself costs half ("cat" vs. "catt");
* substituting characters that share a group in ``similars`` costs half
  ("woman" vs. "women" when vowels form a group).

Discounts multiply, so a marginal doubled insertable costs a quarter.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from phrasenote.models import Sorter

Metric = Callable[[str, str], float]

LEVENSHTEIN = Sorter(
    pk=0,
    name="Levenshtein",
    description="A language-agnostic sorter.",
)


def _similarity_table(similars: Iterable[str]) -> dict[str, set[str]]:
    table: dict[str, set[str]] = {}
    for group in similars:
        for c in group:
            table.setdefault(c, set()).update(c2 for c2 in group if c2 != c)
    return table


def build_edit_distance_metric(
    prefix: int = 0,
    suffix: int = 0,
    insertables: str = "",
    similars: Iterable[str] = (),
) -> Metric:
    """Build a symmetric distance function from a sorter configuration."""
    if prefix < 0 or suffix < 0:
        raise ValueError("prefix and suffix must be non-negative")
    cheap = _similarity_table(similars)
    intruders = frozenset(insertables)

    def marginal(i1: int, i2: int, n1: int, n2: int) -> bool:
        return max(i1, i2) < prefix or max(n1 - i1, n2 - i2) <= suffix

    def doubled(w: str, i: int) -> bool:
        c = w[i]
        return (i > 0 and w[i - 1] == c) or (i + 1 < len(w) and w[i + 1] == c)

    def indel_cost(w: str, i: int, i1: int, i2: int, n1: int, n2: int) -> float:
        # w[i] is the character being inserted or deleted
        weight = 0.5 if marginal(i1, i2, n1, n2) else 1.0
        if intruders and w[i] in intruders and doubled(w, i):
            weight *= 0.5
        return weight

    def substitution_cost(
        c1: str, c2: str, i1: int, i2: int, n1: int, n2: int,
    ) -> float:
        if c1 == c2:
            return 0.0
        weight = 0.5 if marginal(i1, i2, n1, n2) else 1.0
        if c2 in cheap.get(c1, ()):
            weight *= 0.5
        return weight

    def distance(w1: str, w2: str) -> float:
        n1, n2 = len(w1), len(w2)
        # cell [i1][i2] holds the cost of turning w1[:i1] into w2[:i2];
        # edits entering it are charged at positions (i1 - 1, i2 - 1)
        matrix = [[0.0] * (n2 + 1) for _ in range(n1 + 1)]
        for i1 in range(1, n1 + 1):
            matrix[i1][0] = matrix[i1 - 1][0] + indel_cost(
                w1, i1 - 1, i1 - 1, -1, n1, n2
            )
        for i2 in range(1, n2 + 1):
            matrix[0][i2] = matrix[0][i2 - 1] + indel_cost(
                w2, i2 - 1, -1, i2 - 1, n1, n2
            )
        for i1 in range(1, n1 + 1):
            row, above = matrix[i1], matrix[i1 - 1]
            for i2 in range(1, n2 + 1):
                p1, p2 = i1 - 1, i2 - 1
                row[i2] = min(
                    row[i2 - 1] + indel_cost(w2, p2, p1, p2, n1, n2),
                    above[i2 - 1] + substitution_cost(
                        w1[p1], w2[p2], p1, p2, n1, n2
                    ),
                    above[i2] + indel_cost(w1, p1, p1, p2, n1, n2),
                )
        return matrix[n1][n2]

    return distance


def metric_for(sorter: Sorter) -> Metric:
    """Build the metric a sorter describes."""
    return build_edit_distance_metric(
        prefix=sorter.prefix,
        suffix=sorter.suffix,
        insertables=sorter.insertables,
        similars=sorter.similars,
    )
