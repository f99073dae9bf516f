from __future__ import annotations


def levenshtein(a: str, b: str) -> int:
    """Edit distance by the full O(len(a) * len(b)) dynamic programme."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(a) + 1))
    for i, cb in enumerate(b, start=1):
        cur = [i] + [0] * len(a)
        for j, ca in enumerate(a, start=1):
            if ca == cb:
                cur[j] = prev[j - 1]
            else:
                cur[j] = min(prev[j - 1], cur[j - 1], prev[j]) + 1
        prev = cur
    return prev[-1]


def similarity(query: str, label: str) -> float:
    """Score in [0, 1] of how well `label` answers `query`.

    1.0 when the label contains the query, 0.9 when the query contains the
    label, otherwise one minus the normalised edit distance. Callers decide
    on case folding.
    """
    if query in label:
        return 1.0
    if label in query:
        return 0.9
    longest = max(len(query), len(label))
    return 1.0 - levenshtein(query, label) / longest
