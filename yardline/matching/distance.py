"""
Weighted edit distance for number plates.

Optimal string alignment (restricted Damerau-Levenshtein) over normalized
plates, where characters that are easy to misread cost less to substitute.
"""

from yardline.kernel.text import normalize_rego

INSERTION_COST = 1.0
DELETION_COST = 1.0
SUBSTITUTION_COST = 1.0
TRANSPOSITION_COST = 0.4

# Letter/digit pairs OCR and hurried typing swap most often.
PRIMARY_CONFUSABLES: tuple[tuple[str, str], ...] = (
    ("O", "0"),
    ("I", "1"),
    ("B", "8"),
    ("S", "5"),
    ("Z", "2"),
    ("G", "6"),
    ("Q", "O"),
)
PRIMARY_COST = 0.2

# Weaker lookalikes.
SECONDARY_CONFUSABLES: tuple[tuple[str, str], ...] = (
    ("D", "0"),
    ("Q", "0"),
    ("L", "1"),
    ("T", "1"),
    ("7", "1"),
    ("U", "V"),
    ("V", "Y"),
    ("M", "N"),
    ("N", "W"),
    ("H", "M"),
    ("C", "G"),
    ("K", "X"),
)
SECONDARY_COST = 0.35


def _build_costs() -> dict[tuple[str, str], float]:
    costs: dict[tuple[str, str], float] = {}
    for pairs, cost in ((SECONDARY_CONFUSABLES, SECONDARY_COST), (PRIMARY_CONFUSABLES, PRIMARY_COST)):
        for a, b in pairs:
            costs[(a, b)] = cost
            costs[(b, a)] = cost
    return costs


CONFUSABLE_COSTS = _build_costs()


def substitution_cost(a: str, b: str) -> float:
    if a == b:
        return 0.0
    return CONFUSABLE_COSTS.get((a, b), SUBSTITUTION_COST)


def weighted_distance(a: str, b: str) -> float:
    """Distance between two plates after normalization. Symmetric, 0 iff equal."""
    left = normalize_rego(a)
    right = normalize_rego(b)
    n, m = len(left), len(right)

    dp = [[0.0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        dp[i][0] = i * DELETION_COST
    for j in range(1, m + 1):
        dp[0][j] = j * INSERTION_COST

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            best = min(
                dp[i - 1][j - 1] + substitution_cost(left[i - 1], right[j - 1]),
                dp[i - 1][j] + DELETION_COST,
                dp[i][j - 1] + INSERTION_COST,
            )
            if (
                i > 1
                and j > 1
                and left[i - 1] == right[j - 2]
                and left[i - 2] == right[j - 1]
            ):
                best = min(best, dp[i - 2][j - 2] + TRANSPOSITION_COST)
            dp[i][j] = best

    return round(dp[n][m], 6)
