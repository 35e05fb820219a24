"""
Checklist item canonicalization and fuzzy de-duplication.

Items are compared on a canonical token set: damage and panel synonyms are
folded together, sides are spelled out and filler words dropped. Two items
whose token sets have a Jaccard similarity of at least 0.8 are duplicates.
"""

import re

DUPLICATE_THRESHOLD = 0.8

_SIDE_SYNONYMS = [
    (r"\b(lhs|left[- ]hand side)\b", "left"),
    (r"\b(rhs|right[- ]hand side)\b", "right"),
    (r"\bdriver'?s? side\b", "driver"),
    (r"\bpassenger side\b", "passenger"),
    (r"\blf\b", "front left"),
    (r"\brf\b", "front right"),
    (r"\blr\b", "rear left"),
    (r"\brr\b", "rear right"),
    (r"\bleft front\b", "front left"),
    (r"\bright front\b", "front right"),
    (r"\bleft rear\b", "rear left"),
    (r"\bright rear\b", "rear right"),
]

_AREA_SYNONYMS = [
    (r"bumper[- ]?bar", "bumper"),
    (r"front guard", "front fender"),
    (r"rear guard|quarter panel", "rear fender"),
    (r"tail[- ]?gate", "tailgate"),
    (r"boot ?lid", "boot lid"),
    (r"\bhood\b", "bonnet"),
    (r"windscreen", "windshield"),
    (r"mirror cover", "mirror"),
]

_ISSUE_SYNONYMS = [
    (r"\b(scuffs?|scrapes?|chips?|scratches)\b", "scratch"),
    (r"\b(dings?|dints?|dents)\b", "dent"),
    (r"\b(cracks|cracked)\b", "crack"),
    (r"\b(rusting|corrosion)\b", "rust"),
    (r"\b(peeling|clear ?coat)\b", "peel"),
]

_STOP_WORDS = frozenset(
    {"inspect", "possible", "for", "the", "a", "an", "of", "and", "to", "on", "in", "at", "area", "near", "around"}
)

_NON_WORD_RE = re.compile(r"[^a-z0-9\s/]")


def canonical_tokens(item: str) -> frozenset[str]:
    text = f" {str(item or '').lower()} "
    # Panels fold before sides: side rules reorder words the panel patterns expect
    for pattern, replacement in _AREA_SYNONYMS + _ISSUE_SYNONYMS + _SIDE_SYNONYMS:
        text = re.sub(pattern, replacement, text)
    text = _NON_WORD_RE.sub(" ", text.replace("-", " "))
    return frozenset(word for word in text.split() if word not in _STOP_WORDS)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def is_duplicate(item: str, existing: list[str], threshold: float = DUPLICATE_THRESHOLD) -> bool:
    tokens = canonical_tokens(item)
    return any(jaccard(tokens, canonical_tokens(other)) >= threshold for other in existing)


def merge_checklist(existing: list[str], item: str) -> tuple[list[str], bool]:
    """Return the checklist with `item` appended unless a near-duplicate exists."""
    item = str(item or "").strip()
    if not item or is_duplicate(item, existing):
        return list(existing), False
    return [*existing, item], True
