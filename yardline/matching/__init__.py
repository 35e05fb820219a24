"""Rego matching: weighted edit distance and entity resolution."""

from .distance import weighted_distance
from .resolver import EntityResolver, MatchDecision, MatchPolicy, MatchResult, ScoredCandidate

__all__ = [
    "EntityResolver",
    "MatchDecision",
    "MatchPolicy",
    "MatchResult",
    "ScoredCandidate",
    "weighted_distance",
]
