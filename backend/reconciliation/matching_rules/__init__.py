"""
Matching Rules Module
"""

from .tolerances import similarity, dates_within_tolerance, amounts_match
from .statement_rules import StatementMatchingRules, MatchCandidate, MatchResult, rules_for

__all__ = [
    "similarity",
    "dates_within_tolerance",
    "amounts_match",
    "StatementMatchingRules",
    "MatchCandidate",
    "MatchResult",
    "rules_for",
]
