"""
Statement Matching Rules

Scores a statement line against a source document (receipt or invoice).

Scoring (out of 100):
- date within tolerance: 30 points (binary, 1 day)
- amount within tolerance: 50 points (binary, 0.01%)
- name similarity: up to 20 points (similarity * 20)

A candidate scoring at or above the threshold (70) is a match.
"""

from typing import Dict, Any, Iterable, List, Optional, Tuple
from dataclasses import dataclass

from reconciliation.models import SourceDocument, Transaction
from reconciliation.statement_registry import (
    StatementConfig,
    StatementType,
    statement_registry,
)
from reconciliation.matching_rules.tolerances import (
    amounts_match,
    dates_within_tolerance,
    similarity,
)


@dataclass
class MatchCandidate:
    """
    A scored candidate document.
    """
    document_id: str
    document_type: str
    score: float
    scoring_breakdown: Dict[str, float]
    document: SourceDocument

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "document_type": self.document_type,
            "score": self.score,
            "scoring_breakdown": self.scoring_breakdown,
        }


@dataclass
class MatchResult:
    """
    Result of scoring one transaction against a set of candidates.
    """
    transaction_id: str
    candidates: List[MatchCandidate]
    best_match: Optional[MatchCandidate]
    matched: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "candidates_count": len(self.candidates),
            "candidates": [c.to_dict() for c in self.candidates],
            "best_match": self.best_match.to_dict() if self.best_match else None,
            "matched": self.matched,
        }


class StatementMatchingRules:
    """
    Scoring rules for one statement type.
    """

    def __init__(self, config: StatementConfig):
        self.config = config

    @property
    def threshold(self) -> float:
        return self.config.match_threshold

    def score(
        self,
        transaction: Transaction,
        candidate: SourceDocument
    ) -> Tuple[float, Dict[str, float]]:
        """
        Score a (transaction, candidate) pair.

        Returns:
            Tuple of (total_score, scoring_breakdown)
        """
        breakdown = {}

        date_match = dates_within_tolerance(
            transaction.date,
            candidate.document_date,
            self.config.date_tolerance_days
        )
        breakdown['date'] = self.config.date_weight if date_match else 0.0

        amount_match = amounts_match(
            transaction.value,
            candidate.match_amount,
            self.config.amount_tolerance_percent
        )
        breakdown['amount'] = self.config.amount_weight if amount_match else 0.0

        name_similarity = similarity(transaction.merchant_name, candidate.business_name)
        breakdown['similarity'] = name_similarity * self.config.similarity_weight

        total_score = breakdown['date'] + breakdown['amount'] + breakdown['similarity']
        breakdown['total'] = round(total_score, 4)

        return total_score, breakdown

    def find_matches(
        self,
        transaction: Transaction,
        candidates: Iterable[SourceDocument]
    ) -> MatchResult:
        """
        Score every candidate and pick the best one.

        The best match is the first candidate with the strictly highest
        score; it only counts as a match at or above the threshold.
        Candidates are returned sorted by score, ties kept in input order.
        """
        scored = []
        best_match = None

        for candidate in candidates:
            total, breakdown = self.score(transaction, candidate)
            match_candidate = MatchCandidate(
                document_id=candidate.id,
                document_type=candidate.document_type.value,
                score=total,
                scoring_breakdown=breakdown,
                document=candidate
            )
            scored.append(match_candidate)

            if best_match is None or total > best_match.score:
                best_match = match_candidate

        scored.sort(key=lambda c: c.score, reverse=True)

        return MatchResult(
            transaction_id=transaction.id,
            candidates=scored,
            best_match=best_match,
            matched=best_match is not None and best_match.score >= self.threshold
        )


def rules_for(statement_type: StatementType) -> StatementMatchingRules:
    """Get the matching rules for a statement type."""
    config = statement_registry.get_config(statement_type)
    if config is None:
        raise KeyError(f"No matching policy for statement type {statement_type}")
    return StatementMatchingRules(config)
