"""
Matching Engine

Greedy, single-pass assignment of source documents to statement lines.

Transactions are processed in the order given (folder insertion order).
Each one takes the best-scoring document still available to it, which is
then consumed for the rest of the pass. Earlier lines are never revisited,
so a later transaction can end up without the document that suited it best.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional

from reconciliation.candidate_pool import CandidatePool
from reconciliation.matching_rules.statement_rules import StatementMatchingRules
from reconciliation.models import SourceDocument, Transaction
from reconciliation.statement_registry import TransactionStatus

logger = logging.getLogger(__name__)


@dataclass
class MatchDecision:
    """Outcome of the engine for one transaction."""
    transaction: Transaction
    status: TransactionStatus
    document: Optional[SourceDocument] = None
    score: float = 0.0
    scoring_breakdown: Dict[str, float] = field(default_factory=dict)
    retained: bool = False
    changed: bool = False

    @property
    def matched(self) -> bool:
        return self.status == TransactionStatus.MATCHED


class MatchingEngine:
    """
    Drives the matching rules over a folder's transactions.
    """

    def __init__(self, rules: StatementMatchingRules):
        self.rules = rules

    def run(
        self,
        transactions: Iterable[Transaction],
        pool: CandidatePool
    ) -> Iterator[MatchDecision]:
        """
        Yield one decision per eligible transaction, in order.

        Decisions are produced lazily so the caller can persist each one
        before the next transaction is considered.
        """
        for transaction in transactions:
            if not transaction.status.is_eligible:
                continue
            yield self.decide(transaction, pool)

    def decide(self, transaction: Transaction, pool: CandidatePool) -> MatchDecision:
        """Match one transaction, consuming its document from the pool."""
        linked_id = transaction.linked_to(pool.document_type)

        # Existing matches, automatic or manual, stay as they are
        if transaction.status == TransactionStatus.MATCHED and transaction.linked_document_id:
            return MatchDecision(
                transaction=transaction,
                status=TransactionStatus.MATCHED,
                retained=True
            )

        result = self.rules.find_matches(transaction, pool.available_for(transaction))
        best = result.best_match

        if result.matched:
            if linked_id and linked_id != best.document_id:
                pool.release(linked_id, transaction.id)
            pool.consume(best.document_id, transaction.id)
            logger.debug(
                f"Transaction {transaction.id} matched {best.document_type} "
                f"{best.document_id} with score {best.score:.2f}"
            )
            return MatchDecision(
                transaction=transaction,
                status=TransactionStatus.MATCHED,
                document=best.document,
                score=best.score,
                scoring_breakdown=best.scoring_breakdown,
                changed=True
            )

        if linked_id:
            pool.release(linked_id, transaction.id)

        return MatchDecision(
            transaction=transaction,
            status=TransactionStatus.EXCEPTION,
            score=best.score if best else 0.0,
            scoring_breakdown=best.scoring_breakdown if best else {},
            changed=(
                transaction.status != TransactionStatus.EXCEPTION
                or transaction.linked_document_id is not None
            )
        )
