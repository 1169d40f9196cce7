"""
Compliance Scorer

Score = round(100 * MATCHED / eligible), where eligible excludes FEE lines.
A folder with no eligible lines scores 0. Halves round up (12.5 -> 13).
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping

from reconciliation.statement_registry import TransactionStatus

logger = logging.getLogger(__name__)


def compute_compliance_score(counts: Mapping[TransactionStatus, int]) -> int:
    """Compliance score from per-status transaction counts."""
    eligible = sum(
        count for status, count in counts.items()
        if TransactionStatus(status).is_eligible
    )
    if eligible == 0:
        return 0

    matched = counts.get(TransactionStatus.MATCHED, 0)
    ratio = Decimal(100) * Decimal(matched) / Decimal(eligible)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ComplianceScorer:
    """
    Recomputes and persists a folder's compliance score.

    Reads transaction statuses through the store; never mutates transactions.
    """

    def __init__(self, store):
        self.store = store

    async def score(self, folder_id: str) -> int:
        counts: Dict[TransactionStatus, int] = await self.store.count_transactions_by_status(folder_id)
        compliance_score = compute_compliance_score(counts)

        await self.store.update_folder(folder_id, {"compliance_score": compliance_score})
        logger.info(
            f"Compliance score for folder {folder_id}: {compliance_score}",
            extra={"folder_id": folder_id, "compliance_score": compliance_score}
        )
        return compliance_score
