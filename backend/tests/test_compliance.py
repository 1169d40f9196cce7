"""
Unit Tests for folder compliance scoring.

Run with: pytest tests/test_compliance.py -v
"""

from unittest.mock import AsyncMock

import pytest

from reconciliation.services.compliance import ComplianceScorer, compute_compliance_score
from reconciliation.statement_registry import TransactionStatus

MATCHED = TransactionStatus.MATCHED
EXCEPTION = TransactionStatus.EXCEPTION
PENDING = TransactionStatus.PENDING
FEE = TransactionStatus.FEE


class TestComputeComplianceScore:
    """round(100 * MATCHED / non-FEE)."""

    def test_seven_of_ten(self):
        assert compute_compliance_score({MATCHED: 7, EXCEPTION: 3}) == 70

    def test_fees_excluded_from_denominator(self):
        assert compute_compliance_score({FEE: 2, MATCHED: 2, EXCEPTION: 1}) == 67

    def test_pending_counts_as_eligible(self):
        assert compute_compliance_score({MATCHED: 1, PENDING: 1}) == 50

    def test_empty_folder(self):
        assert compute_compliance_score({}) == 0

    def test_only_fees(self):
        assert compute_compliance_score({FEE: 4}) == 0

    def test_half_rounds_up(self):
        assert compute_compliance_score({MATCHED: 1, EXCEPTION: 7}) == 13

    def test_all_matched(self):
        assert compute_compliance_score({MATCHED: 3, FEE: 9}) == 100

    def test_string_status_keys(self):
        assert compute_compliance_score({"MATCHED": 1, "EXCEPTION": 1}) == 50


class TestComplianceScorer:
    """Persisting the score through the store."""

    @pytest.fixture
    def mock_store(self):
        store = AsyncMock()
        store.count_transactions_by_status = AsyncMock(return_value={MATCHED: 2, EXCEPTION: 1, FEE: 2})
        store.update_folder = AsyncMock()
        return store

    @pytest.mark.asyncio
    async def test_score_persisted(self, mock_store):
        score = await ComplianceScorer(mock_store).score("folder-1")

        assert score == 67
        mock_store.update_folder.assert_awaited_once_with("folder-1", {"compliance_score": 67})

    @pytest.mark.asyncio
    async def test_transactions_not_touched(self, mock_store):
        await ComplianceScorer(mock_store).score("folder-1")

        mock_store.update_transaction.assert_not_called()
