"""
Unit Tests for statement matching rules and the statement registry.

Run with: pytest tests/test_statement_rules.py -v
"""

from datetime import date
from decimal import Decimal

import pytest

from reconciliation.matching_rules.statement_rules import StatementMatchingRules, rules_for
from reconciliation.models import Transaction, Receipt, Invoice
from reconciliation.statement_registry import (
    DocumentType,
    StatementType,
    TransactionStatus,
    classify_statement_line,
    statement_registry,
)


def make_transaction(merchant_name="Starbucks Coffee", txn_date=date(2024, 3, 1), value="-50.00", **kwargs):
    return Transaction(
        id=kwargs.pop("id", "txn-1"),
        folder_id="folder-1",
        merchant_name=merchant_name,
        date=txn_date,
        value=Decimal(value),
        **kwargs
    )


def make_receipt(receipt_id, merchant_name="Starbucks", receipt_date=date(2024, 3, 1), total="50.00"):
    return Receipt(
        id=receipt_id,
        folder_id="folder-1",
        merchant_name=merchant_name,
        receipt_date=receipt_date,
        total=Decimal(total),
    )


class TestStatementRegistry:
    """Matching policy per statement type."""

    def test_card_uses_receipts(self):
        assert statement_registry.get_config(StatementType.CARD).document_type == DocumentType.RECEIPT

    def test_bank_uses_invoices(self):
        assert statement_registry.get_config(StatementType.BANK).document_type == DocumentType.INVOICE

    @pytest.mark.parametrize("statement_type", list(StatementType))
    def test_policy_constants(self, statement_type):
        config = statement_registry.get_config(statement_type)
        assert config.date_weight + config.amount_weight + config.similarity_weight == 100.0
        assert config.match_threshold == 70.0
        assert config.date_tolerance_days == 1
        assert config.amount_tolerance_percent == 0.01

    def test_to_dict(self):
        card = statement_registry.get_config(StatementType.CARD).to_dict()
        bank = statement_registry.get_config(StatementType.BANK).to_dict()
        assert card["document_type"] == "receipt"
        assert bank["weights"] == {"date": 30.0, "amount": 50.0, "similarity": 20.0}

    def test_fee_status_not_eligible(self):
        assert TransactionStatus.FEE.is_eligible is False
        assert all(s.is_eligible for s in TransactionStatus if s != TransactionStatus.FEE)


class TestClassifyStatementLine:
    """Initial status from the statement line category."""

    @pytest.mark.parametrize("category", ["Bank Fee", "Service CHARGE", "Interest", "late fees"])
    def test_fee_categories(self, category):
        assert classify_statement_line(category) == TransactionStatus.FEE

    @pytest.mark.parametrize("category", [None, "", "Groceries", "Travel"])
    def test_other_categories(self, category):
        assert classify_statement_line(category) == TransactionStatus.PENDING


class TestScoring:
    """Score composition for a (transaction, document) pair."""

    @pytest.fixture
    def rules(self):
        return rules_for(StatementType.CARD)

    def test_exact_pair_scores_match(self, rules):
        """Date and amount agree, merchant is a prefix of the statement text."""
        total, breakdown = rules.score(make_transaction(), make_receipt("r-1"))

        assert breakdown["date"] == 30.0
        assert breakdown["amount"] == 50.0
        assert breakdown["similarity"] == pytest.approx(0.5625 * 20)
        assert total == pytest.approx(91.25)
        assert total >= rules.threshold

    def test_unrelated_pair_scores_below_threshold(self, rules):
        transaction = make_transaction(merchant_name="Unknown Shop")
        receipt = make_receipt("r-1", merchant_name="Other", receipt_date=date(2024, 3, 10), total="60.00")

        total, breakdown = rules.score(transaction, receipt)

        assert breakdown["date"] == 0.0
        assert breakdown["amount"] == 0.0
        assert total < 70

    def test_amount_alone_is_not_enough(self, rules):
        receipt = make_receipt("r-1", merchant_name="Zzz", receipt_date=date(2024, 4, 1))
        total, _ = rules.score(make_transaction(), receipt)
        assert total < 70

    def test_amount_and_date_without_name_reaches_threshold(self, rules):
        total, _ = rules.score(make_transaction(merchant_name=None), make_receipt("r-1"))
        assert total == 80.0

    def test_invoice_uses_net_amount(self):
        rules = rules_for(StatementType.BANK)
        invoice = Invoice(
            id="inv-1",
            folder_id="folder-1",
            vendor_name="Starbucks",
            invoice_date=date(2024, 3, 1),
            amount=Decimal("55.00"),
            net_amount=Decimal("50.00"),
        )
        _, breakdown = rules.score(make_transaction(), invoice)
        assert breakdown["amount"] == 50.0

    def test_invoice_falls_back_to_gross_amount(self):
        rules = rules_for(StatementType.BANK)
        invoice = Invoice(
            id="inv-1",
            folder_id="folder-1",
            vendor_name="Starbucks",
            invoice_date=date(2024, 3, 1),
            amount=Decimal("50.00"),
        )
        _, breakdown = rules.score(make_transaction(), invoice)
        assert breakdown["amount"] == 50.0


class TestFindMatches:
    """Best-candidate selection."""

    @pytest.fixture
    def rules(self):
        return StatementMatchingRules(statement_registry.get_config(StatementType.CARD))

    def test_picks_highest_score(self, rules):
        weak = make_receipt("r-weak", merchant_name="Costa", receipt_date=date(2024, 3, 5))
        strong = make_receipt("r-strong")

        result = rules.find_matches(make_transaction(), [weak, strong])

        assert result.matched is True
        assert result.best_match.document_id == "r-strong"
        assert [c.document_id for c in result.candidates] == ["r-strong", "r-weak"]

    def test_tie_keeps_first_seen(self, rules):
        first = make_receipt("r-first")
        second = make_receipt("r-second")

        result = rules.find_matches(make_transaction(), [first, second])

        assert result.best_match.document_id == "r-first"
        assert [c.document_id for c in result.candidates] == ["r-first", "r-second"]

    def test_below_threshold_not_matched(self, rules):
        receipt = make_receipt("r-1", merchant_name="Other", receipt_date=date(2024, 3, 10), total="60.00")

        result = rules.find_matches(make_transaction(merchant_name="Unknown Shop"), [receipt])

        assert result.matched is False
        assert result.best_match.document_id == "r-1"

    def test_no_candidates(self, rules):
        result = rules.find_matches(make_transaction(), [])

        assert result.matched is False
        assert result.best_match is None
        assert result.to_dict()["candidates_count"] == 0

    def test_to_dict(self, rules):
        data = rules.find_matches(make_transaction(), [make_receipt("r-1")]).to_dict()

        assert data["transaction_id"] == "txn-1"
        assert data["best_match"]["document_type"] == "receipt"
        assert data["best_match"]["scoring_breakdown"]["total"] == 91.25

    def test_unknown_statement_type(self):
        with pytest.raises(KeyError):
            rules_for("CASH")
