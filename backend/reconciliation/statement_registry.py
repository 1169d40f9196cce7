"""
Reconciliation Statement Registry

Central registry of the statement types a reconciliation folder can hold.
Each statement type has:
- The source document type that corroborates its lines
- Display name
- Matching policy (weights, tolerances, threshold)

Supported Statement Types:
- CARD: Card statements, corroborated by receipts
- BANK: Bank statements, corroborated by invoices
"""

from enum import Enum
from typing import Dict, Any, List, Optional
from dataclasses import dataclass


class StatementType(str, Enum):
    """
    Statement types a reconciliation folder can be configured with.
    """
    BANK = "BANK"
    CARD = "CARD"


class DocumentType(str, Enum):
    """
    Source documents a statement line can be linked to.
    """
    RECEIPT = "receipt"
    INVOICE = "invoice"


class TransactionStatus(str, Enum):
    """
    Reconciliation status of a statement line.
    """
    PENDING = "PENDING"         # Created from a statement, not yet reconciled
    MATCHED = "MATCHED"         # Linked to exactly one source document
    EXCEPTION = "EXCEPTION"     # No corroborating document found
    FEE = "FEE"                 # Bank-imposed fee, never matched or scored

    @property
    def is_eligible(self) -> bool:
        """Whether the line takes part in matching and in the compliance denominator."""
        return self not in EXCLUDED_STATUSES


EXCLUDED_STATUSES = frozenset({TransactionStatus.FEE})

# Category keywords that mark a statement line as a fee
FEE_CATEGORY_KEYWORDS = ("fee", "charge", "interest")


def classify_statement_line(category: Optional[str]) -> TransactionStatus:
    """Initial status for a statement line extracted from a statement."""
    if category:
        lowered = category.lower()
        if any(keyword in lowered for keyword in FEE_CATEGORY_KEYWORDS):
            return TransactionStatus.FEE
    return TransactionStatus.PENDING


@dataclass
class StatementConfig:
    """
    Matching policy for one statement type.
    """
    statement_type: StatementType
    document_type: DocumentType
    display_name: str
    date_weight: float
    amount_weight: float
    similarity_weight: float
    date_tolerance_days: int
    amount_tolerance_percent: float
    match_threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_type": self.statement_type.value,
            "document_type": self.document_type.value,
            "display_name": self.display_name,
            "weights": {
                "date": self.date_weight,
                "amount": self.amount_weight,
                "similarity": self.similarity_weight,
            },
            "date_tolerance_days": self.date_tolerance_days,
            "amount_tolerance_percent": self.amount_tolerance_percent,
            "match_threshold": self.match_threshold,
        }


class StatementRegistry:
    """
    Registry of matching policies, keyed by statement type.

    Amount agreement dominates the score, date proximity is secondary and
    name similarity only disambiguates.
    """

    _default_configs: Dict[StatementType, StatementConfig] = {
        StatementType.CARD: StatementConfig(
            statement_type=StatementType.CARD,
            document_type=DocumentType.RECEIPT,
            display_name="Card Statement",
            date_weight=30.0,
            amount_weight=50.0,
            similarity_weight=20.0,
            date_tolerance_days=1,
            amount_tolerance_percent=0.01,
            match_threshold=70.0,
        ),
        StatementType.BANK: StatementConfig(
            statement_type=StatementType.BANK,
            document_type=DocumentType.INVOICE,
            display_name="Bank Statement",
            date_weight=30.0,
            amount_weight=50.0,
            similarity_weight=20.0,
            date_tolerance_days=1,
            amount_tolerance_percent=0.01,
            match_threshold=70.0,
        ),
    }

    def __init__(self):
        self._configs = dict(self._default_configs)

    def get_config(self, statement_type: StatementType) -> Optional[StatementConfig]:
        """Get policy for a statement type."""
        return self._configs.get(statement_type)

    def get_all_configs(self) -> List[StatementConfig]:
        """Get all statement type policies."""
        return list(self._configs.values())


# Global registry instance
statement_registry = StatementRegistry()
