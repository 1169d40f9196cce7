"""
Reconciliation Engine Module

Links statement lines to corroborating source documents:
- CARD statements matched against receipts
- BANK statements matched against invoices
- Fuzzy scoring over date, amount and merchant name
- Greedy single-pass assignment, one document per transaction
- Folder compliance score from the match ratio
- Manual link / unlink overrides

The service, storage and HTTP router are imported from their own modules
(`reconciliation.services.reconciliation_service`, `reconciliation.storage`,
`reconciliation.endpoints.reconciliation_api`) since they depend on the
database layer.
"""

from reconciliation.statement_registry import (
    StatementType,
    DocumentType,
    TransactionStatus,
    StatementConfig,
    StatementRegistry,
    statement_registry,
    classify_statement_line,
)
from reconciliation.errors import (
    ReconciliationError,
    NotFoundError,
    InvalidStateError,
    ValidationError,
)
from reconciliation.models import Folder, Transaction, Receipt, Invoice
from reconciliation.matching_rules import (
    similarity,
    dates_within_tolerance,
    amounts_match,
    StatementMatchingRules,
    MatchCandidate,
    MatchResult,
    rules_for,
)
from reconciliation.candidate_pool import CandidatePool

__all__ = [
    # Statement Registry
    'StatementType',
    'DocumentType',
    'TransactionStatus',
    'StatementConfig',
    'StatementRegistry',
    'statement_registry',
    'classify_statement_line',
    # Errors
    'ReconciliationError',
    'NotFoundError',
    'InvalidStateError',
    'ValidationError',
    # Models
    'Folder',
    'Transaction',
    'Receipt',
    'Invoice',
    # Matching Rules
    'similarity',
    'dates_within_tolerance',
    'amounts_match',
    'StatementMatchingRules',
    'MatchCandidate',
    'MatchResult',
    'rules_for',
    # Candidate Pool
    'CandidatePool',
]
