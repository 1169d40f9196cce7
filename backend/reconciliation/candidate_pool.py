"""
Candidate Pool

The documents one reconciliation pass may still assign. A pool belongs to a
single pass: it is built from the folder's documents and current links,
shrinks as the matching engine consumes documents, and is discarded when
the pass ends.
"""

from typing import Dict, Iterable, Iterator, List

from reconciliation.models import SourceDocument, Transaction
from reconciliation.statement_registry import DocumentType


class CandidatePool:
    """
    Ordered documents plus an owner map (document id -> transaction id).

    Iteration order is the order documents were supplied in, which makes
    first-seen tie breaking deterministic.
    """

    def __init__(self, document_type: DocumentType, documents: Iterable[SourceDocument]):
        self.document_type = document_type
        self._documents: List[SourceDocument] = list(documents)
        self._owners: Dict[str, str] = {}

    @classmethod
    def build(
        cls,
        document_type: DocumentType,
        documents: Iterable[SourceDocument],
        transactions: Iterable[Transaction]
    ) -> "CandidatePool":
        """Build a pool, marking documents already linked to a transaction as owned."""
        pool = cls(document_type, documents)
        for transaction in transactions:
            document_id = transaction.linked_to(document_type)
            if document_id:
                pool._owners[document_id] = transaction.id
        return pool

    def is_available_to(self, document_id: str, transaction_id: str) -> bool:
        """A document is available unless a different transaction owns it."""
        owner = self._owners.get(document_id)
        return owner is None or owner == transaction_id

    def available_for(self, transaction: Transaction) -> Iterator[SourceDocument]:
        for document in self._documents:
            if self.is_available_to(document.id, transaction.id):
                yield document

    def consume(self, document_id: str, transaction_id: str) -> None:
        owner = self._owners.get(document_id)
        if owner is not None and owner != transaction_id:
            raise ValueError(
                f"Document {document_id} already consumed by transaction {owner}"
            )
        self._owners[document_id] = transaction_id

    def release(self, document_id: str, transaction_id: str) -> None:
        """Return a document to the pool if `transaction_id` holds it."""
        if self._owners.get(document_id) == transaction_id:
            del self._owners[document_id]
