"""
Reconciliation Service

Core business logic for the reconciliation engine:
- Running a reconciliation pass over a folder
- Manual link / unlink overrides
- Compliance score recomputation
- Candidate previews and folder statistics
- Audit logging

Every operation that mutates a folder runs under that folder's lock, so a
pass and an override on the same folder never interleave.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Union

from reconciliation.candidate_pool import CandidatePool
from reconciliation.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from reconciliation.locks import FolderLockRegistry, folder_locks
from reconciliation.matching_rules.statement_rules import MatchResult, rules_for
from reconciliation.models import Folder, Transaction
from reconciliation.services.compliance import ComplianceScorer
from reconciliation.services.matching_engine import MatchDecision, MatchingEngine
from reconciliation.statement_registry import DocumentType, TransactionStatus
from reconciliation.storage import ReconciliationStore
from sentry_integration import capture_reconciliation_failure

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationRunResult:
    """Result of a reconciliation run."""
    run_id: str
    folder_id: str
    statement_type: str
    total_considered: int
    matched_count: int
    newly_matched: int
    exception_count: int
    compliance_score: int
    matches: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "folder_id": self.folder_id,
            "statement_type": self.statement_type,
            "total_considered": self.total_considered,
            "matched_count": self.matched_count,
            "newly_matched": self.newly_matched,
            "exception_count": self.exception_count,
            "compliance_score": self.compliance_score,
            "matches": self.matches,
        }


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    RUN_STARTED = "reconciliation.run_started"
    RUN_COMPLETED = "reconciliation.run_completed"
    RUN_FAILED = "reconciliation.run_failed"
    TRANSACTION_MATCHED = "reconciliation.transaction_matched"
    TRANSACTION_EXCEPTION = "reconciliation.transaction_exception"
    MANUAL_LINK = "reconciliation.manual_link"
    MANUAL_UNLINK = "reconciliation.manual_unlink"
    SCORE_UPDATED = "reconciliation.score_updated"


def log_reconciliation_event(
    event_type: str,
    folder_id: str,
    details: Dict[str, Any],
    transaction_id: Optional[str] = None,
    actor: str = "system"
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "folder_id": folder_id,
        "transaction_id": transaction_id,
        "details": details,
        "actor": actor,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"Reconciliation event: {event_type}", extra=log_entry)


def _link_updates(document_type: DocumentType, document_id: str) -> Dict[str, Any]:
    """Status and link fields for a MATCHED transaction; the other link is cleared."""
    return {
        "status": TransactionStatus.MATCHED,
        "receipt_id": document_id if document_type == DocumentType.RECEIPT else None,
        "invoice_id": document_id if document_type == DocumentType.INVOICE else None,
    }


_UNLINK_UPDATES = {
    "status": TransactionStatus.EXCEPTION,
    "receipt_id": None,
    "invoice_id": None,
}


def parse_document_type(document_type: Union[str, DocumentType]) -> DocumentType:
    """Parse a document type argument, rejecting anything but receipt/invoice."""
    try:
        return DocumentType(document_type)
    except ValueError:
        raise ValidationError(
            f"Invalid document type. Valid values: {[d.value for d in DocumentType]}",
            parameter="document_type"
        )


class ReconciliationService:
    """
    Entry point for reconciliation and manual overrides.

    Primary use case: after a batch of receipts or invoices is uploaded,
    link each statement line of the folder to its source document and
    refresh the folder's compliance score.
    """

    def __init__(
        self,
        store: ReconciliationStore,
        locks: Optional[FolderLockRegistry] = None,
        auto_reconcile: bool = True
    ):
        self.store = store
        self.locks = locks or folder_locks
        self.auto_reconcile = auto_reconcile
        self.compliance = ComplianceScorer(store)

    # ==================== RECONCILIATION ====================

    async def reconcile(self, folder_id: str) -> ReconciliationRunResult:
        """
        Run a reconciliation pass for a folder.

        Safe to repeat: existing matches are kept and only unmatched
        transactions are evaluated against the documents still free.

        Raises:
            NotFoundError: folder does not exist
            InvalidStateError: folder has no statement type
        """
        async with self.locks.lock_for(folder_id):
            return await self._reconcile_locked(folder_id)

    async def _reconcile_locked(self, folder_id: str) -> ReconciliationRunResult:
        folder = await self._get_reconciliation_folder(folder_id)
        rules = rules_for(folder.statement_type)
        document_type = rules.config.document_type
        run_id = str(uuid.uuid4())

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_STARTED,
            folder_id,
            {
                "run_id": run_id,
                "statement_type": folder.statement_type.value,
                "document_type": document_type.value
            }
        )

        transactions = await self.store.load_transactions(folder_id)
        documents = await self.store.load_documents(folder_id, document_type)

        # The pool lives for this pass only
        pool = CandidatePool.build(document_type, documents, transactions)
        engine = MatchingEngine(rules)

        matched_count = 0
        newly_matched = 0
        exception_count = 0
        matches = []

        try:
            for decision in engine.run(transactions, pool):
                await self._apply_decision(decision, document_type)

                if decision.matched:
                    matched_count += 1
                    if not decision.retained:
                        newly_matched += 1
                        matches.append({
                            "transaction_id": decision.transaction.id,
                            "document_id": decision.document.id,
                            "document_type": document_type.value,
                            "score": round(decision.score, 4),
                            "scoring_breakdown": decision.scoring_breakdown
                        })
                else:
                    exception_count += 1
        except Exception as e:
            logger.error(f"Reconciliation run {run_id} failed for folder {folder_id}: {e}")
            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_FAILED,
                folder_id,
                {
                    "run_id": run_id,
                    "matched_so_far": matched_count,
                    "error": str(e)
                }
            )
            raise

        compliance_score = await self.compliance.score(folder_id)

        log_reconciliation_event(
            ReconciliationAuditEvent.RUN_COMPLETED,
            folder_id,
            {
                "run_id": run_id,
                "total": len(transactions),
                "matched": matched_count,
                "newly_matched": newly_matched,
                "exceptions": exception_count,
                "compliance_score": compliance_score
            }
        )

        return ReconciliationRunResult(
            run_id=run_id,
            folder_id=folder_id,
            statement_type=folder.statement_type.value,
            total_considered=len(transactions),
            matched_count=matched_count,
            newly_matched=newly_matched,
            exception_count=exception_count,
            compliance_score=compliance_score,
            matches=matches
        )

    async def _apply_decision(self, decision: MatchDecision, document_type: DocumentType) -> None:
        """Persist one engine decision; unchanged transactions are not written."""
        if not decision.changed:
            return

        transaction = decision.transaction
        if decision.matched:
            await self.store.update_transaction(
                transaction.id,
                _link_updates(document_type, decision.document.id)
            )
            log_reconciliation_event(
                ReconciliationAuditEvent.TRANSACTION_MATCHED,
                transaction.folder_id,
                {
                    "document_id": decision.document.id,
                    "document_type": document_type.value,
                    "score": round(decision.score, 4),
                    "scoring_breakdown": decision.scoring_breakdown
                },
                transaction_id=transaction.id
            )
        else:
            await self.store.update_transaction(transaction.id, dict(_UNLINK_UPDATES))
            log_reconciliation_event(
                ReconciliationAuditEvent.TRANSACTION_EXCEPTION,
                transaction.folder_id,
                {"best_score": round(decision.score, 4)},
                transaction_id=transaction.id
            )

    async def after_upload(self, folder_id: str) -> Optional[ReconciliationRunResult]:
        """
        Reconcile after a batch of documents was uploaded.

        A failed pass is logged and reported as None so the upload that
        triggered it still succeeds; call `reconcile` directly to get errors.
        """
        if not self.auto_reconcile:
            return None

        try:
            return await self.reconcile(folder_id)
        except Exception as e:
            logger.exception(f"Automatic reconciliation failed for folder {folder_id}")
            capture_reconciliation_failure(e, folder_id, trigger="upload")
            return None

    # ==================== MANUAL OVERRIDE ====================

    async def link(
        self,
        transaction_id: str,
        document_id: str,
        document_type: Union[str, DocumentType],
        actor: str = "system"
    ) -> Dict[str, Any]:
        """
        Force-link a transaction to a receipt or invoice.

        The transaction becomes MATCHED regardless of score, then the
        folder's compliance score is recomputed.

        Raises:
            ValidationError: document_type is not receipt/invoice
            NotFoundError: transaction or document does not exist
            InvalidStateError: document belongs to another folder or is
                already linked to another transaction
        """
        doc_type = parse_document_type(document_type)
        transaction = await self._get_transaction(transaction_id)

        async with self.locks.lock_for(transaction.folder_id):
            transaction = await self._get_transaction(transaction_id)

            document = await self.store.load_document(document_id, doc_type)
            if document is None:
                raise NotFoundError(f"{doc_type.value.capitalize()} {document_id} not found")

            if document.folder_id != transaction.folder_id:
                raise InvalidStateError(
                    f"{doc_type.value.capitalize()} {document_id} belongs to a different folder"
                )

            holder = await self._find_holder(transaction.folder_id, document_id, doc_type)
            if holder is not None and holder.id != transaction.id:
                raise InvalidStateError(
                    f"{doc_type.value.capitalize()} {document_id} is already linked "
                    f"to transaction {holder.id}"
                )

            await self.store.update_transaction(transaction.id, _link_updates(doc_type, document_id))
            compliance_score = await self.compliance.score(transaction.folder_id)

        log_reconciliation_event(
            ReconciliationAuditEvent.MANUAL_LINK,
            transaction.folder_id,
            {
                "document_id": document_id,
                "document_type": doc_type.value,
                "previous_status": transaction.status.value,
                "compliance_score": compliance_score
            },
            transaction_id=transaction.id,
            actor=actor
        )

        return {
            "transaction_id": transaction.id,
            "folder_id": transaction.folder_id,
            "document_id": document_id,
            "document_type": doc_type.value,
            "status": TransactionStatus.MATCHED.value,
            "compliance_score": compliance_score
        }

    async def unlink(self, transaction_id: str, actor: str = "system") -> Dict[str, Any]:
        """
        Clear a transaction's links and mark it EXCEPTION.

        The released document is available to the next reconciliation pass.

        Raises:
            NotFoundError: transaction does not exist
        """
        transaction = await self._get_transaction(transaction_id)

        async with self.locks.lock_for(transaction.folder_id):
            transaction = await self._get_transaction(transaction_id)

            await self.store.update_transaction(transaction.id, dict(_UNLINK_UPDATES))
            compliance_score = await self.compliance.score(transaction.folder_id)

        log_reconciliation_event(
            ReconciliationAuditEvent.MANUAL_UNLINK,
            transaction.folder_id,
            {
                "released_receipt_id": transaction.receipt_id,
                "released_invoice_id": transaction.invoice_id,
                "previous_status": transaction.status.value,
                "compliance_score": compliance_score
            },
            transaction_id=transaction.id,
            actor=actor
        )

        return {
            "transaction_id": transaction.id,
            "folder_id": transaction.folder_id,
            "released_document_id": transaction.linked_document_id,
            "status": TransactionStatus.EXCEPTION.value,
            "compliance_score": compliance_score
        }

    async def recompute_score(self, folder_id: str) -> int:
        """Recompute and persist a folder's compliance score."""
        async with self.locks.lock_for(folder_id):
            folder = await self.store.load_folder(folder_id)
            if folder is None:
                raise NotFoundError(f"Folder {folder_id} not found")

            compliance_score = await self.compliance.score(folder_id)

        log_reconciliation_event(
            ReconciliationAuditEvent.SCORE_UPDATED,
            folder_id,
            {"compliance_score": compliance_score}
        )
        return compliance_score

    # ==================== READ-ONLY ====================

    async def find_candidates(self, transaction_id: str) -> MatchResult:
        """
        Score every document the engine could assign to a transaction.

        Nothing is written; eligibility follows the engine's rules.
        """
        transaction = await self._get_transaction(transaction_id)
        folder = await self._get_reconciliation_folder(transaction.folder_id)

        rules = rules_for(folder.statement_type)
        document_type = rules.config.document_type

        transactions = await self.store.load_transactions(folder.id, exclude_status=None)
        documents = await self.store.load_documents(folder.id, document_type)
        pool = CandidatePool.build(document_type, documents, transactions)

        return rules.find_matches(transaction, pool.available_for(transaction))

    async def get_stats(self, folder_id: str) -> Dict[str, Any]:
        """
        Get reconciliation statistics for a folder.

        Returns counts by status, fee total, document counts and the
        stored compliance score.
        """
        folder = await self.store.load_folder(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found")

        counts = await self.store.count_transactions_by_status(folder_id)
        fee_total = await self.store.sum_transaction_values(folder_id, TransactionStatus.FEE)
        receipts_count = await self.store.count_documents(folder_id, DocumentType.RECEIPT)
        invoices_count = await self.store.count_documents(folder_id, DocumentType.INVOICE)

        return {
            "folder_id": folder_id,
            "total_transactions": sum(counts.values()),
            "matched_transactions": counts.get(TransactionStatus.MATCHED, 0),
            "exception_transactions": counts.get(TransactionStatus.EXCEPTION, 0),
            "fee_transactions": counts.get(TransactionStatus.FEE, 0),
            "pending_transactions": counts.get(TransactionStatus.PENDING, 0),
            "fee_total": float(fee_total),
            "receipts_count": receipts_count,
            "invoices_count": invoices_count,
            "compliance_score": folder.compliance_score,
            "statement_type": folder.statement_type.value if folder.statement_type else None
        }

    # ==================== HELPERS ====================

    async def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = await self.store.load_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def _get_reconciliation_folder(self, folder_id: str) -> Folder:
        folder = await self.store.load_folder(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found")
        if folder.statement_type is None:
            raise InvalidStateError(f"Folder {folder_id} is not a reconciliation folder")
        return folder

    async def _find_holder(
        self,
        folder_id: str,
        document_id: str,
        document_type: DocumentType
    ) -> Optional[Transaction]:
        transactions = await self.store.load_transactions(folder_id, exclude_status=None)
        for transaction in transactions:
            if transaction.linked_to(document_type) == document_id:
                return transaction
        return None
