"""
Reconciliation Storage Layer

The engine reads and writes through `ReconciliationStore`:
- load_folder / load_transaction / load_receipt / load_invoice
- load_transactions (statement order, FEE excluded by default)
- load_receipts / load_invoices (upload order)
- update_transaction / update_folder
- count and sum helpers for scoring and statistics

`SQLAlchemyReconciliationStore` commits every write on its own, so a
failure halfway through a pass keeps the updates already made.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.reconciliation_models import FolderDB, TransactionDB, ReceiptDB, InvoiceDB
from reconciliation.models import Folder, Transaction, Receipt, Invoice
from reconciliation.statement_registry import DocumentType, TransactionStatus

logger = logging.getLogger(__name__)


TRANSACTION_UPDATE_FIELDS = frozenset({"status", "receipt_id", "invoice_id"})
FOLDER_UPDATE_FIELDS = frozenset({"compliance_score"})


class ReconciliationStore(ABC):
    """Persistence operations the reconciliation engine depends on."""

    @abstractmethod
    async def load_folder(self, folder_id: str) -> Optional[Folder]:
        ...

    @abstractmethod
    async def load_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def load_transactions(
        self,
        folder_id: str,
        exclude_status: Optional[TransactionStatus] = TransactionStatus.FEE
    ) -> List[Transaction]:
        ...

    @abstractmethod
    async def load_receipt(self, receipt_id: str) -> Optional[Receipt]:
        ...

    @abstractmethod
    async def load_invoice(self, invoice_id: str) -> Optional[Invoice]:
        ...

    @abstractmethod
    async def load_receipts(self, folder_id: str) -> List[Receipt]:
        ...

    @abstractmethod
    async def load_invoices(self, folder_id: str) -> List[Invoice]:
        ...

    @abstractmethod
    async def update_transaction(self, transaction_id: str, updates: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def update_folder(self, folder_id: str, updates: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def count_transactions_by_status(self, folder_id: str) -> Dict[TransactionStatus, int]:
        ...

    @abstractmethod
    async def sum_transaction_values(self, folder_id: str, status: TransactionStatus) -> Decimal:
        ...

    @abstractmethod
    async def count_documents(self, folder_id: str, document_type: DocumentType) -> int:
        ...

    async def load_document(self, document_id: str, document_type: DocumentType):
        if document_type == DocumentType.RECEIPT:
            return await self.load_receipt(document_id)
        return await self.load_invoice(document_id)

    async def load_documents(self, folder_id: str, document_type: DocumentType):
        if document_type == DocumentType.RECEIPT:
            return await self.load_receipts(folder_id)
        return await self.load_invoices(folder_id)


# ==================== CONVERSION HELPERS ====================

def db_to_folder(db_obj: FolderDB) -> Folder:
    """Convert database model to domain model"""
    return Folder(
        id=db_obj.id,
        name=db_obj.name,
        statement_type=db_obj.statement_type,
        compliance_score=db_obj.compliance_score or 0.0,
        status=db_obj.status,
    )


def db_to_transaction(db_obj: TransactionDB) -> Transaction:
    """Convert database model to domain model"""
    return Transaction(
        id=db_obj.id,
        folder_id=db_obj.folder_id,
        merchant_name=db_obj.merchant_name,
        date=db_obj.date,
        value=db_obj.value,
        category=db_obj.category,
        status=db_obj.status or TransactionStatus.PENDING,
        flagged=db_obj.flagged or False,
        receipt_id=db_obj.receipt_id,
        invoice_id=db_obj.invoice_id,
        notes=db_obj.notes,
    )


def db_to_receipt(db_obj: ReceiptDB) -> Receipt:
    """Convert database model to domain model"""
    return Receipt(
        id=db_obj.id,
        folder_id=db_obj.folder_id,
        merchant_name=db_obj.merchant_name,
        total=db_obj.total,
        tax_paid=db_obj.tax_paid,
        receipt_date=db_obj.receipt_date,
        receipt_number=db_obj.receipt_number,
        uploaded_by=db_obj.uploaded_by,
    )


def db_to_invoice(db_obj: InvoiceDB) -> Invoice:
    """Convert database model to domain model"""
    return Invoice(
        id=db_obj.id,
        folder_id=db_obj.folder_id,
        vendor_name=db_obj.vendor_name,
        amount=db_obj.amount,
        tax=db_obj.tax,
        net_amount=db_obj.net_amount,
        invoice_date=db_obj.invoice_date,
        due_date=db_obj.due_date,
        invoice_number=db_obj.invoice_number,
        uploaded_by=db_obj.uploaded_by,
    )


def _check_fields(updates: Dict[str, Any], allowed: frozenset, entity: str) -> None:
    unknown = set(updates) - allowed
    if unknown:
        raise ValueError(f"Cannot update {entity} fields: {sorted(unknown)}")


# ==================== SQLALCHEMY STORE ====================

class SQLAlchemyReconciliationStore(ReconciliationStore):
    """
    PostgreSQL-backed store using SQLAlchemy async sessions.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_folder(self, folder_id: str) -> Optional[Folder]:
        result = await self.db.execute(select(FolderDB).where(FolderDB.id == folder_id))
        db_obj = result.scalar_one_or_none()
        return db_to_folder(db_obj) if db_obj else None

    async def load_transaction(self, transaction_id: str) -> Optional[Transaction]:
        result = await self.db.execute(select(TransactionDB).where(TransactionDB.id == transaction_id))
        db_obj = result.scalar_one_or_none()
        return db_to_transaction(db_obj) if db_obj else None

    async def load_transactions(
        self,
        folder_id: str,
        exclude_status: Optional[TransactionStatus] = TransactionStatus.FEE
    ) -> List[Transaction]:
        query = select(TransactionDB).where(TransactionDB.folder_id == folder_id)
        if exclude_status is not None:
            query = query.where(TransactionDB.status != exclude_status)
        query = query.order_by(TransactionDB.seq, TransactionDB.created_at, TransactionDB.id)

        result = await self.db.execute(query)
        return [db_to_transaction(row) for row in result.scalars().all()]

    async def load_receipt(self, receipt_id: str) -> Optional[Receipt]:
        result = await self.db.execute(select(ReceiptDB).where(ReceiptDB.id == receipt_id))
        db_obj = result.scalar_one_or_none()
        return db_to_receipt(db_obj) if db_obj else None

    async def load_invoice(self, invoice_id: str) -> Optional[Invoice]:
        result = await self.db.execute(select(InvoiceDB).where(InvoiceDB.id == invoice_id))
        db_obj = result.scalar_one_or_none()
        return db_to_invoice(db_obj) if db_obj else None

    async def load_receipts(self, folder_id: str) -> List[Receipt]:
        result = await self.db.execute(
            select(ReceiptDB)
            .where(ReceiptDB.folder_id == folder_id)
            .order_by(ReceiptDB.created_at, ReceiptDB.id)
        )
        return [db_to_receipt(row) for row in result.scalars().all()]

    async def load_invoices(self, folder_id: str) -> List[Invoice]:
        result = await self.db.execute(
            select(InvoiceDB)
            .where(InvoiceDB.folder_id == folder_id)
            .order_by(InvoiceDB.created_at, InvoiceDB.id)
        )
        return [db_to_invoice(row) for row in result.scalars().all()]

    async def update_transaction(self, transaction_id: str, updates: Dict[str, Any]) -> None:
        _check_fields(updates, TRANSACTION_UPDATE_FIELDS, "transaction")
        try:
            await self.db.execute(
                update(TransactionDB)
                .where(TransactionDB.id == transaction_id)
                .values(**updates)
            )
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to update transaction {transaction_id}: {e}")
            await self.db.rollback()
            raise

    async def update_folder(self, folder_id: str, updates: Dict[str, Any]) -> None:
        _check_fields(updates, FOLDER_UPDATE_FIELDS, "folder")
        try:
            await self.db.execute(
                update(FolderDB)
                .where(FolderDB.id == folder_id)
                .values(**updates)
            )
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to update folder {folder_id}: {e}")
            await self.db.rollback()
            raise

    async def count_transactions_by_status(self, folder_id: str) -> Dict[TransactionStatus, int]:
        result = await self.db.execute(
            select(TransactionDB.status, func.count(TransactionDB.id))
            .where(TransactionDB.folder_id == folder_id)
            .group_by(TransactionDB.status)
        )
        return {TransactionStatus(status): count for status, count in result.all()}

    async def sum_transaction_values(self, folder_id: str, status: TransactionStatus) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(TransactionDB.value), 0))
            .where(TransactionDB.folder_id == folder_id)
            .where(TransactionDB.status == status)
        )
        return Decimal(str(result.scalar() or 0))

    async def count_documents(self, folder_id: str, document_type: DocumentType) -> int:
        model = ReceiptDB if document_type == DocumentType.RECEIPT else InvoiceDB
        result = await self.db.execute(
            select(func.count(model.id)).where(model.folder_id == folder_id)
        )
        return result.scalar() or 0
