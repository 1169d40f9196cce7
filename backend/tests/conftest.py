"""
Shared fixtures for reconciliation tests.

`InMemoryReconciliationStore` keeps folders, transactions and documents in
dicts; insertion order stands in for statement and upload order.
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from reconciliation.locks import FolderLockRegistry
from reconciliation.models import Folder, Transaction, Receipt, Invoice
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.statement_registry import (
    DocumentType,
    StatementType,
    TransactionStatus,
)
from reconciliation.storage import ReconciliationStore


class InMemoryReconciliationStore(ReconciliationStore):
    """
    Dict-backed store.

    Set `fail_after_updates` to make the Nth+1 transaction write fail. Set
    `yield_control` to suspend at every call, the way a database round trip
    would; `calls` records (task name, method) for each call.
    """

    def __init__(self):
        self.folders: Dict[str, Folder] = {}
        self.transactions: Dict[str, Transaction] = {}
        self.receipts: Dict[str, Receipt] = {}
        self.invoices: Dict[str, Invoice] = {}
        self.transaction_updates: List[tuple] = []
        self.fail_after_updates: Optional[int] = None
        self.yield_control = False
        self.calls: List[tuple] = []

    async def _round_trip(self, method: str) -> None:
        self.calls.append((asyncio.current_task().get_name(), method))
        if self.yield_control:
            await asyncio.sleep(0)

    # ==================== SEEDING ====================

    def add_folder(self, statement_type: Optional[StatementType] = StatementType.CARD, **kwargs) -> Folder:
        folder = Folder(id=str(uuid.uuid4()), name="Statement folder", statement_type=statement_type, **kwargs)
        self.folders[folder.id] = folder
        return folder

    def add_transaction(
        self,
        folder: Folder,
        merchant_name: str,
        txn_date: date,
        value,
        status: TransactionStatus = TransactionStatus.PENDING,
        **kwargs
    ) -> Transaction:
        transaction = Transaction(
            id=str(uuid.uuid4()),
            folder_id=folder.id,
            merchant_name=merchant_name,
            date=txn_date,
            value=Decimal(str(value)),
            status=status,
            **kwargs
        )
        self.transactions[transaction.id] = transaction
        return transaction

    def add_receipt(self, folder: Folder, merchant_name: str, receipt_date: date, total, **kwargs) -> Receipt:
        receipt = Receipt(
            id=str(uuid.uuid4()),
            folder_id=folder.id,
            merchant_name=merchant_name,
            receipt_date=receipt_date,
            total=Decimal(str(total)),
            **kwargs
        )
        self.receipts[receipt.id] = receipt
        return receipt

    def add_invoice(self, folder: Folder, vendor_name: str, invoice_date: date, amount, **kwargs) -> Invoice:
        invoice = Invoice(
            id=str(uuid.uuid4()),
            folder_id=folder.id,
            vendor_name=vendor_name,
            invoice_date=invoice_date,
            amount=Decimal(str(amount)),
            **kwargs
        )
        self.invoices[invoice.id] = invoice
        return invoice

    # ==================== STORE INTERFACE ====================

    async def load_folder(self, folder_id: str) -> Optional[Folder]:
        await self._round_trip("load_folder")
        folder = self.folders.get(folder_id)
        return folder.model_copy() if folder else None

    async def load_transaction(self, transaction_id: str) -> Optional[Transaction]:
        await self._round_trip("load_transaction")
        transaction = self.transactions.get(transaction_id)
        return transaction.model_copy() if transaction else None

    async def load_transactions(
        self,
        folder_id: str,
        exclude_status: Optional[TransactionStatus] = TransactionStatus.FEE
    ) -> List[Transaction]:
        await self._round_trip("load_transactions")
        return [
            t.model_copy() for t in self.transactions.values()
            if t.folder_id == folder_id and (exclude_status is None or t.status != exclude_status)
        ]

    async def load_receipt(self, receipt_id: str) -> Optional[Receipt]:
        await self._round_trip("load_receipt")
        return self.receipts.get(receipt_id)

    async def load_invoice(self, invoice_id: str) -> Optional[Invoice]:
        await self._round_trip("load_invoice")
        return self.invoices.get(invoice_id)

    async def load_receipts(self, folder_id: str) -> List[Receipt]:
        await self._round_trip("load_receipts")
        return [r for r in self.receipts.values() if r.folder_id == folder_id]

    async def load_invoices(self, folder_id: str) -> List[Invoice]:
        await self._round_trip("load_invoices")
        return [i for i in self.invoices.values() if i.folder_id == folder_id]

    async def update_transaction(self, transaction_id: str, updates: Dict[str, Any]) -> None:
        await self._round_trip("update_transaction")
        if self.fail_after_updates is not None and len(self.transaction_updates) >= self.fail_after_updates:
            raise RuntimeError("database unavailable")
        self.transaction_updates.append((transaction_id, dict(updates)))
        self.transactions[transaction_id] = self.transactions[transaction_id].model_copy(update=updates)

    async def update_folder(self, folder_id: str, updates: Dict[str, Any]) -> None:
        await self._round_trip("update_folder")
        self.folders[folder_id] = self.folders[folder_id].model_copy(update=updates)

    async def count_transactions_by_status(self, folder_id: str) -> Dict[TransactionStatus, int]:
        await self._round_trip("count_transactions_by_status")
        counts: Dict[TransactionStatus, int] = {}
        for transaction in self.transactions.values():
            if transaction.folder_id == folder_id:
                counts[transaction.status] = counts.get(transaction.status, 0) + 1
        return counts

    async def sum_transaction_values(self, folder_id: str, status: TransactionStatus) -> Decimal:
        await self._round_trip("sum_transaction_values")
        return sum(
            (t.value for t in self.transactions.values() if t.folder_id == folder_id and t.status == status),
            Decimal("0")
        )

    async def count_documents(self, folder_id: str, document_type: DocumentType) -> int:
        await self._round_trip("count_documents")
        documents = self.receipts if document_type == DocumentType.RECEIPT else self.invoices
        return sum(1 for d in documents.values() if d.folder_id == folder_id)


@pytest.fixture
def store():
    return InMemoryReconciliationStore()


@pytest.fixture
def service(store):
    """Service with its own lock registry so tests never share locks."""
    return ReconciliationService(store, locks=FolderLockRegistry())


@pytest.fixture
def card_folder(store):
    return store.add_folder(StatementType.CARD)


@pytest.fixture
def bank_folder(store):
    return store.add_folder(StatementType.BANK)
