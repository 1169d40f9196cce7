"""
Reconciliation Domain Models

Storage-independent views of the records the engine works on:
- Folder: the reconciliation unit (one statement type, one score)
- Transaction: one statement line
- Receipt / Invoice: source documents for CARD / BANK statements

Receipts and invoices expose a common candidate surface
(`business_name`, `match_amount`, `document_date`) so the scorer can
treat them alike.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel

from reconciliation.statement_registry import (
    DocumentType,
    StatementType,
    TransactionStatus,
)


DateLike = Union[date, datetime]


class Folder(BaseModel):
    """Reconciliation folder"""
    id: str
    name: Optional[str] = None
    statement_type: Optional[StatementType] = None
    compliance_score: float = 0.0
    status: Optional[str] = None


class Transaction(BaseModel):
    """Statement line"""
    id: str
    folder_id: str
    merchant_name: Optional[str] = None
    date: Optional[DateLike] = None
    value: Optional[Decimal] = None
    category: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    flagged: bool = False
    receipt_id: Optional[str] = None
    invoice_id: Optional[str] = None
    notes: Optional[str] = None

    @property
    def linked_document_id(self) -> Optional[str]:
        return self.receipt_id or self.invoice_id

    def linked_to(self, document_type: DocumentType) -> Optional[str]:
        if document_type == DocumentType.RECEIPT:
            return self.receipt_id
        return self.invoice_id


class Receipt(BaseModel):
    """Receipt backing a card statement line"""
    id: str
    folder_id: str
    merchant_name: Optional[str] = None
    total: Optional[Decimal] = None
    tax_paid: Optional[Decimal] = None
    receipt_date: Optional[DateLike] = None
    receipt_number: Optional[str] = None
    uploaded_by: Optional[str] = None

    document_type: DocumentType = DocumentType.RECEIPT

    @property
    def business_name(self) -> Optional[str]:
        return self.merchant_name

    @property
    def match_amount(self) -> Optional[Decimal]:
        return self.total

    @property
    def document_date(self) -> Optional[DateLike]:
        return self.receipt_date


class Invoice(BaseModel):
    """Invoice backing a bank statement line"""
    id: str
    folder_id: str
    vendor_name: Optional[str] = None
    amount: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    invoice_date: Optional[DateLike] = None
    due_date: Optional[DateLike] = None
    invoice_number: Optional[str] = None
    uploaded_by: Optional[str] = None

    document_type: DocumentType = DocumentType.INVOICE

    @property
    def business_name(self) -> Optional[str]:
        return self.vendor_name

    @property
    def match_amount(self) -> Optional[Decimal]:
        # Falls back to the gross amount when no net amount was extracted
        return self.net_amount or self.amount

    @property
    def document_date(self) -> Optional[DateLike]:
        return self.invoice_date


SourceDocument = Union[Receipt, Invoice]
