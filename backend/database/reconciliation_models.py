"""
Reconciliation Database Models

Tables:
- folders: Reconciliation units (statement type + compliance score)
- transactions: Statement lines extracted from bank/card statements
- receipts: Source documents for CARD statements
- invoices: Source documents for BANK statements

A transaction links to at most one receipt or one invoice, never both.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Float, Boolean, DateTime, Integer,
    ForeignKey, Index, CheckConstraint, Enum as SQLEnum, JSON, Numeric
)
from sqlalchemy.orm import relationship

from database.connection import Base
from reconciliation.statement_registry import StatementType, TransactionStatus


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FolderDB(Base):
    """
    Reconciliation folder.

    compliance_score is the rounded percentage of MATCHED over non-FEE
    transactions at the last scoring; it is not refreshed between runs.
    """
    __tablename__ = "folders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), nullable=True, index=True)
    name = Column(String(200), nullable=False)

    statement_type = Column(
        SQLEnum(StatementType, name='statement_type_enum'),
        nullable=True
    )
    compliance_score = Column(Float, nullable=False, default=0)

    # Workflow status (TO_DO, IN_PROGRESS, IN_REVIEW, CLOSED), unrelated to matching
    status = Column(String(20), nullable=False, default="TO_DO", index=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    transactions = relationship("TransactionDB", back_populates="folder", cascade="all, delete-orphan")
    receipts = relationship("ReceiptDB", back_populates="folder", cascade="all, delete-orphan")
    invoices = relationship("InvoiceDB", back_populates="folder", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('compliance_score >= 0 AND compliance_score <= 100', name='ck_folders_compliance_score'),
    )


class TransactionDB(Base):
    """
    Statement line.

    `seq` preserves statement order; the matching engine walks transactions
    in that order.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    seq = Column(Integer, nullable=False, default=0)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)

    merchant_name = Column(Text, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    category = Column(String(100), nullable=True)

    status = Column(
        SQLEnum(TransactionStatus, name='transaction_status_enum'),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True
    )
    flagged = Column(Boolean, default=False)

    receipt_id = Column(String(36), ForeignKey("receipts.id", ondelete="SET NULL"), nullable=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    folder = relationship("FolderDB", back_populates="transactions")

    __table_args__ = (
        Index('ix_transactions_folder_status', 'folder_id', 'status'),
        Index('ix_transactions_folder_seq', 'folder_id', 'seq'),
        CheckConstraint('receipt_id IS NULL OR invoice_id IS NULL', name='ck_transactions_single_link'),
    )


class ReceiptDB(Base):
    """Receipt extracted by OCR, corroborates CARD statement lines."""
    __tablename__ = "receipts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)

    receipt_number = Column(String(100), nullable=True)
    merchant_name = Column(Text, nullable=False)
    tax_paid = Column(Numeric(12, 2), nullable=True)
    total = Column(Numeric(12, 2), nullable=False)
    receipt_date = Column(DateTime(timezone=True), nullable=True)

    image_url = Column(Text, nullable=True)
    uploaded_by = Column(String(36), nullable=True)
    ocr_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    folder = relationship("FolderDB", back_populates="receipts")


class InvoiceDB(Base):
    """Invoice extracted by OCR, corroborates BANK statement lines."""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)

    invoice_number = Column(String(100), nullable=True)
    invoice_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    vendor_name = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=True)
    net_amount = Column(Numeric(12, 2), nullable=True)

    image_url = Column(Text, nullable=True)
    uploaded_by = Column(String(36), nullable=True)
    ocr_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    folder = relationship("FolderDB", back_populates="invoices")
