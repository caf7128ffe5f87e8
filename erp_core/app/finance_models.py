"""
General ledger models: chart of accounts, journal entries and payments.

Amounts are stored as floats rounded to two decimals by the finance service.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Float,
    Enum as SQLEnum, CheckConstraint, event
)
from sqlalchemy.orm import relationship

from .db import Base
from .errors import InvalidOperationError


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class JournalStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Accounts every installation needs; seeded at startup.
CASH_ACCOUNT = "1000"
AR_ACCOUNT = "1100"
SALES_REVENUE_ACCOUNT = "4000"

SYSTEM_ACCOUNTS = [
    (CASH_ACCOUNT, "Cash", AccountType.ASSET),
    (AR_ACCOUNT, "Accounts Receivable", AccountType.ASSET),
    (SALES_REVENUE_ACCOUNT, "Sales Revenue", AccountType.REVENUE),
]


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(SQLEnum(AccountType), nullable=False)
    balance = Column(Float, nullable=False, default=0)
    is_system_account = Column(Boolean, default=False, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lines = relationship("JournalLine", back_populates="account")

    @property
    def debit_normal(self) -> bool:
        return self.type in (AccountType.ASSET, AccountType.EXPENSE)


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True)
    entry_no = Column(String(40), unique=True, nullable=False, index=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    description = Column(Text, nullable=False)
    # Business document the entry belongs to, e.g. an order number
    reference = Column(String, nullable=True, index=True)
    status = Column(SQLEnum(JournalStatus), default=JournalStatus.DRAFT, nullable=False)
    posted_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lines = relationship("JournalLine", back_populates="entry", cascade="all, delete-orphan",
                         order_by="JournalLine.id")

    @property
    def total_debit(self) -> float:
        return round(sum(line.debit for line in self.lines), 2)

    @property
    def total_credit(self) -> float:
        return round(sum(line.credit for line in self.lines), 2)


class JournalLine(Base):
    __tablename__ = "journal_lines"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    debit = Column(Float, nullable=False, default=0)
    credit = Column(Float, nullable=False, default=0)

    entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("Account", back_populates="lines")

    __table_args__ = (
        CheckConstraint('debit >= 0 AND credit >= 0', name='ck_journal_line_non_negative'),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    method = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.APPROVED, nullable=False)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    paid_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    order = relationship("Order", back_populates="payments")


@event.listens_for(JournalEntry, "before_delete")
def _reject_posted_entry_delete(mapper, connection, target):
    if target.status == JournalStatus.POSTED:
        raise InvalidOperationError(f"Journal entry {target.entry_no} is posted and cannot be deleted")
