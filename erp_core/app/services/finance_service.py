"""
General Ledger Service
======================
- Chart of accounts and system account seeding
- Double-entry journal entries (draft -> posted)
- Account ledgers and the trial balance (with spreadsheet export)
- Accounts-receivable reconciliation against sales orders
"""

from collections import defaultdict
from datetime import datetime
from io import BytesIO
from typing import Optional, List

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFoundError, InvalidOperationError, DuplicateError
from ..finance_models import (
    Account, AccountType, JournalEntry, JournalLine, JournalStatus, Payment, PaymentStatus,
    SYSTEM_ACCOUNTS, AR_ACCOUNT, SALES_REVENUE_ACCOUNT,
)
from ..logging_config import get_logger
from ..models import Order
from .numbering import generate_entry_no

log = get_logger(__name__)

# Differences below one cent are rounding noise
TOLERANCE = 0.01


def money(value: float) -> float:
    return round(float(value or 0), 2)


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountService:

    @staticmethod
    def ensure_system_accounts(db: Session) -> int:
        """Create missing system accounts. Returns how many were added."""
        existing = {code for (code,) in db.query(Account.code)}
        added = 0
        for code, name, account_type in SYSTEM_ACCOUNTS:
            if code not in existing:
                db.add(Account(code=code, name=name, type=account_type, is_system_account=True))
                added += 1
        if added:
            db.flush()
            log.info("system_accounts_seeded", count=added)
        return added

    @staticmethod
    def list_accounts(db: Session) -> List[Account]:
        return db.query(Account).order_by(Account.code).all()

    @staticmethod
    def get_account(db: Session, account_id: int) -> Account:
        account = db.query(Account).filter(Account.id == account_id).first()
        if not account:
            raise NotFoundError("Account not found")
        return account

    @staticmethod
    def get_by_code(db: Session, code: str) -> Account:
        account = db.query(Account).filter(Account.code == code).first()
        if not account:
            raise NotFoundError(f"Account {code} not found")
        return account

    @staticmethod
    def create_account(
        db: Session,
        code: str,
        name: str,
        type: str,
        description: Optional[str] = None,
    ) -> Account:
        try:
            account_type = AccountType(type)
        except ValueError:
            raise InvalidOperationError(
                f"Invalid account type '{type}'. Use one of: {', '.join(t.value for t in AccountType)}"
            )
        if db.query(Account.id).filter(Account.code == code).first():
            raise DuplicateError(f"Account code {code} already exists")

        account = Account(code=code, name=name, type=account_type, description=description)
        db.add(account)
        db.flush()
        return account

    @staticmethod
    def ledger(db: Session, account_id: int) -> dict:
        """Posted lines of one account in date order with a running balance."""
        account = AccountService.get_account(db, account_id)
        rows = db.query(JournalLine, JournalEntry).join(
            JournalEntry, JournalLine.entry_id == JournalEntry.id
        ).filter(
            JournalLine.account_id == account.id,
            JournalEntry.status == JournalStatus.POSTED,
        ).order_by(JournalEntry.date.asc(), JournalEntry.id.asc(), JournalLine.id.asc()).all()

        running = 0.0
        lines = []
        for line, entry in rows:
            change = line.debit - line.credit if account.debit_normal else line.credit - line.debit
            running = money(running + change)
            lines.append({
                "date": entry.date,
                "entryNo": entry.entry_no,
                "reference": entry.reference,
                "description": line.description or entry.description,
                "debit": money(line.debit),
                "credit": money(line.credit),
                "balance": running,
            })
        return {"account": account, "lines": lines, "balance": running}


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

class JournalService:

    @staticmethod
    def create_entry(
        db: Session,
        description: str,
        lines: List[dict],
        actor=None,
        reference: Optional[str] = None,
        date: Optional[datetime] = None,
        entry_no: Optional[str] = None,
    ) -> JournalEntry:
        """
        Create a draft entry.

        Each line is {"account_id" or "account_code", "debit", "credit",
        "description"?} with exactly one positive side. Total debits must
        equal total credits.
        """
        if not description:
            raise InvalidOperationError("Description is required")
        if not lines or len(lines) < 2:
            raise InvalidOperationError("A journal entry needs at least two lines")

        built = []
        total_debit = total_credit = 0.0
        for index, line in enumerate(lines, start=1):
            debit = money(line.get("debit"))
            credit = money(line.get("credit"))
            if debit < 0 or credit < 0:
                raise InvalidOperationError(f"Line {index}: amounts cannot be negative")
            if (debit > 0) == (credit > 0):
                raise InvalidOperationError(f"Line {index}: enter either a debit or a credit")

            if line.get("account_id") is not None:
                account = AccountService.get_account(db, line["account_id"])
            elif line.get("account_code"):
                account = AccountService.get_by_code(db, line["account_code"])
            else:
                raise InvalidOperationError(f"Line {index}: account is required")

            built.append(JournalLine(
                account=account, debit=debit, credit=credit, description=line.get("description")
            ))
            total_debit += debit
            total_credit += credit

        if abs(money(total_debit) - money(total_credit)) >= TOLERANCE:
            raise InvalidOperationError(
                f"Journal entry is not balanced: debits {money(total_debit)} != credits {money(total_credit)}"
            )

        entry = JournalEntry(
            entry_no=entry_no or generate_entry_no(db),
            date=date or datetime.utcnow(),
            description=description,
            reference=reference,
            status=JournalStatus.DRAFT,
            created_by_id=actor.id if actor is not None else None,
            lines=built,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_entry(db: Session, entry_id: int) -> JournalEntry:
        entry = db.query(JournalEntry).filter(JournalEntry.id == entry_id).first()
        if not entry:
            raise NotFoundError("Journal entry not found")
        return entry

    @staticmethod
    def list_entries(
        db: Session,
        status: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> List[JournalEntry]:
        query = db.query(JournalEntry)
        if status:
            try:
                query = query.filter(JournalEntry.status == JournalStatus(status))
            except ValueError:
                raise InvalidOperationError(f"Invalid status '{status}'")
        if reference:
            query = query.filter(JournalEntry.reference == reference)
        return query.order_by(JournalEntry.date.desc(), JournalEntry.id.desc()).all()

    @staticmethod
    def post_entry(db: Session, entry: JournalEntry) -> JournalEntry:
        """Post a draft and move account balances by each account's normal side."""
        if entry.status != JournalStatus.DRAFT:
            raise InvalidOperationError(f"Only draft entries can be posted (entry {entry.entry_no} is {entry.status.value})")

        for line in entry.lines:
            account = line.account
            if account.debit_normal:
                account.balance = money(account.balance + line.debit - line.credit)
            else:
                account.balance = money(account.balance + line.credit - line.debit)

        entry.status = JournalStatus.POSTED
        entry.posted_at = datetime.utcnow()
        db.flush()
        log.info("journal_entry_posted", entry_no=entry.entry_no, amount=entry.total_debit)
        return entry

    @staticmethod
    def cancel_entry(db: Session, entry: JournalEntry) -> JournalEntry:
        if entry.status != JournalStatus.DRAFT:
            raise InvalidOperationError("Only draft entries can be cancelled")
        entry.status = JournalStatus.CANCELLED
        db.flush()
        return entry

    @staticmethod
    def post_transfer(
        db: Session,
        debit_code: str,
        credit_code: str,
        amount: float,
        description: str,
        reference: Optional[str] = None,
        actor=None,
        entry_no: Optional[str] = None,
    ) -> JournalEntry:
        """Create and post a two-line entry in one step."""
        amount = money(amount)
        entry = JournalService.create_entry(
            db,
            description=description,
            reference=reference,
            actor=actor,
            entry_no=entry_no,
            lines=[
                {"account_code": debit_code, "debit": amount, "credit": 0},
                {"account_code": credit_code, "debit": 0, "credit": amount},
            ],
        )
        return JournalService.post_entry(db, entry)


# =============================================================================
# REPORTS
# =============================================================================

class ReportService:

    @staticmethod
    def trial_balance(db: Session) -> dict:
        posted = db.query(
            JournalLine.account_id.label("account_id"),
            func.sum(JournalLine.debit).label("debit"),
            func.sum(JournalLine.credit).label("credit"),
        ).join(
            JournalEntry, JournalLine.entry_id == JournalEntry.id
        ).filter(
            JournalEntry.status == JournalStatus.POSTED
        ).group_by(JournalLine.account_id).subquery()

        rows = db.query(
            Account,
            func.coalesce(posted.c.debit, 0),
            func.coalesce(posted.c.credit, 0),
        ).outerjoin(
            posted, posted.c.account_id == Account.id
        ).order_by(Account.code).all()

        accounts = []
        total_debit = total_credit = 0.0
        for account, debit, credit in rows:
            net = money(debit - credit)
            # Report each account on one side only
            row_debit = net if net > 0 else 0.0
            row_credit = -net if net < 0 else 0.0
            accounts.append({
                "code": account.code,
                "name": account.name,
                "type": account.type.value,
                "debit": row_debit,
                "credit": row_credit,
            })
            total_debit += row_debit
            total_credit += row_credit

        total_debit, total_credit = money(total_debit), money(total_credit)
        return {
            "accounts": accounts,
            "totalDebit": total_debit,
            "totalCredit": total_credit,
            "balanced": abs(total_debit - total_credit) < TOLERANCE,
            "generatedAt": datetime.utcnow(),
        }

    @staticmethod
    def export_trial_balance(db: Session) -> bytes:
        """Trial balance as an .xlsx workbook."""
        report = ReportService.trial_balance(db)
        df = pd.DataFrame(report["accounts"], columns=["code", "name", "type", "debit", "credit"])
        totals = pd.DataFrame([{
            "code": "", "name": "TOTAL", "type": "",
            "debit": report["totalDebit"], "credit": report["totalCredit"],
        }])
        df = pd.concat([df, totals], ignore_index=True)
        df.columns = ["Account Code", "Account Name", "Type", "Debit", "Credit"]

        buffer = BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Trial Balance", index=False)
        return buffer.getvalue()


# =============================================================================
# ACCOUNTS RECEIVABLE RECONCILIATION
# =============================================================================

class ReceivablesService:

    @staticmethod
    def paid_amount(db: Session, order_id: int) -> float:
        total = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.order_id == order_id,
            Payment.status == PaymentStatus.APPROVED,
        ).scalar()
        return money(total)

    @staticmethod
    def _booked_by_reference(db: Session, reference: Optional[str] = None) -> dict:
        """Posted AR movement (debit - credit) per journal reference."""
        query = db.query(
            JournalEntry.reference,
            func.sum(JournalLine.debit - JournalLine.credit),
        ).join(
            JournalLine, JournalLine.entry_id == JournalEntry.id
        ).join(
            Account, JournalLine.account_id == Account.id
        ).filter(
            Account.code == AR_ACCOUNT,
            JournalEntry.status == JournalStatus.POSTED,
            JournalEntry.reference.isnot(None),
        )
        if reference is not None:
            query = query.filter(JournalEntry.reference == reference)
        rows = query.group_by(JournalEntry.reference).all()
        return {reference: money(amount) for reference, amount in rows}

    @staticmethod
    def _order_position(db: Session, order: Order, booked: dict) -> dict:
        paid = ReceivablesService.paid_amount(db, order.id)
        expected = money(order.total_amount - paid)
        recorded = booked.get(order.order_no, 0.0)
        return {
            "orderId": order.id,
            "orderNo": order.order_no,
            "customerName": order.customer.name if order.customer else None,
            "orderTotal": money(order.total_amount),
            "paidAmount": paid,
            "expectedAR": expected,
            "bookedAR": recorded,
            "difference": money(expected - recorded),
        }

    @staticmethod
    def reconcile(db: Session) -> dict:
        """
        Compare each order's open balance with the AR booked against its
        order number and list the orders that disagree.
        """
        booked = ReceivablesService._booked_by_reference(db)
        orders = db.query(Order).order_by(Order.created_at.asc(), Order.id.asc()).all()

        discrepancies = []
        total_expected = total_booked = 0.0
        for order in orders:
            position = ReceivablesService._order_position(db, order, booked)
            total_expected += position["expectedAR"]
            total_booked += position["bookedAR"]
            if abs(position["difference"]) >= TOLERANCE:
                discrepancies.append(position)

        ar_account = db.query(Account).filter(Account.code == AR_ACCOUNT).first()
        return {
            "orderCount": len(orders),
            "totalExpectedAR": money(total_expected),
            "totalBookedAR": money(total_booked),
            "arAccountBalance": money(ar_account.balance) if ar_account else 0.0,
            "discrepancies": discrepancies,
            "isReconciled": not discrepancies,
        }

    @staticmethod
    def fix_discrepancy(db: Session, order_id: int, actor=None) -> JournalEntry:
        """
        Post an adjustment between AR and Sales Revenue so the AR booked for
        the order equals its open balance.
        """
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")

        position = ReceivablesService._order_position(
            db, order, ReceivablesService._booked_by_reference(db)
        )
        difference = position["difference"]
        if abs(difference) < TOLERANCE:
            raise InvalidOperationError(f"Order {order.order_no} has no AR discrepancy")

        entry_no = ReceivablesService._free_entry_no(db, f"AR-ADJ-{order.order_no}")

        if difference > 0:
            debit_code, credit_code = AR_ACCOUNT, SALES_REVENUE_ACCOUNT
        else:
            debit_code, credit_code = SALES_REVENUE_ACCOUNT, AR_ACCOUNT

        entry = JournalService.post_transfer(
            db,
            debit_code=debit_code,
            credit_code=credit_code,
            amount=abs(difference),
            description=f"AR adjustment for order {order.order_no}",
            reference=order.order_no,
            actor=actor,
            entry_no=entry_no,
        )
        log.info("ar_discrepancy_fixed", order_no=order.order_no, amount=difference, entry_no=entry_no)
        return entry

    @staticmethod
    def reverse_booked(db: Session, order_no: str, actor=None) -> Optional[JournalEntry]:
        """
        Bring the AR posted against `order_no` back to zero, so that a
        deleted order leaves nothing behind for a later order that reuses
        the number. Returns None when nothing is booked.
        """
        booked = ReceivablesService._booked_by_reference(db, order_no).get(order_no, 0.0)
        if abs(booked) < TOLERANCE:
            return None

        if booked > 0:
            debit_code, credit_code = SALES_REVENUE_ACCOUNT, AR_ACCOUNT
        else:
            debit_code, credit_code = AR_ACCOUNT, SALES_REVENUE_ACCOUNT

        entry_no = ReceivablesService._free_entry_no(db, f"AR-REV-{order_no}")
        entry = JournalService.post_transfer(
            db,
            debit_code=debit_code,
            credit_code=credit_code,
            amount=abs(booked),
            description=f"Reversal of sales order {order_no}",
            reference=order_no,
            actor=actor,
            entry_no=entry_no,
        )
        log.info("ar_reversed", order_no=order_no, amount=booked, entry_no=entry_no)
        return entry

    @staticmethod
    def _free_entry_no(db: Session, base_no: str) -> str:
        entry_no = base_no
        suffix = 1
        while db.query(JournalEntry.id).filter(JournalEntry.entry_no == entry_no).first():
            suffix += 1
            entry_no = f"{base_no}-{suffix}"
        return entry_no


def paid_by_order(db: Session, order_ids: List[int]) -> dict:
    """Approved payment totals for several orders at once."""
    if not order_ids:
        return {}
    paid = defaultdict(float)
    for order_id, amount in db.query(Payment.order_id, Payment.amount).filter(
        Payment.order_id.in_(order_ids), Payment.status == PaymentStatus.APPROVED
    ):
        paid[order_id] += amount
    return {order_id: money(amount) for order_id, amount in paid.items()}
