"""
Finance API Router
==================
Chart of accounts, journal entries, trial balance and AR reconciliation.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .. import schemas
from ..security import get_db, require_permission, Permission
from ..services import AccountService, JournalService, ReportService, ReceivablesService

router = APIRouter(prefix="/api/finance", tags=["Finance"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# =============================================================================
# ACCOUNTS
# =============================================================================

@router.get("/accounts", response_model=List[schemas.AccountOut])
async def list_accounts(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_VIEW))
):
    return AccountService.list_accounts(db)


@router.post("/accounts", response_model=schemas.AccountOut, status_code=201)
async def create_account(
    request: schemas.AccountCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_MANAGE))
):
    account = AccountService.create_account(db, **request.model_dump())
    db.commit()
    db.refresh(account)
    return account


@router.get("/accounts/{account_id}/ledger", response_model=schemas.LedgerOut)
async def account_ledger(
    account_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_VIEW))
):
    return AccountService.ledger(db, account_id)


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

@router.get("/journal-entries", response_model=List[schemas.JournalEntryOut])
async def list_journal_entries(
    status: Optional[str] = None,
    reference: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_VIEW))
):
    return JournalService.list_entries(db, status=status, reference=reference)


@router.post("/journal-entries", response_model=schemas.JournalEntryOut, status_code=201)
async def create_journal_entry(
    request: schemas.JournalEntryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_MANAGE))
):
    """Create a balanced draft entry. Posting is a separate step."""
    entry = JournalService.create_entry(
        db,
        description=request.description,
        lines=[line.model_dump() for line in request.lines],
        actor=current_user,
        reference=request.reference,
        date=request.date,
    )
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/journal-entries/{entry_id}/post", response_model=schemas.JournalEntryOut)
async def post_journal_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_POST))
):
    entry = JournalService.post_entry(db, JournalService.get_entry(db, entry_id))
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/journal-entries/{entry_id}/cancel", response_model=schemas.JournalEntryOut)
async def cancel_journal_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_MANAGE))
):
    entry = JournalService.cancel_entry(db, JournalService.get_entry(db, entry_id))
    db.commit()
    db.refresh(entry)
    return entry


# =============================================================================
# REPORTS
# =============================================================================

@router.get("/reports/trial-balance")
async def trial_balance(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.REPORT_VIEW, Permission.FINANCE_VIEW))
):
    return ReportService.trial_balance(db)


@router.get("/reports/trial-balance/export")
async def export_trial_balance(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.REPORT_EXPORT))
):
    content = ReportService.export_trial_balance(db)
    filename = f"trial-balance-{datetime.utcnow():%Y%m%d}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# ACCOUNTS RECEIVABLE
# =============================================================================

@router.get("/accounts-receivable/reconciliation")
async def ar_reconciliation(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_VIEW))
):
    return ReceivablesService.reconcile(db)


@router.post("/accounts-receivable/reconcile/{order_id}", response_model=schemas.JournalEntryOut)
async def fix_ar_discrepancy(
    order_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_POST))
):
    """Post the AR adjustment that clears one order's discrepancy."""
    entry = ReceivablesService.fix_discrepancy(db, order_id, actor=current_user)
    db.commit()
    db.refresh(entry)
    return entry
