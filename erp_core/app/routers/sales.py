"""
Sales API Router
================
Sales orders, order numbering, revenue booking and customer payments.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..models import Order
from ..security import get_db, require_permission, Permission
from ..services import OrderService, ReceivablesService, generate_order_no, paid_by_order, payment_status

router = APIRouter(prefix="/api/sales", tags=["Sales"])


def _order_out(order: Order, paid: float) -> schemas.OrderOut:
    out = schemas.OrderOut.model_validate(order)
    out.paid_amount = paid
    out.payment_status = payment_status(order.total_amount, paid)
    return out


def _enum_value(value):
    return value.value if value is not None else None


@router.get("/orders/generate-order-no", response_model=schemas.OrderNoOut)
async def next_order_no(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_VIEW))
):
    return {"order_no": generate_order_no(db)}


@router.get("/orders", response_model=List[schemas.OrderOut])
async def list_orders(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_VIEW))
):
    orders = OrderService.list_orders(db, status=status, customer_id=customer_id)
    paid = paid_by_order(db, [o.id for o in orders])
    return [_order_out(o, paid.get(o.id, 0.0)) for o in orders]


@router.post("/orders", response_model=schemas.OrderOut, status_code=201)
async def create_order(
    request: schemas.OrderCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_CREATE))
):
    order = OrderService.create_order(
        db,
        customer_id=request.customer_id,
        items=[item.model_dump() for item in request.items],
        actor=current_user,
        total_amount=request.total_amount,
        discount=request.discount,
        discount_type=_enum_value(request.discount_type),
        note=request.note,
    )
    db.commit()
    db.refresh(order)
    return _order_out(order, 0.0)


@router.get("/orders/{order_id}", response_model=schemas.OrderOut)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_VIEW))
):
    order = OrderService.get_order(db, order_id)
    return _order_out(order, ReceivablesService.paid_amount(db, order.id))


@router.put("/orders/{order_id}", response_model=schemas.OrderOut)
async def update_order(
    order_id: int,
    request: schemas.OrderUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_UPDATE))
):
    changes = request.model_dump(exclude_unset=True)
    if "discount_type" in changes:
        changes["discount_type"] = _enum_value(request.discount_type)
    order = OrderService.update_order(db, order_id, **changes)
    db.commit()
    db.refresh(order)
    return _order_out(order, ReceivablesService.paid_amount(db, order.id))


@router.delete("/orders/{order_id}")
async def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SALES_DELETE))
):
    """Delete an order; rolls sold to it become available again."""
    OrderService.delete_order(db, order_id, actor=current_user)
    db.commit()
    return {"success": True}


@router.post("/orders/{order_id}/journal-entry", response_model=schemas.JournalEntryOut, status_code=201)
async def book_order_revenue(
    order_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_POST))
):
    """Post Dr Accounts Receivable / Cr Sales Revenue for the order total."""
    entry = OrderService.book_revenue(db, order_id, actor=current_user)
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/orders/{order_id}/payments", response_model=schemas.PaymentOut, status_code=201)
async def record_payment(
    order_id: int,
    request: schemas.PaymentIn,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.FINANCE_POST))
):
    payment = OrderService.record_payment(
        db, order_id, request.amount, actor=current_user,
        method=request.method, reference=request.reference,
    )
    db.commit()
    db.refresh(payment)
    return payment
