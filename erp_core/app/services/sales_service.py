"""
Sales Service
=============
Customers, sales orders, order accounting and customer payments.

Order totals: the client-supplied total if given, otherwise
sum(price * quantity); then the discount (flat value or percentage),
floored at zero.
"""

from datetime import datetime
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, InvalidOperationError, DuplicateError
from ..finance_models import AR_ACCOUNT, CASH_ACCOUNT, SALES_REVENUE_ACCOUNT, Payment, PaymentStatus
from ..logging_config import get_logger
from ..models import Customer, Order, OrderItem, OrderStatus, DiscountType, Stock, Divided
from .finance_service import JournalService, ReceivablesService, money
from .numbering import generate_order_no

log = get_logger(__name__)

ORDER_NO_ATTEMPTS = 3

CUSTOMER_FIELDS = ("name", "email", "phone", "address", "company", "note")
ITEM_FIELDS = ("type", "product", "gsm", "width", "length", "weight", "quantity", "price", "tax",
               "stock_id", "divided_id")


def compute_total(
    items: List[dict],
    total_amount: Optional[float] = None,
    discount: Optional[float] = None,
    discount_type: Optional[str] = None,
) -> float:
    """Order total after discount, never below zero."""
    if total_amount is not None:
        total = float(total_amount)
    else:
        total = sum(float(i["price"]) * int(i["quantity"]) for i in items)

    if discount:
        if discount_type == DiscountType.PERCENTAGE.value:
            total -= total * discount / 100
        else:
            total -= discount
    return money(max(total, 0))


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerService:

    @staticmethod
    def list_customers(db: Session, search: Optional[str] = None) -> List[Customer]:
        query = db.query(Customer)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                Customer.name.ilike(pattern) | Customer.company.ilike(pattern) | Customer.email.ilike(pattern)
            )
        return query.order_by(Customer.name.asc()).all()

    @staticmethod
    def get_customer(db: Session, customer_id: int) -> Customer:
        customer = db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    @staticmethod
    def create_customer(db: Session, **fields) -> Customer:
        if not (fields.get("name") or "").strip():
            raise InvalidOperationError("Customer name is required")
        customer = Customer(**{k: v for k, v in fields.items() if k in CUSTOMER_FIELDS})
        db.add(customer)
        db.flush()
        return customer

    @staticmethod
    def update_customer(db: Session, customer_id: int, **fields) -> Customer:
        customer = CustomerService.get_customer(db, customer_id)
        if "name" in fields and not (fields["name"] or "").strip():
            raise InvalidOperationError("Customer name is required")
        for name, value in fields.items():
            if name in CUSTOMER_FIELDS:
                setattr(customer, name, value)
        db.flush()
        return customer

    @staticmethod
    def delete_customer(db: Session, customer_id: int) -> None:
        customer = CustomerService.get_customer(db, customer_id)
        if customer.orders:
            raise InvalidOperationError("Cannot delete a customer that has orders")
        db.delete(customer)
        db.flush()


# =============================================================================
# ORDERS
# =============================================================================

class OrderService:

    @staticmethod
    def _validate(db: Session, items: List[dict], discount: Optional[float], discount_type: Optional[str]):
        if not items:
            raise InvalidOperationError("Order must contain at least one item")

        for index, item in enumerate(items, start=1):
            if not item.get("type"):
                raise InvalidOperationError(f"Item {index}: type is required")
            if item.get("quantity") is None or item["quantity"] < 1:
                raise InvalidOperationError(f"Item {index}: quantity must be at least 1")
            if item.get("price") is None or item["price"] < 0:
                raise InvalidOperationError(f"Item {index}: price cannot be negative")
            if item.get("tax") is not None and item["tax"] < 0:
                raise InvalidOperationError(f"Item {index}: tax cannot be negative")
            if item.get("stock_id") and item.get("divided_id"):
                raise InvalidOperationError(f"Item {index}: reference a stock or a divided roll, not both")
            if item.get("stock_id") and not db.query(Stock.id).filter(Stock.id == item["stock_id"]).first():
                raise NotFoundError(f"Item {index}: stock not found")
            if item.get("divided_id") and not db.query(Divided.id).filter(Divided.id == item["divided_id"]).first():
                raise NotFoundError(f"Item {index}: divided stock not found")

        if discount is not None:
            if discount < 0:
                raise InvalidOperationError("Discount cannot be negative")
            if discount_type not in (None, DiscountType.PERCENTAGE.value, DiscountType.VALUE.value):
                raise InvalidOperationError("discountType must be 'percentage' or 'value'")
            if discount_type == DiscountType.PERCENTAGE.value and discount > 100:
                raise InvalidOperationError("Percentage discount cannot exceed 100")

    @staticmethod
    def _build_items(items: List[dict]) -> List[OrderItem]:
        return [OrderItem(**{k: v for k, v in item.items() if k in ITEM_FIELDS}) for item in items]

    @staticmethod
    def create_order(
        db: Session,
        customer_id: int,
        items: List[dict],
        actor=None,
        total_amount: Optional[float] = None,
        discount: Optional[float] = None,
        discount_type: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order with a fresh order number.

        The order number is re-generated if another order claims it first
        (unique constraint), up to ORDER_NO_ATTEMPTS times.
        """
        CustomerService.get_customer(db, customer_id)
        OrderService._validate(db, items, discount, discount_type)
        if discount is not None and discount_type is None:
            discount_type = DiscountType.VALUE.value
        total = compute_total(items, total_amount, discount, discount_type)

        for attempt in range(1, ORDER_NO_ATTEMPTS + 1):
            order = Order(
                order_no=generate_order_no(db),
                customer_id=customer_id,
                status=OrderStatus.PENDING,
                total_amount=total,
                discount=discount,
                discount_type=DiscountType(discount_type) if discount_type else None,
                note=note,
                created_by_id=actor.id if actor is not None else None,
                items=OrderService._build_items(items),
            )
            try:
                with db.begin_nested():
                    db.add(order)
                    db.flush()
            except IntegrityError as exc:
                if "order_no" not in str(exc.orig):
                    raise
                log.warning("order_no_conflict", order_no=order.order_no, attempt=attempt)
                continue
            log.info("order_created", order_id=order.id, order_no=order.order_no, total=total)
            return order

        raise DuplicateError("Could not allocate a unique order number, please retry")

    @staticmethod
    def get_order(db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def list_orders(
        db: Session,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> List[Order]:
        query = db.query(Order)
        if status:
            try:
                query = query.filter(Order.status == OrderStatus(status))
            except ValueError:
                raise InvalidOperationError(f"Invalid order status '{status}'")
        if customer_id:
            query = query.filter(Order.customer_id == customer_id)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    @staticmethod
    def update_order(
        db: Session,
        order_id: int,
        items: Optional[List[dict]] = None,
        customer_id: Optional[int] = None,
        total_amount: Optional[float] = None,
        discount: Optional[float] = None,
        discount_type: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        """Edit a pending order. Replacing items recomputes the total."""
        order = OrderService.get_order(db, order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidOperationError("Shipped orders cannot be edited")
        if order.journal_entry_id:
            raise InvalidOperationError("Order has been booked to the ledger and cannot be edited")

        if customer_id is not None and customer_id != order.customer_id:
            CustomerService.get_customer(db, customer_id)
            order.customer_id = customer_id

        if discount is None:
            discount = order.discount
            discount_type = discount_type or (order.discount_type.value if order.discount_type else None)
        elif discount_type is None:
            discount_type = DiscountType.VALUE.value

        if items is not None:
            OrderService._validate(db, items, discount, discount_type)
            order.items = OrderService._build_items(items)
        else:
            items = [OrderService._item_dict(i) for i in order.items]
            OrderService._validate(db, items, discount, discount_type)

        order.discount = discount
        order.discount_type = DiscountType(discount_type) if discount_type else None
        order.total_amount = compute_total(items, total_amount, discount, discount_type)
        if note is not None:
            order.note = note

        db.flush()
        log.info("order_updated", order_id=order.id, total=order.total_amount)
        return order

    @staticmethod
    def _item_dict(item: OrderItem) -> dict:
        return {name: getattr(item, name) for name in ITEM_FIELDS}

    @staticmethod
    def delete_order(db: Session, order_id: int, actor=None) -> None:
        """
        Delete an order and release every roll sold to it.

        Revenue already booked for the order is reversed, since the order
        number can be handed out again.
        """
        order = OrderService.get_order(db, order_id)
        if order.payments:
            raise InvalidOperationError("Cannot delete an order with recorded payments")

        released = {"is_sold": False, "order_no": None, "sold_date": None, "customer_name": None}
        stock_count = db.query(Stock).filter(Stock.order_no == order.order_no).update(
            {getattr(Stock, k): v for k, v in released.items()}, synchronize_session="fetch"
        )
        divided_count = db.query(Divided).filter(Divided.order_no == order.order_no).update(
            {getattr(Divided, k): v for k, v in released.items()}, synchronize_session="fetch"
        )
        reversal = ReceivablesService.reverse_booked(db, order.order_no, actor=actor)

        db.delete(order)
        db.flush()
        log.info("order_deleted", order_no=order.order_no, released_stock=stock_count,
                 released_divided=divided_count,
                 reversal=reversal.entry_no if reversal else None)

    # -------------------------------------------------------------------------
    # Accounting
    # -------------------------------------------------------------------------

    @staticmethod
    def book_revenue(db: Session, order_id: int, actor=None):
        """Post Dr Accounts Receivable / Cr Sales Revenue for the order total."""
        order = OrderService.get_order(db, order_id)
        if order.journal_entry_id:
            raise InvalidOperationError(f"Order {order.order_no} already has a journal entry")
        if order.total_amount <= 0:
            raise InvalidOperationError("Order total must be greater than zero")

        entry = JournalService.post_transfer(
            db,
            debit_code=AR_ACCOUNT,
            credit_code=SALES_REVENUE_ACCOUNT,
            amount=order.total_amount,
            description=f"Sales order {order.order_no}",
            reference=order.order_no,
            actor=actor,
        )
        order.journal_entry_id = entry.id
        db.flush()
        return entry

    @staticmethod
    def record_payment(
        db: Session,
        order_id: int,
        amount: float,
        actor=None,
        method: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Payment:
        """Approved customer payment, posted as Dr Cash / Cr Accounts Receivable."""
        order = OrderService.get_order(db, order_id)
        amount = money(amount)
        if amount <= 0:
            raise InvalidOperationError("Payment amount must be greater than zero")

        outstanding = money(order.total_amount - ReceivablesService.paid_amount(db, order.id))
        if amount > outstanding:
            raise InvalidOperationError(
                f"Payment of {amount} exceeds the outstanding balance of {outstanding}"
            )

        entry = JournalService.post_transfer(
            db,
            debit_code=CASH_ACCOUNT,
            credit_code=AR_ACCOUNT,
            amount=amount,
            description=f"Payment for order {order.order_no}",
            reference=order.order_no,
            actor=actor,
        )
        payment = Payment(
            order_id=order.id,
            amount=amount,
            method=method,
            reference=reference,
            status=PaymentStatus.APPROVED,
            journal_entry_id=entry.id,
            paid_at=datetime.utcnow(),
            created_by_id=actor.id if actor is not None else None,
        )
        db.add(payment)
        db.flush()
        log.info("payment_recorded", order_no=order.order_no, amount=amount)
        return payment


def payment_status(total: float, paid: float) -> str:
    if paid <= 0:
        return "unpaid"
    if paid + 0.005 < total:
        return "partial"
    return "paid"
