import re

import pytest

from erp_core.app import models
from erp_core.app.finance_models import Account, JournalEntry, JournalStatus
from erp_core.app.errors import DuplicateError, InvalidOperationError, NotFoundError
from erp_core.app.services import CustomerService, OrderService, ReceivablesService, compute_total, payment_status
from erp_core.app.services import sales_service

ORDER_NO = re.compile(r"^SO-\d{8}-\d{5}$")


@pytest.fixture()
def customer(db):
    customer = CustomerService.create_customer(db, name="Acme Paper", company="Acme")
    db.commit()
    return customer


def item(**overrides):
    base = {"type": "Kraft", "gsm": 80, "width": 1200, "quantity": 1, "price": 100}
    base.update(overrides)
    return base


@pytest.mark.parametrize("kwargs,expected", [
    ({}, 250),
    ({"total_amount": 400}, 400),
    ({"discount": 50, "discount_type": "value"}, 200),
    ({"discount": 10, "discount_type": "percentage"}, 225),
    ({"discount": 1000, "discount_type": "value"}, 0),
])
def test_compute_total(kwargs, expected):
    items = [{"price": 100, "quantity": 2}, {"price": 25, "quantity": 2}]
    assert compute_total(items, **kwargs) == expected


def test_payment_status():
    assert payment_status(100, 0) == "unpaid"
    assert payment_status(100, 40) == "partial"
    assert payment_status(100, 100) == "paid"


def test_create_order_defaults(db, customer, admin):
    order = OrderService.create_order(db, customer.id, [item(quantity=2)], actor=admin, discount=20)
    db.commit()

    assert ORDER_NO.match(order.order_no)
    assert order.status == models.OrderStatus.PENDING
    assert order.discount_type == models.DiscountType.VALUE
    assert order.total_amount == 180
    assert order.created_by_id == admin.id
    assert len(order.items) == 1


def test_order_numbers_are_sequential(db, customer):
    first = OrderService.create_order(db, customer.id, [item()])
    second = OrderService.create_order(db, customer.id, [item()])
    db.commit()
    assert int(second.order_no[-5:]) == int(first.order_no[-5:]) + 1


def test_order_no_collision_is_retried(db, customer, monkeypatch):
    taken = OrderService.create_order(db, customer.id, [item()])
    db.commit()

    real = sales_service.generate_order_no
    calls = []

    def colliding_once(session):
        calls.append(1)
        return taken.order_no if len(calls) == 1 else real(session)

    monkeypatch.setattr(sales_service, "generate_order_no", colliding_once)
    order = OrderService.create_order(db, customer.id, [item(price=70)])
    db.commit()

    assert len(calls) == 2
    assert order.order_no != taken.order_no
    assert [i.price for i in order.items] == [70]
    assert db.query(models.Order).count() == 2


def test_order_no_collision_gives_up_with_409(db, customer, monkeypatch):
    taken = OrderService.create_order(db, customer.id, [item()])
    db.commit()
    pending = CustomerService.create_customer(db, name="Unsaved Co")

    monkeypatch.setattr(sales_service, "generate_order_no", lambda session: taken.order_no)
    with pytest.raises(DuplicateError) as exc:
        OrderService.create_order(db, customer.id, [item()])
    assert exc.value.status_code == 409

    # the failed attempts only roll back to their savepoints
    db.commit()
    assert db.query(models.Order).count() == 1
    assert db.query(models.Customer).filter(models.Customer.id == pending.id).one().name == "Unsaved Co"


@pytest.mark.parametrize("items,kwargs", [
    ([], {}),
    ([item(quantity=0)], {}),
    ([item(price=-1)], {}),
    ([item()], {"discount": -5}),
    ([item()], {"discount": 120, "discount_type": "percentage"}),
    ([item()], {"discount": 5, "discount_type": "bogus"}),
])
def test_create_order_validation(db, customer, items, kwargs):
    with pytest.raises(InvalidOperationError):
        OrderService.create_order(db, customer.id, items, **kwargs)


def test_create_order_unknown_customer_or_roll(db, customer):
    with pytest.raises(NotFoundError):
        OrderService.create_order(db, 999, [item()])
    with pytest.raises(NotFoundError):
        OrderService.create_order(db, customer.id, [item(stock_id=999)])


def test_update_order_recomputes_total(db, customer):
    order = OrderService.create_order(db, customer.id, [item(price=100, quantity=3)])
    db.commit()

    OrderService.update_order(db, order.id, discount=10, discount_type="percentage")
    db.commit()
    assert order.total_amount == 270

    OrderService.update_order(db, order.id, items=[item(price=50, quantity=2)])
    db.commit()
    assert order.total_amount == 90
    assert [i.price for i in order.items] == [50]


def test_delete_order_releases_sold_rolls(db, customer, make_stock):
    order = OrderService.create_order(db, customer.id, [item()])
    stock = make_stock()
    stock.is_sold = True
    stock.order_no = order.order_no
    stock.customer_name = customer.name
    db.commit()

    OrderService.delete_order(db, order.id)
    db.commit()

    db.refresh(stock)
    assert stock.is_sold is False
    assert stock.order_no is None
    assert stock.customer_name is None
    assert db.query(models.Order).count() == 0


def test_delete_booked_order_reverses_revenue(db, customer, admin):
    order = OrderService.create_order(db, customer.id, [item(price=100)])
    OrderService.book_revenue(db, order.id, actor=admin)
    db.commit()
    order_no = order.order_no

    OrderService.delete_order(db, order.id, actor=admin)
    db.commit()

    reversal = db.query(JournalEntry).filter(JournalEntry.entry_no == f"AR-REV-{order_no}").one()
    assert reversal.reference == order_no
    assert reversal.status == JournalStatus.POSTED
    balances = {a.code: a.balance for a in db.query(Account).all()}
    assert balances["1100"] == 0
    assert balances["4000"] == 0

    # the freed number goes to the next order, which must start with no AR booked
    reused = OrderService.create_order(db, customer.id, [item(price=40)])
    db.commit()
    assert reused.order_no == order_no

    report = ReceivablesService.reconcile(db)
    assert [d["orderNo"] for d in report["discrepancies"]] == [order_no]
    assert report["discrepancies"][0]["bookedAR"] == 0
    assert report["discrepancies"][0]["difference"] == 40
    assert report["arAccountBalance"] == 0


def test_book_revenue_and_payments(db, customer, admin):
    order = OrderService.create_order(db, customer.id, [item(price=500)])
    db.commit()

    entry = OrderService.book_revenue(db, order.id, actor=admin)
    db.commit()
    assert order.journal_entry_id == entry.id
    assert entry.reference == order.order_no
    assert entry.total_debit == entry.total_credit == 500

    with pytest.raises(InvalidOperationError):
        OrderService.book_revenue(db, order.id)

    payment = OrderService.record_payment(db, order.id, 200, actor=admin, method="bank")
    db.commit()
    assert payment.journal_entry_id is not None

    with pytest.raises(InvalidOperationError):
        OrderService.record_payment(db, order.id, 301)
    with pytest.raises(InvalidOperationError):
        OrderService.record_payment(db, order.id, 0)

    balances = {a.code: a.balance for a in db.query(Account).all()}
    assert balances == {"1000": 200, "1100": 300, "4000": 500}

    with pytest.raises(InvalidOperationError):
        OrderService.delete_order(db, order.id)
    with pytest.raises(InvalidOperationError):
        OrderService.update_order(db, order.id, note="too late")


def test_order_api_flow(client):
    customer = client.post("/api/customers", json={"name": "Beta Corp"}).json()

    preview = client.get("/api/sales/orders/generate-order-no").json()
    assert ORDER_NO.match(preview["orderNo"])

    response = client.post("/api/sales/orders", json={
        "customerId": customer["id"],
        "items": [{"type": "Kraft", "gsm": 80, "quantity": 2, "price": 150}],
        "discount": 10,
        "discountType": "percentage",
    })
    assert response.status_code == 201, response.text
    order = response.json()
    assert order["orderNo"] == preview["orderNo"]
    assert order["totalAmount"] == 270
    assert order["paymentStatus"] == "unpaid"
    assert order["status"] == "pending"

    booked = client.post(f"/api/sales/orders/{order['id']}/journal-entry")
    assert booked.status_code == 201
    assert booked.json()["status"] == "posted"

    paid = client.post(f"/api/sales/orders/{order['id']}/payments", json={"amount": 100})
    assert paid.status_code == 201

    fetched = client.get(f"/api/sales/orders/{order['id']}").json()
    assert fetched["paidAmount"] == 100
    assert fetched["paymentStatus"] == "partial"

    listed = client.get("/api/sales/orders", params={"status": "pending"}).json()
    assert [o["id"] for o in listed] == [order["id"]]
    assert client.get("/api/sales/orders", params={"status": "nope"}).status_code == 400


def test_order_api_rejects_empty_items(client):
    customer = client.post("/api/customers", json={"name": "Gamma"}).json()
    response = client.post("/api/sales/orders", json={"customerId": customer["id"], "items": []})
    assert response.status_code == 400
    assert response.json() == {"error": "Order must contain at least one item"}


def test_customer_with_orders_cannot_be_deleted(client):
    customer = client.post("/api/customers", json={"name": "Delta"}).json()
    client.post("/api/sales/orders", json={
        "customerId": customer["id"], "items": [{"type": "Kraft", "price": 10}],
    })
    assert client.delete(f"/api/customers/{customer['id']}").status_code == 400
