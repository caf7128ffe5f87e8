from datetime import datetime, timedelta

import pytest

from erp_core.app import models
from erp_core.app.errors import AuthenticationError, InvalidOperationError, NotFoundError
from erp_core.app.services import DivisionService, InspectionService


def test_inspecting_twice_appends_two_logs(db, make_stock, inspector):
    stock = make_stock()

    InspectionService.inspect_stock(db, stock.id, actor=inspector, note="first look")
    db.commit()
    stock, entry = InspectionService.inspect_stock(db, stock.id, actor=inspector)
    db.commit()

    assert stock.inspected is True
    assert stock.inspected_by_id == inspector.id
    assert stock.inspected_at is not None
    assert entry.user_name == "Quality Checker"
    assert entry.item_identifier == stock.roll_no

    logs = db.query(models.InspectionLog).filter(models.InspectionLog.stock_id == stock.id).all()
    assert len(logs) == 2
    assert {log.type for log in logs} == {"stock_inspected"}


def test_inspection_can_correct_weight(db, make_stock, inspector):
    stock = make_stock(weight=500)
    InspectionService.inspect_stock(db, stock.id, actor=inspector, weight=487.5)
    db.commit()
    assert stock.weight == 487.5

    with pytest.raises(InvalidOperationError):
        InspectionService.inspect_stock(db, stock.id, actor=inspector, weight=0)


def test_inspect_divided_roll(db, make_stock, inspector):
    stock = make_stock()
    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=25, roll_count=1)
    db.commit()

    roll, entry = InspectionService.inspect_divided(db, roll.id, actor=inspector, note="ok")
    db.commit()

    assert roll.inspected is True
    assert entry.type == "divided_inspected"
    assert entry.item_type == "divided"
    assert entry.divided_id == roll.id
    assert stock.inspected is False


def test_inspection_without_actor_is_rejected(db, make_stock):
    stock = make_stock()
    with pytest.raises(AuthenticationError):
        InspectionService.inspect_stock(db, stock.id, actor=None)
    db.rollback()
    db.refresh(stock)
    assert stock.inspected is False
    assert db.query(models.InspectionLog).count() == 0


def test_inspection_of_missing_roll(db, inspector):
    with pytest.raises(NotFoundError):
        InspectionService.inspect_stock(db, 404, actor=inspector)
    with pytest.raises(NotFoundError):
        InspectionService.inspect_divided(db, 404, actor=inspector)


def test_inspection_log_is_append_only(db, make_stock, inspector):
    stock = make_stock()
    _, entry = InspectionService.inspect_stock(db, stock.id, actor=inspector, note="original")
    db.commit()

    entry.note = "rewritten"
    with pytest.raises(InvalidOperationError):
        db.flush()
    db.rollback()

    db.delete(entry)
    with pytest.raises(InvalidOperationError):
        db.flush()
    db.rollback()

    assert db.query(models.InspectionLog).one().note == "original"


def test_logs_are_paged_newest_first(db, make_stock, inspector):
    stocks = [make_stock() for _ in range(5)]
    for stock in stocks:
        InspectionService.inspect_stock(db, stock.id, actor=inspector)
    db.commit()

    first = InspectionService.list_logs(db, page=1, limit=2)
    last = InspectionService.list_logs(db, page=3, limit=2)

    assert first["pagination"] == {"page": 1, "limit": 2, "total": 5, "totalPages": 3}
    assert [log.stock_id for log in first["data"]] == [stocks[4].id, stocks[3].id]
    assert [log.stock_id for log in last["data"]] == [stocks[0].id]


def test_logs_filter_by_item_type_and_date(db, make_stock, inspector):
    stock = make_stock()
    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=1)
    InspectionService.inspect_stock(db, stock.id, actor=inspector)
    InspectionService.inspect_divided(db, roll.id, actor=inspector)
    db.commit()

    divided_only = InspectionService.list_logs(db, item_type="divided")
    assert [log.divided_id for log in divided_only["data"]] == [roll.id]

    by_type = InspectionService.list_logs(db, type="stock_inspected")
    assert by_type["pagination"]["total"] == 1

    today = datetime.utcnow().date()
    tomorrow = today + timedelta(days=1)
    assert InspectionService.list_logs(db, start_date=tomorrow)["pagination"]["total"] == 0
    yesterday = today - timedelta(days=1)
    assert InspectionService.list_logs(db, start_date=yesterday, end_date=tomorrow)["pagination"]["total"] == 2
