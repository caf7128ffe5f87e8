import pytest

from erp_core.app import models
from erp_core.app.errors import InsufficientStockError, InvalidOperationError, NotFoundError
from erp_core.app.services import DivisionService, StockService


def allocated(stock):
    return round(stock.remaining_length + sum(c.length for c in stock.children), 3)


def test_divide_then_overdraw_leaves_remaining_untouched(db, make_stock):
    stock = make_stock(length=100)

    rolls = DivisionService.divide_stock(db, stock.id, meter_per_roll=30, roll_count=3)
    db.commit()

    assert [r.roll_no for r in rolls] == [stock.roll_no + s for s in "ABC"]
    assert stock.remaining_length == 10

    with pytest.raises(InsufficientStockError) as exc:
        DivisionService.divide_stock(db, stock.id, meter_per_roll=30, roll_count=1)
    db.rollback()

    assert exc.value.status_code == 400
    assert exc.value.to_dict()["requested"] == 30
    assert exc.value.to_dict()["available"] == 10
    db.refresh(stock)
    assert stock.remaining_length == 10
    assert len(stock.children) == 3


def test_child_rolls_inherit_width_and_proportional_weight(db, make_stock):
    stock = make_stock(length=200, weight=1000, width=1500)

    rolls = DivisionService.divide_stock(db, stock.id, meter_per_roll=50, roll_count=2, note="cut")
    db.commit()

    for roll in rolls:
        assert roll.width == 1500
        assert roll.weight == 250
        assert roll.barcode_id == roll.roll_no
        assert roll.inspected is False
        assert roll.note == "cut"


def test_exact_remaining_length_can_be_divided(db, make_stock):
    stock = make_stock(length=90)
    DivisionService.divide_stock(db, stock.id, meter_per_roll=30, roll_count=3)
    db.commit()
    assert stock.remaining_length == 0
    assert allocated(stock) == stock.length


@pytest.mark.parametrize("meter,count", [(0, 1), (-5, 2), (10, 0)])
def test_divide_rejects_non_positive_input(db, make_stock, meter, count):
    stock = make_stock()
    with pytest.raises(InvalidOperationError):
        DivisionService.divide_stock(db, stock.id, meter_per_roll=meter, roll_count=count)


def test_sub_millimetre_lengths_are_rejected(db, make_stock):
    stock = make_stock(length=100)
    with pytest.raises(InvalidOperationError):
        DivisionService.divide_stock(db, stock.id, meter_per_roll=0.0001, roll_count=3)
    db.refresh(stock)
    assert stock.remaining_length == 100
    assert db.query(models.Divided).count() == 0

    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=1)
    db.commit()
    with pytest.raises(InvalidOperationError):
        DivisionService.update_divided(db, roll.id, length=0.0001)
    with pytest.raises(InvalidOperationError):
        StockService.update_stock(db, stock.id, length=0.0004)
    db.refresh(roll)
    assert roll.length == 10

    with pytest.raises(InvalidOperationError):
        make_stock(length=0.0001)
    with pytest.raises(InvalidOperationError):
        make_stock(weight=0.0002)


def test_divide_unknown_stock_is_not_found(db):
    with pytest.raises(NotFoundError):
        DivisionService.divide_stock(db, 999, meter_per_roll=10, roll_count=1)


def test_second_division_continues_suffixes(db, make_stock):
    stock = make_stock(length=100)
    DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=2)
    db.commit()

    more = DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=2)
    db.commit()

    assert [r.roll_no for r in more] == [stock.roll_no + "C", stock.roll_no + "D"]
    assert stock.remaining_length == 60
    assert allocated(stock) == 100


def test_suffix_freed_by_delete_is_reused(db, make_stock):
    stock = make_stock(length=100)
    first, second = DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=2)
    db.commit()

    DivisionService.delete_divided(db, first.id)
    db.commit()

    (again,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=1)
    db.commit()
    assert again.roll_no == stock.roll_no + "A"


def test_bulk_delete_restores_each_parent_once(db, make_stock):
    a = make_stock(length=100)
    b = make_stock(length=50)
    rolls_a = DivisionService.divide_stock(db, a.id, meter_per_roll=20, roll_count=3)
    rolls_b = DivisionService.divide_stock(db, b.id, meter_per_roll=15, roll_count=2)
    db.commit()
    assert (a.remaining_length, b.remaining_length) == (40, 20)

    restored = DivisionService.bulk_delete(db, [rolls_a[0].id, rolls_a[2].id, rolls_b[1].id])
    db.commit()

    assert restored == {a.id: 40, b.id: 15}
    db.refresh(a)
    db.refresh(b)
    assert a.remaining_length == 80
    assert b.remaining_length == 35
    assert [c.roll_no for c in a.children] == [a.roll_no + "B"]
    assert allocated(a) == a.length
    assert allocated(b) == b.length


def test_divide_then_delete_all_round_trips(db, make_stock):
    stock = make_stock(length=75.5)
    rolls = DivisionService.divide_stock(db, stock.id, meter_per_roll=12.25, roll_count=4)
    db.commit()

    DivisionService.bulk_delete(db, [r.id for r in rolls])
    db.commit()
    db.refresh(stock)

    assert stock.remaining_length == 75.5
    assert stock.children == []


def test_bulk_delete_requires_ids(db):
    with pytest.raises(InvalidOperationError, match="No IDs provided for deletion"):
        DivisionService.bulk_delete(db, [])


def test_bulk_delete_unknown_id_changes_nothing(db, make_stock):
    stock = make_stock(length=100)
    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=40, roll_count=1)
    db.commit()

    with pytest.raises(NotFoundError):
        DivisionService.bulk_delete(db, [roll.id, 12345])
    db.rollback()

    db.refresh(stock)
    assert stock.remaining_length == 60
    assert db.query(models.Divided).count() == 1


def test_update_divided_length_draws_from_parent(db, make_stock):
    stock = make_stock(length=100, weight=400)
    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=30, roll_count=1)
    db.commit()

    DivisionService.update_divided(db, roll.id, length=50)
    db.commit()
    assert stock.remaining_length == 50
    assert roll.weight == 200

    DivisionService.update_divided(db, roll.id, length=20)
    db.commit()
    assert stock.remaining_length == 80
    assert allocated(stock) == 100


def test_update_divided_cannot_exceed_parent_remaining(db, make_stock):
    stock = make_stock(length=100)
    (roll,) = DivisionService.divide_stock(db, stock.id, meter_per_roll=60, roll_count=1)
    db.commit()

    with pytest.raises(InsufficientStockError):
        DivisionService.update_divided(db, roll.id, length=120)


def test_stock_length_edit_keeps_divided_share(db, make_stock):
    stock = make_stock(length=100)
    DivisionService.divide_stock(db, stock.id, meter_per_roll=30, roll_count=2)
    db.commit()

    StockService.update_stock(db, stock.id, length=150, note="re-measured")
    db.commit()
    assert stock.remaining_length == 90
    assert stock.note == "re-measured"

    with pytest.raises(InvalidOperationError):
        StockService.update_stock(db, stock.id, length=50)


def test_stock_with_children_cannot_be_deleted(db, make_stock):
    stock = make_stock()
    DivisionService.divide_stock(db, stock.id, meter_per_roll=10, roll_count=1)
    db.commit()

    with pytest.raises(InvalidOperationError) as exc:
        StockService.delete_stock(db, stock.id)
    assert exc.value.to_dict()["rollNumbers"] == [stock.roll_no]

    with pytest.raises(InvalidOperationError):
        StockService.bulk_delete(db, [stock.id])
