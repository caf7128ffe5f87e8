"""
Roll Inventory Service
======================
Business logic for jumbo rolls (Stock) and the child rolls cut from them
(Divided):
- Stock intake, edits and deletion
- Division of a jumbo roll into equal child rolls
- Reversal (single or bulk delete) restoring the parent's remaining length

Length bookkeeping: for every jumbo roll,
    remaining_length + sum(child.length) == length

Methods flush but never commit; the calling router owns the transaction.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional, List, Iterable

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from ..errors import (
    NotFoundError, InvalidOperationError, InsufficientStockError, DuplicateError
)
from ..logging_config import get_logger
from ..models import Stock, Divided, OrderItem, ShipmentItem
from .numbering import generate_roll_no, next_roll_suffixes

log = get_logger(__name__)

# Lengths and weights are kept to the millimetre / gram
PRECISION = 3

STOCK_FIELDS = ("type", "gsm", "width", "length", "weight", "container_no", "arrival_date", "note")


def proportional_weight(parent: Stock, length: float) -> float:
    """Weight of `length` meters cut from `parent`, assuming uniform density."""
    if not parent.length:
        return 0.0
    return round(parent.weight * length / parent.length, PRECISION)


def _require_positive(**values):
    for name, value in values.items():
        if value is None or value <= 0:
            raise InvalidOperationError(f"{name} must be a positive number")


# =============================================================================
# STOCK (JUMBO ROLL) OPERATIONS
# =============================================================================

class StockService:
    """Jumbo roll intake and maintenance"""

    @staticmethod
    def create_stock(
        db: Session,
        barcode_id: str,
        type: str,
        gsm: float,
        width: float,
        length: float,
        weight: float,
        container_no: str,
        arrival_date: Optional[datetime] = None,
        note: Optional[str] = None,
        roll_no: Optional[str] = None,
    ) -> Stock:
        """
        Register a jumbo roll. Remaining length starts at the full length.

        Raises:
            InvalidOperationError: missing or non-positive measurements
            DuplicateError: barcode or roll number already in use
        """
        if not barcode_id or not type or not container_no:
            raise InvalidOperationError("barcodeId, type and containerNo are required")
        length = round(length, PRECISION) if length is not None else None
        weight = round(weight, PRECISION) if weight is not None else None
        _require_positive(gsm=gsm, width=width, length=length, weight=weight)

        if db.query(Stock.id).filter(Stock.barcode_id == barcode_id).first():
            raise DuplicateError(f"Barcode {barcode_id} is already registered")

        roll_no = roll_no or generate_roll_no(db)

        stock = Stock(
            roll_no=roll_no,
            barcode_id=barcode_id,
            type=type,
            gsm=gsm,
            width=width,
            length=length,
            remaining_length=length,
            weight=weight,
            container_no=container_no,
            arrival_date=arrival_date,
            note=note,
        )
        try:
            with db.begin_nested():
                db.add(stock)
                db.flush()
        except IntegrityError as exc:
            if "roll_no" in str(exc.orig):
                raise DuplicateError(f"Roll number {roll_no} already exists")
            if "barcode_id" in str(exc.orig):
                raise DuplicateError(f"Barcode {barcode_id} is already registered")
            raise

        log.info("stock_created", stock_id=stock.id, roll_no=stock.roll_no, length=stock.length)
        return stock

    @staticmethod
    def list_stock(db: Session, ids: Optional[List[int]] = None) -> List[Stock]:
        """Unsold rolls first, newest first."""
        query = db.query(Stock)
        if ids:
            query = query.filter(Stock.id.in_(ids))
        return query.order_by(Stock.is_sold.asc(), Stock.created_at.desc(), Stock.id.desc()).all()

    @staticmethod
    def get_stock(db: Session, stock_id: int, lock: bool = False) -> Stock:
        query = db.query(Stock).filter(Stock.id == stock_id)
        if lock:
            query = query.with_for_update()
        stock = query.first()
        if not stock:
            raise NotFoundError("Stock not found")
        return stock

    @staticmethod
    def find_by_barcode(db: Session, barcode: str) -> Stock:
        if not barcode:
            raise InvalidOperationError("Barcode is required")
        stock = db.query(Stock).filter(Stock.barcode_id == barcode).first()
        if not stock:
            raise NotFoundError("Stock not found with this barcode")
        return stock

    @staticmethod
    def list_uninspected(db: Session) -> List[Stock]:
        return db.query(Stock).filter(
            Stock.inspected.is_(False)
        ).order_by(Stock.created_at.desc(), Stock.id.desc()).all()

    @staticmethod
    def update_stock(db: Session, stock_id: int, **changes) -> Stock:
        """
        Edit a jumbo roll.

        A new total length moves remaining_length by the same amount, so the
        length already cut into child rolls stays accounted for. Existing
        child weights are not recomputed.
        """
        stock = StockService.get_stock(db, stock_id, lock=True)
        changes = {k: v for k, v in changes.items() if k in STOCK_FIELDS and v is not None}
        fields = sorted(changes)

        for name in ("length", "weight"):
            if name in changes:
                changes[name] = round(changes[name], PRECISION)
        for name in ("gsm", "width", "length", "weight"):
            if name in changes:
                _require_positive(**{name: changes[name]})

        if "length" in changes:
            new_length = changes.pop("length")
            new_remaining = round(stock.remaining_length + new_length - stock.length, PRECISION)
            if new_remaining < 0:
                allocated = round(stock.length - stock.remaining_length, PRECISION)
                raise InvalidOperationError(
                    f"Length cannot be less than the {allocated} m already divided from roll {stock.roll_no}"
                )
            stock.length = new_length
            stock.remaining_length = new_remaining

        for name, value in changes.items():
            setattr(stock, name, value)

        db.flush()
        log.info("stock_updated", stock_id=stock.id, fields=fields)
        return stock

    @staticmethod
    def delete_stock(db: Session, stock_id: int) -> None:
        stock = StockService.get_stock(db, stock_id, lock=True)
        if stock.children:
            raise InvalidOperationError(
                "Cannot delete stocks with divided stocks. Please delete divided stocks first.",
                rollNumbers=[stock.roll_no],
            )
        StockService._detach_references(db, [stock.id])
        db.delete(stock)
        db.flush()
        log.info("stock_deleted", stock_id=stock_id)

    @staticmethod
    def bulk_delete(db: Session, ids: Optional[Iterable[int]]) -> int:
        """
        Delete several jumbo rolls in one transaction.

        Raises:
            InvalidOperationError: empty id list, or any roll still has children
            NotFoundError: an id does not exist
        """
        ids = list(ids or [])
        if not ids:
            raise InvalidOperationError("No IDs provided for deletion")

        stocks = db.query(Stock).filter(Stock.id.in_(ids)).with_for_update().all()
        missing = set(ids) - {s.id for s in stocks}
        if missing:
            raise NotFoundError(f"Stock not found: {', '.join(str(i) for i in sorted(missing))}")

        blocked = [s.roll_no for s in stocks if s.children]
        if blocked:
            raise InvalidOperationError(
                "Cannot delete stocks with divided stocks. Please delete divided stocks first.",
                rollNumbers=blocked,
            )

        StockService._detach_references(db, ids)
        for stock in stocks:
            db.delete(stock)
        db.flush()
        log.info("stock_bulk_deleted", count=len(stocks))
        return len(stocks)

    @staticmethod
    def _detach_references(db: Session, stock_ids: List[int]) -> None:
        # Order and shipment lines keep their barcode text but drop the link
        db.query(OrderItem).filter(OrderItem.stock_id.in_(stock_ids)).update(
            {OrderItem.stock_id: None}, synchronize_session=False
        )
        db.query(ShipmentItem).filter(ShipmentItem.stock_id.in_(stock_ids)).update(
            {ShipmentItem.stock_id: None}, synchronize_session=False
        )


# =============================================================================
# DIVISION AND REVERSAL
# =============================================================================

class DivisionService:
    """Cutting jumbo rolls into child rolls, and undoing it"""

    @staticmethod
    def divide_stock(
        db: Session,
        stock_id: int,
        meter_per_roll: float,
        roll_count: int,
        note: Optional[str] = None,
    ) -> List[Divided]:
        """
        Cut `roll_count` child rolls of `meter_per_roll` meters from a jumbo roll.

        Child roll numbers are the parent's roll number plus A, B, C, ...;
        suffixes already used by earlier cuts of the same parent are skipped.
        Each child's barcode equals its roll number, width is inherited and
        weight is proportional to length.

        Raises:
            NotFoundError: the jumbo roll does not exist
            InsufficientStockError: total requested length exceeds remaining length
        """
        if meter_per_roll is not None:
            meter_per_roll = round(meter_per_roll, PRECISION)
        _require_positive(meterPerRoll=meter_per_roll)
        if roll_count is None or int(roll_count) != roll_count or roll_count < 1:
            raise InvalidOperationError("rollCount must be a positive whole number")
        roll_count = int(roll_count)

        stock = StockService.get_stock(db, stock_id, lock=True)

        requested = round(meter_per_roll * roll_count, PRECISION)
        if requested > stock.remaining_length:
            raise InsufficientStockError(
                "Total length exceeds available stock length",
                requested=requested,
                available=stock.remaining_length,
            )

        taken = [child.roll_no[len(stock.roll_no):] for child in stock.children]
        weight = proportional_weight(stock, meter_per_roll)

        rolls = []
        for suffix in next_roll_suffixes(taken, roll_count):
            roll_no = f"{stock.roll_no}{suffix}"
            roll = Divided(
                roll_no=roll_no,
                barcode_id=roll_no,
                stock=stock,
                width=stock.width,
                length=meter_per_roll,
                weight=weight,
                note=note,
                inspected=False,
            )
            db.add(roll)
            rolls.append(roll)

        stock.remaining_length = round(stock.remaining_length - requested, PRECISION)
        db.flush()

        log.info(
            "stock_divided",
            stock_id=stock.id,
            roll_no=stock.roll_no,
            rolls=[r.roll_no for r in rolls],
            remaining_length=stock.remaining_length,
        )
        return rolls

    @staticmethod
    def bulk_delete(db: Session, ids: Optional[Iterable[int]]) -> dict:
        """
        Delete child rolls and give their length back to their parents.

        The batch may span several parents; each parent is credited once with
        the summed length of its deleted children.

        Returns:
            {stock_id: restored_length}
        """
        ids = list(ids or [])
        if not ids:
            raise InvalidOperationError("No IDs provided for deletion")

        rolls = db.query(Divided).filter(Divided.id.in_(ids)).all()
        missing = set(ids) - {r.id for r in rolls}
        if missing:
            raise NotFoundError(f"Divided stock not found: {', '.join(str(i) for i in sorted(missing))}")

        restored = defaultdict(float)
        for roll in rolls:
            restored[roll.stock_id] += roll.length

        parents = db.query(Stock).filter(Stock.id.in_(list(restored))).with_for_update().all()

        DivisionService._detach_references(db, ids)
        for roll in rolls:
            db.delete(roll)
        for parent in parents:
            parent.remaining_length = round(parent.remaining_length + restored[parent.id], PRECISION)
        db.flush()
        for parent in parents:
            db.expire(parent, ["children"])

        restored = {stock_id: round(total, PRECISION) for stock_id, total in restored.items()}
        log.info("divided_bulk_deleted", count=len(rolls), restored=restored)
        return restored

    @staticmethod
    def delete_divided(db: Session, divided_id: int) -> Divided:
        roll = DivisionService.get_divided(db, divided_id)
        DivisionService.bulk_delete(db, [roll.id])
        return roll

    @staticmethod
    def update_divided(
        db: Session,
        divided_id: int,
        width: Optional[float] = None,
        length: Optional[float] = None,
        note: Optional[str] = None,
    ) -> Divided:
        """
        Edit a child roll. A length change is drawn from, or returned to,
        the parent's remaining length and the weight is recomputed.
        """
        roll = DivisionService.get_divided(db, divided_id)

        if width is not None:
            _require_positive(width=width)
            roll.width = width

        if length is not None:
            length = round(length, PRECISION)
            _require_positive(length=length)
            stock = StockService.get_stock(db, roll.stock_id, lock=True)
            diff = round(length - roll.length, PRECISION)
            if diff > stock.remaining_length:
                raise InsufficientStockError(
                    "Total length exceeds available stock length",
                    requested=diff,
                    available=stock.remaining_length,
                )
            stock.remaining_length = round(stock.remaining_length - diff, PRECISION)
            roll.length = length
            roll.weight = proportional_weight(stock, length)

        if note is not None:
            roll.note = note

        db.flush()
        log.info("divided_updated", divided_id=roll.id, roll_no=roll.roll_no)
        return roll

    @staticmethod
    def list_divided(db: Session, order_no: Optional[str] = None) -> List[Divided]:
        query = db.query(Divided)
        if order_no:
            query = query.filter(Divided.order_no == order_no)
        return query.order_by(Divided.created_at.desc(), Divided.roll_no.asc()).all()

    @staticmethod
    def get_divided(db: Session, divided_id: int) -> Divided:
        roll = db.query(Divided).filter(Divided.id == divided_id).first()
        if not roll:
            raise NotFoundError("Divided stock not found")
        return roll

    @staticmethod
    def find_by_barcode(db: Session, barcode: str) -> Divided:
        if not barcode:
            raise InvalidOperationError("Barcode is required")
        roll = db.query(Divided).filter(Divided.barcode_id == barcode).first()
        if not roll:
            raise NotFoundError("Divided stock not found with this barcode")
        return roll

    @staticmethod
    def list_uninspected(db: Session) -> List[Divided]:
        return db.query(Divided).filter(
            Divided.inspected.is_(False)
        ).order_by(Divided.created_at.desc(), Divided.roll_no.asc()).all()

    @staticmethod
    def _detach_references(db: Session, divided_ids: List[int]) -> None:
        db.query(OrderItem).filter(OrderItem.divided_id.in_(divided_ids)).update(
            {OrderItem.divided_id: None}, synchronize_session=False
        )
        db.query(ShipmentItem).filter(ShipmentItem.divided_id.in_(divided_ids)).update(
            {ShipmentItem.divided_id: None}, synchronize_session=False
        )
