"""
Shipment Service
================
Barcode-driven fulfilment of sales orders:
- Matching a scanned roll to an order line
- Shipping an order once every line is fully scanned
- Shipment history
"""

from collections import Counter
from datetime import datetime
from typing import Optional, List

from sqlalchemy.orm import Session

from ..errors import AuthenticationError, InvalidOperationError, NotFoundError
from ..logging_config import get_logger
from ..models import Order, OrderStatus, Shipment, ShipmentItem, Stock, Divided, User

log = get_logger(__name__)


def _same_number(expected: Optional[float], actual: Optional[float]) -> bool:
    # Unspecified order values match anything
    if expected is None:
        return True
    if actual is None:
        return False
    return abs(float(expected) - float(actual)) < 0.001


def _type_matches(item_type: Optional[str], roll_type: Optional[str]) -> bool:
    if not item_type or not roll_type:
        return False
    a, b = item_type.strip().lower(), roll_type.strip().lower()
    return a in b or b in a


def _roll_spec(stock: Optional[Stock], divided: Optional[Divided]) -> dict:
    """Type, gsm, width and length of the scanned roll."""
    if divided is not None:
        parent = divided.stock
        return {
            "type": parent.type if parent else None,
            "gsm": parent.gsm if parent else None,
            "width": divided.width,
            "length": divided.length,
        }
    return {"type": stock.type, "gsm": stock.gsm, "width": stock.width, "length": stock.length}


def _find_roll(db: Session, barcode: str):
    stock = db.query(Stock).filter(Stock.barcode_id == barcode).first()
    if stock:
        return stock, None
    return None, db.query(Divided).filter(Divided.barcode_id == barcode).first()


def _unavailable_reason(roll, order: Order) -> Optional[str]:
    if roll.is_sold and roll.order_no != order.order_no:
        return f"Item {roll.roll_no} is already sold to order {roll.order_no}"
    if not roll.inspected:
        return f"Item {roll.roll_no} has not been inspected"
    return None


class ShipmentService:

    @staticmethod
    def list_shippable_orders(db: Session) -> List[Order]:
        return db.query(Order).filter(
            Order.status == OrderStatus.PENDING,
            Order.items.any(),
        ).order_by(Order.created_at.desc(), Order.id.desc()).all()

    @staticmethod
    def match_order_item(order: Order, stock: Optional[Stock], divided: Optional[Divided]):
        """
        Pick the order line a scanned roll belongs to.

        Tried in order: a line already linked to this roll ("exact"), a line
        whose type and given gsm/width/length agree ("spec"), a line whose type
        agrees ("type"), else the first line ("default").

        Returns:
            (order_item, match_type)
        """
        items = list(order.items)
        if not items:
            return None, None

        for item in items:
            if stock is not None and item.stock_id == stock.id:
                return item, "exact"
            if divided is not None and item.divided_id == divided.id:
                return item, "exact"

        spec = _roll_spec(stock, divided)
        for item in items:
            if (
                _type_matches(item.type, spec["type"])
                and _same_number(item.gsm, spec["gsm"])
                and _same_number(item.width, spec["width"])
                and _same_number(item.length, spec["length"])
            ):
                return item, "spec"

        for item in items:
            if _type_matches(item.type, spec["type"]):
                return item, "type"

        return items[0], "default"

    @staticmethod
    def validate_barcode(db: Session, order_id: int, barcode: str) -> dict:
        """
        Check a scanned barcode against an order.

        Soft failures (unknown barcode, roll sold elsewhere, roll not
        inspected) come back as {"matched": False, "error": ...}; a missing
        order raises NotFoundError.
        """
        if not order_id or not barcode:
            raise InvalidOperationError("orderId and barcode are required")

        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")

        stock, divided = _find_roll(db, barcode)
        roll = stock or divided
        if roll is None:
            return {"matched": False, "error": "Item not found with this barcode"}

        reason = _unavailable_reason(roll, order)
        if reason:
            return {"matched": False, "error": reason}

        already = db.query(ShipmentItem).join(
            Shipment, ShipmentItem.shipment_id == Shipment.id
        ).filter(
            Shipment.order_id == order.id,
            ShipmentItem.scanned_barcode == barcode,
        ).first()
        if already:
            return {
                "matched": True,
                "alreadyScanned": True,
                "matchType": "exact",
                "item": already.order_item,
                "stock": stock,
                "divided": divided,
            }

        item, match_type = ShipmentService.match_order_item(order, stock, divided)
        if item is None:
            return {"matched": False, "error": "Order has no items"}

        if match_type != "exact" and item.stock_id is None and item.divided_id is None:
            if stock is not None:
                item.stock_id = stock.id
            else:
                item.divided_id = divided.id
            db.flush()

        log.info("barcode_matched", order_no=order.order_no, barcode=barcode, match_type=match_type)
        return {
            "matched": True,
            "alreadyScanned": False,
            "matchType": match_type,
            "item": item,
            "stock": stock,
            "divided": divided,
        }

    @staticmethod
    def process_shipment(
        db: Session,
        order_id: int,
        scanned_items: List[dict],
        actor: Optional[User],
        notes: Optional[str] = None,
    ) -> Shipment:
        """
        Ship an order.

        Every order line must be scanned exactly `quantity` times. The
        shipment, the order status and the sold flags of the scanned rolls
        are written together.
        """
        if actor is None:
            raise AuthenticationError("Unauthorized")
        if not order_id or not scanned_items:
            raise InvalidOperationError("orderId and scannedItems are required")

        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError("Order not found")
        if order.status == OrderStatus.SHIPPED:
            raise InvalidOperationError("Order has already been shipped")

        lines = {item.id: item for item in order.items}
        counts = Counter(scan.get("order_item_id") for scan in scanned_items)
        unknown = [line_id for line_id in counts if line_id not in lines]
        if unknown:
            raise InvalidOperationError(
                f"Scanned items reference lines that are not on this order: {', '.join(map(str, unknown))}"
            )
        for line in lines.values():
            if counts.get(line.id, 0) != line.quantity:
                raise InvalidOperationError(
                    f"Item {line.type} requires {line.quantity} scanned roll(s), got {counts.get(line.id, 0)}"
                )

        barcodes = Counter(scan["barcode"] for scan in scanned_items if scan.get("barcode"))
        repeated = [code for code, n in barcodes.items() if n > 1]
        if repeated:
            raise InvalidOperationError(f"Barcode scanned more than once: {', '.join(map(str, repeated))}")

        shipped_items = []
        rolls = []
        for scan in scanned_items:
            roll, stock, divided = ShipmentService._resolve_scan(db, scan)
            reason = _unavailable_reason(roll, order)
            if reason:
                raise InvalidOperationError(reason)
            if roll in rolls:
                raise InvalidOperationError(f"Roll {roll.roll_no} scanned more than once")
            rolls.append(roll)
            shipped_items.append(ShipmentItem(
                order_item_id=scan["order_item_id"],
                scanned_barcode=scan.get("barcode") or roll.barcode_id,
                stock_id=stock.id if stock is not None else None,
                divided_id=divided.id if divided is not None else None,
            ))

        now = datetime.utcnow()
        shipment = Shipment(
            order_id=order.id,
            shipped_by_id=actor.id,
            shipment_date=now,
            notes=notes,
            items=shipped_items,
        )
        db.add(shipment)

        order.status = OrderStatus.SHIPPED
        customer_name = order.customer.name if order.customer else None
        for roll in rolls:
            roll.is_sold = True
            roll.order_no = order.order_no
            roll.sold_date = now
            roll.customer_name = customer_name

        db.flush()
        log.info("order_shipped", order_no=order.order_no, shipment_id=shipment.id, rolls=len(rolls))
        return shipment

    @staticmethod
    def _resolve_scan(db: Session, scan: dict):
        stock = divided = None
        if scan.get("stock_id"):
            stock = db.query(Stock).filter(Stock.id == scan["stock_id"]).with_for_update().first()
            if not stock:
                raise NotFoundError(f"Stock {scan['stock_id']} not found")
        elif scan.get("divided_id"):
            divided = db.query(Divided).filter(Divided.id == scan["divided_id"]).with_for_update().first()
            if not divided:
                raise NotFoundError(f"Divided stock {scan['divided_id']} not found")
        elif scan.get("barcode"):
            stock, divided = _find_roll(db, scan["barcode"])
            if stock is None and divided is None:
                raise NotFoundError(f"Item not found with barcode {scan['barcode']}")
        else:
            raise InvalidOperationError("Each scanned item needs a stockId, dividedId or barcode")
        return stock or divided, stock, divided

    @staticmethod
    def list_shipments(db: Session) -> List[Shipment]:
        return db.query(Shipment).order_by(Shipment.shipment_date.desc(), Shipment.id.desc()).all()

    @staticmethod
    def get_shipment(db: Session, shipment_id: int) -> Shipment:
        shipment = db.query(Shipment).filter(Shipment.id == shipment_id).first()
        if not shipment:
            raise NotFoundError("Shipment not found")
        return shipment
