"""
Quality inspection of jumbo and child rolls.

Marking a roll inspected and writing its InspectionLog happen in the same
flush, so a roll is never flagged without a log row. Only inspected rolls can
be shipped.
"""

from datetime import datetime, date, timedelta
from math import ceil
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import AuthenticationError, InvalidOperationError
from ..logging_config import get_logger
from ..models import InspectionLog, User
from .inventory_service import StockService, DivisionService

log = get_logger(__name__)

STOCK_INSPECTED = "stock_inspected"
DIVIDED_INSPECTED = "divided_inspected"


class InspectionService:

    @staticmethod
    def _mark_inspected(db: Session, item, actor: Optional[User], weight: Optional[float]):
        if actor is None:
            raise AuthenticationError("Unauthorized")
        if weight is not None:
            if weight <= 0:
                raise InvalidOperationError("weight must be a positive number")
            item.weight = round(weight, 3)
        item.inspected = True
        item.inspected_at = datetime.utcnow()
        item.inspected_by_id = actor.id

    @staticmethod
    def inspect_stock(
        db: Session,
        stock_id: int,
        actor: Optional[User],
        note: Optional[str] = None,
        weight: Optional[float] = None,
    ):
        """
        Mark a jumbo roll inspected by `actor` and append a log entry.

        Inspecting again appends another log; the flag stays set.

        Returns:
            (stock, log)
        """
        stock = StockService.get_stock(db, stock_id, lock=True)
        InspectionService._mark_inspected(db, stock, actor, weight)

        entry = InspectionLog(
            type=STOCK_INSPECTED,
            item_type="stock",
            item_identifier=stock.roll_no,
            user_id=actor.id,
            user_name=actor.name or "User",
            note=note,
            stock_id=stock.id,
        )
        db.add(entry)
        db.flush()

        log.info("stock_inspected", stock_id=stock.id, roll_no=stock.roll_no, user_id=actor.id)
        return stock, entry

    @staticmethod
    def inspect_divided(
        db: Session,
        divided_id: int,
        actor: Optional[User],
        note: Optional[str] = None,
        weight: Optional[float] = None,
    ):
        """Child-roll counterpart of inspect_stock. Returns (divided, log)."""
        roll = DivisionService.get_divided(db, divided_id)
        InspectionService._mark_inspected(db, roll, actor, weight)

        entry = InspectionLog(
            type=DIVIDED_INSPECTED,
            item_type="divided",
            item_identifier=roll.roll_no,
            user_id=actor.id,
            user_name=actor.name or "User",
            note=note,
            divided_id=roll.id,
        )
        db.add(entry)
        db.flush()

        log.info("divided_inspected", divided_id=roll.id, roll_no=roll.roll_no, user_id=actor.id)
        return roll, entry

    @staticmethod
    def list_logs(
        db: Session,
        page: int = 1,
        limit: int = 50,
        type: Optional[str] = None,
        item_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Paged inspection history, newest first. end_date is inclusive."""
        page = max(page, 1)
        limit = max(limit, 1)

        query = db.query(InspectionLog)
        if type:
            query = query.filter(InspectionLog.type == type)
        if item_type:
            query = query.filter(InspectionLog.item_type == item_type)
        if start_date:
            query = query.filter(InspectionLog.created_at >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(
                InspectionLog.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time())
            )

        total = query.count()
        rows = query.order_by(
            InspectionLog.created_at.desc(), InspectionLog.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        return {
            "data": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": ceil(total / limit) if total else 0,
            },
        }
