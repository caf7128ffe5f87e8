"""
Roll Inventory API Router
=========================
- Jumbo roll (stock) intake and maintenance
- Division into child rolls and its reversal
- Quality inspection and the inspection log

Fixed paths are declared before the /{id} routes they would otherwise shadow.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..errors import InvalidOperationError
from ..security import get_db, require_permission, Permission
from ..services import StockService, DivisionService, InspectionService, generate_roll_no

router = APIRouter(prefix="/api/inventory", tags=["Inventory"])


def _parse_ids(raw: Optional[str]) -> Optional[List[int]]:
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise InvalidOperationError("ids must be a comma-separated list of integers")


# =============================================================================
# STOCK (JUMBO ROLLS)
# =============================================================================

@router.get("/stock", response_model=List[schemas.StockOut])
async def list_stock(
    ids: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    """All jumbo rolls, unsold first. `ids=1,2,3` restricts the list."""
    return StockService.list_stock(db, _parse_ids(ids))


@router.post("/stock", response_model=schemas.StockOut, status_code=201)
async def create_stock(
    request: schemas.StockCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_CREATE))
):
    stock = StockService.create_stock(db, **request.model_dump())
    db.commit()
    db.refresh(stock)
    return stock


@router.get("/stock/generate-roll-no", response_model=schemas.RollNoOut)
async def next_roll_no(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    return {"roll_no": generate_roll_no(db)}


@router.get("/stock/validate", response_model=schemas.StockOut)
async def validate_stock_barcode(
    barcode: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    return StockService.find_by_barcode(db, barcode)


@router.get("/stock/uninspected", response_model=List[schemas.StockOut])
async def list_uninspected_stock(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INSPECTION_VIEW))
):
    return StockService.list_uninspected(db)


@router.delete("/stock/bulk-delete")
async def bulk_delete_stock(
    request: schemas.IdsRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_DELETE))
):
    deleted = StockService.bulk_delete(db, request.ids)
    db.commit()
    return {"success": True, "deleted": deleted}


@router.get("/stock/{stock_id}", response_model=schemas.StockOut)
async def get_stock(
    stock_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    return StockService.get_stock(db, stock_id)


@router.put("/stock/{stock_id}", response_model=schemas.StockOut)
async def update_stock(
    stock_id: int,
    request: schemas.StockUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_UPDATE))
):
    stock = StockService.update_stock(db, stock_id, **request.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(stock)
    return stock


@router.delete("/stock/{stock_id}")
async def delete_stock(
    stock_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_DELETE))
):
    StockService.delete_stock(db, stock_id)
    db.commit()
    return {"success": True}


# =============================================================================
# DIVIDED (CHILD ROLLS)
# =============================================================================

@router.get("/divided", response_model=List[schemas.DividedOut])
async def list_divided(
    order_no: Optional[str] = Query(None, alias="orderNo"),
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    """Child rolls, or only those sold on `orderNo`."""
    return DivisionService.list_divided(db, order_no)


@router.post("/divided/new", response_model=List[schemas.DividedOut], status_code=201)
async def divide_stock(
    request: schemas.DivideRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_CREATE))
):
    """
    Cut `rollCount` child rolls of `meterPerRoll` meters from a jumbo roll.

    404 when the roll does not exist, 400 when the total exceeds the roll's
    remaining length. Nothing is written on failure.
    """
    rolls = DivisionService.divide_stock(
        db,
        stock_id=request.stock_id,
        meter_per_roll=request.meter_per_roll,
        roll_count=request.roll_count,
        note=request.note,
    )
    db.commit()
    for roll in rolls:
        db.refresh(roll)
    return rolls


@router.delete("/divided/bulk-delete")
async def bulk_delete_divided(
    request: schemas.IdsRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_DELETE))
):
    """Delete child rolls and restore their parents' remaining length."""
    DivisionService.bulk_delete(db, request.ids)
    db.commit()
    return {"success": True}


@router.get("/divided/uninspected", response_model=List[schemas.DividedOut])
async def list_uninspected_divided(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INSPECTION_VIEW))
):
    return DivisionService.list_uninspected(db)


@router.get("/divided/validate", response_model=schemas.DividedOut)
async def validate_divided_barcode(
    barcode_id: Optional[str] = Query(None, alias="barcodeId"),
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    return DivisionService.find_by_barcode(db, barcode_id)


@router.get("/divided/{divided_id}", response_model=schemas.DividedOut)
async def get_divided(
    divided_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_VIEW))
):
    return DivisionService.get_divided(db, divided_id)


@router.put("/divided/{divided_id}", response_model=schemas.DividedOut)
async def update_divided(
    divided_id: int,
    request: schemas.DividedUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_UPDATE))
):
    roll = DivisionService.update_divided(db, divided_id, **request.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(roll)
    return roll


@router.delete("/divided/{divided_id}")
async def delete_divided(
    divided_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INVENTORY_DELETE))
):
    DivisionService.delete_divided(db, divided_id)
    db.commit()
    return {"success": True}


# =============================================================================
# INSPECTION
# =============================================================================

@router.post("/inspection/stock", response_model=schemas.StockInspectionOut)
async def inspect_stock(
    request: schemas.InspectStockRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INSPECTION_PERFORM))
):
    stock, log = InspectionService.inspect_stock(
        db, request.stock_id, actor=current_user, note=request.note, weight=request.weight
    )
    db.commit()
    db.refresh(stock)
    db.refresh(log)
    return {"stock": stock, "log": log}


@router.post("/inspection/divided", response_model=schemas.DividedInspectionOut)
async def inspect_divided(
    request: schemas.InspectDividedRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INSPECTION_PERFORM))
):
    divided, log = InspectionService.inspect_divided(
        db, request.divided_id, actor=current_user, note=request.note, weight=request.weight
    )
    db.commit()
    db.refresh(divided)
    db.refresh(log)
    return {"divided": divided, "log": log}


@router.get("/logs", response_model=schemas.InspectionLogPage)
async def list_inspection_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    type: Optional[str] = None,
    item_type: Optional[str] = Query(None, alias="itemType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.INSPECTION_VIEW))
):
    return InspectionService.list_logs(
        db, page=page, limit=limit, type=type, item_type=item_type,
        start_date=start_date, end_date=end_date,
    )
