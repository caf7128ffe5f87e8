"""
Shipment API Router
===================
Barcode validation against an order, shipping and shipment history.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..security import get_db, require_permission, Permission
from ..services import ShipmentService

router = APIRouter(prefix="/api/shipment", tags=["Shipment"])


@router.get("/orders", response_model=List[schemas.OrderOut])
async def list_shippable_orders(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SHIPMENT_VIEW))
):
    """Pending orders that have at least one line."""
    return ShipmentService.list_shippable_orders(db)


@router.post("/validate-barcode", response_model=schemas.ValidateBarcodeOut)
async def validate_barcode(
    request: schemas.ValidateBarcodeRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SHIPMENT_PROCESS))
):
    """
    Match a scanned roll to a line of the order.

    A roll that fits a line only by spec or type is linked to that line so
    later scans of it match exactly.
    """
    result = ShipmentService.validate_barcode(db, request.order_id, request.barcode)
    db.commit()
    return result


@router.post("/process", response_model=schemas.ShipmentOut, status_code=201)
async def process_shipment(
    request: schemas.ProcessShipmentRequest,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SHIPMENT_PROCESS))
):
    shipment = ShipmentService.process_shipment(
        db,
        order_id=request.order_id,
        scanned_items=[scan.model_dump() for scan in request.scanned_items],
        actor=current_user,
        notes=request.notes,
    )
    db.commit()
    db.refresh(shipment)
    return shipment


@router.get("/history", response_model=List[schemas.ShipmentOut])
async def shipment_history(
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SHIPMENT_VIEW))
):
    return ShipmentService.list_shipments(db)


@router.get("/history/{shipment_id}", response_model=schemas.ShipmentOut)
async def get_shipment(
    shipment_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.SHIPMENT_VIEW))
):
    return ShipmentService.get_shipment(db, shipment_id)
