from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import schemas
from .security import get_db, require_permission, Permission
from .services import CustomerService

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("", response_model=List[schemas.CustomerOut])
def list_customers(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.CUSTOMER_VIEW)),
):
    return CustomerService.list_customers(db, search)


@router.post("", response_model=schemas.CustomerOut, status_code=201)
def create_customer(
    customer_in: schemas.CustomerCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.CUSTOMER_MANAGE)),
):
    customer = CustomerService.create_customer(db, **customer_in.model_dump())
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=schemas.CustomerOut)
def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.CUSTOMER_VIEW)),
):
    return CustomerService.get_customer(db, customer_id)


@router.put("/{customer_id}", response_model=schemas.CustomerOut)
def update_customer(
    customer_id: int,
    customer_in: schemas.CustomerUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.CUSTOMER_MANAGE)),
):
    customer = CustomerService.update_customer(db, customer_id, **customer_in.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(customer)
    return customer


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_permission(Permission.CUSTOMER_MANAGE)),
):
    CustomerService.delete_customer(db, customer_id)
    db.commit()
    return {"success": True}
