from typing import Optional, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from .models import OrderStatus, DiscountType
from .finance_models import AccountType, JournalStatus, PaymentStatus


class CamelModel(BaseModel):
    """JSON uses camelCase; Python attributes stay snake_case."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


# =============================================================================
# AUTH / USERS
# =============================================================================

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str = "User"


class LoginIn(BaseModel):
    username: str
    password: str


class UserCreate(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    username: str = Field(..., min_length=3)
    password: str
    role: str = "User"
    is_system_admin: bool = False


class UserOut(CamelModel):
    id: int
    name: str
    email: EmailStr
    username: str
    role: str
    is_system_admin: bool
    is_active: bool
    created_at: datetime


class SessionOut(CamelModel):
    user: UserOut
    permissions: List[str]


class UserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    role: Optional[str] = None
    is_active: Optional[bool] = None


class ChangePasswordIn(CamelModel):
    old_password: str
    new_password: str


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerCreate(CamelModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    note: Optional[str] = None


class CustomerUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    note: Optional[str] = None


class CustomerOut(CamelModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


# =============================================================================
# INVENTORY
# =============================================================================

class StockCreate(CamelModel):
    barcode_id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    gsm: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    length: float = Field(..., gt=0)
    weight: float = Field(..., gt=0)
    container_no: str = Field(..., min_length=1)
    arrival_date: Optional[datetime] = None
    note: Optional[str] = None
    roll_no: Optional[str] = None


class StockUpdate(CamelModel):
    type: Optional[str] = None
    gsm: Optional[float] = Field(None, gt=0)
    width: Optional[float] = Field(None, gt=0)
    length: Optional[float] = Field(None, gt=0)
    weight: Optional[float] = Field(None, gt=0)
    container_no: Optional[str] = None
    arrival_date: Optional[datetime] = None
    note: Optional[str] = None


class StockOut(CamelModel):
    id: int
    roll_no: str
    barcode_id: str
    type: str
    gsm: float
    width: float
    length: float
    remaining_length: float
    weight: float
    container_no: str
    arrival_date: Optional[datetime] = None
    note: Optional[str] = None
    inspected: bool
    inspected_at: Optional[datetime] = None
    inspected_by_id: Optional[int] = None
    is_sold: bool
    order_no: Optional[str] = None
    sold_date: Optional[datetime] = None
    customer_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DividedOut(CamelModel):
    id: int
    roll_no: str
    barcode_id: str
    stock_id: int
    width: float
    length: float
    weight: float
    note: Optional[str] = None
    inspected: bool
    inspected_at: Optional[datetime] = None
    inspected_by_id: Optional[int] = None
    is_sold: bool
    order_no: Optional[str] = None
    sold_date: Optional[datetime] = None
    customer_name: Optional[str] = None
    created_at: datetime


class DivideRequest(CamelModel):
    stock_id: int
    meter_per_roll: float = Field(..., gt=0)
    roll_count: int = Field(..., ge=1)
    note: Optional[str] = None


class DividedUpdate(CamelModel):
    width: Optional[float] = Field(None, gt=0)
    length: Optional[float] = Field(None, gt=0)
    note: Optional[str] = None


class IdsRequest(CamelModel):
    ids: List[int] = []


class RollNoOut(CamelModel):
    roll_no: str


# =============================================================================
# INSPECTION
# =============================================================================

class InspectStockRequest(CamelModel):
    stock_id: int
    note: Optional[str] = None
    weight: Optional[float] = Field(None, gt=0)


class InspectDividedRequest(CamelModel):
    divided_id: int
    note: Optional[str] = None
    weight: Optional[float] = Field(None, gt=0)


class InspectionLogOut(CamelModel):
    id: int
    type: str
    item_type: str
    item_identifier: str
    user_id: int
    user_name: str
    note: Optional[str] = None
    stock_id: Optional[int] = None
    divided_id: Optional[int] = None
    created_at: datetime


class StockInspectionOut(CamelModel):
    stock: StockOut
    log: InspectionLogOut


class DividedInspectionOut(CamelModel):
    divided: DividedOut
    log: InspectionLogOut


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class InspectionLogPage(CamelModel):
    data: List[InspectionLogOut]
    pagination: Pagination


# =============================================================================
# SALES
# =============================================================================

class OrderItemIn(CamelModel):
    type: str = Field(..., min_length=1)
    product: Optional[str] = None
    gsm: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None
    weight: Optional[float] = None
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0)
    tax: Optional[float] = Field(None, ge=0)
    stock_id: Optional[int] = None
    divided_id: Optional[int] = None


class OrderCreate(CamelModel):
    customer_id: int
    items: List[OrderItemIn]
    total_amount: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = None
    discount_type: Optional[DiscountType] = None
    note: Optional[str] = None


class OrderUpdate(CamelModel):
    customer_id: Optional[int] = None
    items: Optional[List[OrderItemIn]] = None
    total_amount: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = None
    discount_type: Optional[DiscountType] = None
    note: Optional[str] = None


class OrderItemOut(CamelModel):
    id: int
    type: str
    product: Optional[str] = None
    gsm: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None
    weight: Optional[float] = None
    quantity: int
    price: float
    tax: Optional[float] = None
    stock_id: Optional[int] = None
    divided_id: Optional[int] = None


class OrderOut(CamelModel):
    id: int
    order_no: str
    customer_id: int
    customer: Optional[CustomerOut] = None
    status: OrderStatus
    total_amount: float
    discount: Optional[float] = None
    discount_type: Optional[DiscountType] = None
    note: Optional[str] = None
    journal_entry_id: Optional[int] = None
    created_at: datetime
    items: List[OrderItemOut] = []
    paid_amount: float = 0
    payment_status: str = "unpaid"


class OrderNoOut(CamelModel):
    order_no: str


class PaymentIn(CamelModel):
    amount: float
    method: Optional[str] = None
    reference: Optional[str] = None


class PaymentOut(CamelModel):
    id: int
    order_id: int
    amount: float
    method: Optional[str] = None
    reference: Optional[str] = None
    status: PaymentStatus
    journal_entry_id: Optional[int] = None
    paid_at: datetime


# =============================================================================
# SHIPMENT
# =============================================================================

class ValidateBarcodeRequest(CamelModel):
    order_id: Optional[int] = None
    barcode: Optional[str] = None


class ValidateBarcodeOut(CamelModel):
    matched: bool
    already_scanned: bool = False
    match_type: Optional[str] = None
    item: Optional[OrderItemOut] = None
    stock: Optional[StockOut] = None
    divided: Optional[DividedOut] = None
    error: Optional[str] = None


class ScannedItemIn(CamelModel):
    order_item_id: int
    stock_id: Optional[int] = None
    divided_id: Optional[int] = None
    barcode: Optional[str] = None


class ProcessShipmentRequest(CamelModel):
    order_id: Optional[int] = None
    scanned_items: List[ScannedItemIn] = []
    notes: Optional[str] = None


class ShipmentItemOut(CamelModel):
    id: int
    order_item_id: int
    scanned_barcode: str
    stock_id: Optional[int] = None
    divided_id: Optional[int] = None


class ShipmentOut(CamelModel):
    id: int
    order_id: int
    order: Optional[OrderOut] = None
    shipped_by_id: Optional[int] = None
    shipment_date: datetime
    notes: Optional[str] = None
    items: List[ShipmentItemOut] = []


# =============================================================================
# FINANCE
# =============================================================================

class AccountCreate(CamelModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1)
    type: str
    description: Optional[str] = None


class AccountOut(CamelModel):
    id: int
    code: str
    name: str
    type: AccountType
    balance: float
    is_system_account: bool
    description: Optional[str] = None


class JournalLineIn(CamelModel):
    account_id: Optional[int] = None
    account_code: Optional[str] = None
    debit: float = 0
    credit: float = 0
    description: Optional[str] = None


class JournalEntryCreate(CamelModel):
    description: str
    reference: Optional[str] = None
    date: Optional[datetime] = None
    lines: List[JournalLineIn]


class JournalLineOut(CamelModel):
    id: int
    account_id: int
    account: Optional[AccountOut] = None
    description: Optional[str] = None
    debit: float
    credit: float


class JournalEntryOut(CamelModel):
    id: int
    entry_no: str
    date: datetime
    description: str
    reference: Optional[str] = None
    status: JournalStatus
    posted_at: Optional[datetime] = None
    total_debit: float
    total_credit: float
    lines: List[JournalLineOut] = []


class LedgerLineOut(CamelModel):
    date: datetime
    entry_no: str
    reference: Optional[str] = None
    description: Optional[str] = None
    debit: float
    credit: float
    balance: float


class LedgerOut(CamelModel):
    account: AccountOut
    lines: List[LedgerLineOut]
    balance: float
