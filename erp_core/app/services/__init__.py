"""
Services package initialization.
Business logic layer for roll inventory, sales, shipment and the ledger.
"""

from .inventory_service import (
    StockService,
    DivisionService,
    proportional_weight,
)
from .inspection_service import InspectionService
from .sales_service import CustomerService, OrderService, compute_total, payment_status
from .shipment_service import ShipmentService
from .finance_service import (
    AccountService,
    JournalService,
    ReportService,
    ReceivablesService,
    paid_by_order,
)
from .numbering import generate_roll_no, generate_order_no, generate_entry_no

__all__ = [
    'StockService',
    'DivisionService',
    'proportional_weight',
    'InspectionService',
    'CustomerService',
    'OrderService',
    'compute_total',
    'payment_status',
    'ShipmentService',
    'AccountService',
    'JournalService',
    'ReportService',
    'ReceivablesService',
    'paid_by_order',
    'generate_roll_no',
    'generate_order_no',
    'generate_entry_no',
]
