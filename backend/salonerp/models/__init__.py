from .locations import Location
from .staff import User, StaffMember, StaffLocation, StaffServiceLink
from .clients import Client
from .catalog import ServiceCategory, Service
from .inventory import Product, ProductLocation, InventoryAudit, StockTransfer
from .appointments import Appointment, AppointmentStatusEntry
from .sales import Transaction, TransactionItem

__all__ = [
    'Location',
    'User', 'StaffMember', 'StaffLocation', 'StaffServiceLink',
    'Client',
    'ServiceCategory', 'Service',
    'Product', 'ProductLocation', 'InventoryAudit', 'StockTransfer',
    'Appointment', 'AppointmentStatusEntry',
    'Transaction', 'TransactionItem',
]
