from .inventory import InventoryItem, InventoryMovement
from .customers import Customer, CustomerNote
from .sales import Sale, SaleNote
from .service_tickets import Service, ServiceNote, ServiceStatusChange

__all__ = [
    'InventoryItem', 'InventoryMovement',
    'Customer', 'CustomerNote',
    'Sale', 'SaleNote',
    'Service', 'ServiceNote', 'ServiceStatusChange',
]
