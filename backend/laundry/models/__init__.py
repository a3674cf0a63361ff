from .tenancy import Tenant
from .items import Item, Alert
from .pickups import Pickup, PickupItem
from .deliveries import Delivery, DeliveryItem, DeliveryPackage
from .records import AuditEntry, BarcodeSequence
from .scans import ScanConflict, ScanEvent, ScanSession

__all__ = [
    'Tenant',
    'Item', 'Alert',
    'Pickup', 'PickupItem',
    'Delivery', 'DeliveryItem', 'DeliveryPackage',
    'AuditEntry', 'BarcodeSequence',
    'ScanSession', 'ScanEvent', 'ScanConflict',
]
