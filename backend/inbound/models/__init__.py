from .master import Item, PurchaseOrder, PurchaseOrderLine, Location, User
from .tags import TagRegistration
from .receiving import ReceiptLedger, IdempotencyRecord, ScopeLock
from .presence import PresenceState

__all__ = [
    'Item', 'PurchaseOrder', 'PurchaseOrderLine', 'Location', 'User',
    'TagRegistration',
    'ReceiptLedger', 'IdempotencyRecord', 'ScopeLock',
    'PresenceState',
]
