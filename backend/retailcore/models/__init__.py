from .tenancy import Merchant, Shop
from .inventory import InventoryItem, ShopStock, StockMovement
from .promotions import Promotion
from .sales import Sale, SaleItem, Invoice, InvoiceSequence
from .sync import SyncLog

__all__ = [
    'Merchant', 'Shop',
    'InventoryItem', 'ShopStock', 'StockMovement',
    'Promotion',
    'Sale', 'SaleItem', 'Invoice', 'InvoiceSequence',
    'SyncLog',
]
