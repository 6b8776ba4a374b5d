from .catalog import Brand, Category, Product, Customer
from .orders import Order, OrderItem
from .inventory import InventoryItem, StockAdjustment
from .billing import Payment, Invoice, InvoiceItem
from .documents import DocumentSequence, LedgerEvent

__all__ = [
    'Brand', 'Category', 'Product', 'Customer',
    'Order', 'OrderItem',
    'InventoryItem', 'StockAdjustment',
    'Payment', 'Invoice', 'InvoiceItem',
    'DocumentSequence', 'LedgerEvent',
]
