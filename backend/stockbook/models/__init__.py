from .auth import User, SessionToken
from .catalog import Category, Product
from .customers import Customer
from .invoices import Invoice, InvoiceItem, InvoiceSequence
from .inventory import StockMovement

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product',
    'Customer',
    'Invoice', 'InvoiceItem', 'InvoiceSequence',
    'StockMovement',
]
