from .inventory import Supplier, Product, Purchase
from .sales import Sale, SaleItem

__all__ = [
    'Supplier', 'Product', 'Purchase',
    'Sale', 'SaleItem',
]
