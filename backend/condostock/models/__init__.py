from .inventory import Product, Batch, Stock
from .residents import Resident, ResidentAccount
from .sales import Sale, SaleItem
from .auth import SessionToken

__all__ = [
    'Product', 'Batch', 'Stock',
    'Resident', 'ResidentAccount',
    'Sale', 'SaleItem',
    'SessionToken',
]
