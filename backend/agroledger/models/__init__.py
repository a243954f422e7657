from .catalog import Product
from .clients import Client, PaymentRecord
from .sales import Sale, SaleItem
from .expenses import Expense, Setting

__all__ = [
    'Product',
    'Client', 'PaymentRecord',
    'Sale', 'SaleItem',
    'Expense', 'Setting',
]
