from .tables import Table, TableSession, TimeExtension
from .catalog import Product, ComboItem, ComboComponent
from .inventory import InventoryLedgerEntry
from .orders import OrderItem, ProductRef, ComboRef, ItemRef
from .transactions import Transaction
from .settings import Setting

__all__ = [
    'Table', 'TableSession', 'TimeExtension',
    'Product', 'ComboItem', 'ComboComponent',
    'InventoryLedgerEntry',
    'OrderItem', 'ProductRef', 'ComboRef', 'ItemRef',
    'Transaction',
    'Setting',
]
