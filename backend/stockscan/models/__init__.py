from .tenancy import Store
from .catalog import Product
from .inventory import InventoryRecord
from .sales import SaleGroup, SaleLine
from .debts import DebtEntry

__all__ = [
    'Store',
    'Product',
    'InventoryRecord',
    'SaleGroup', 'SaleLine',
    'DebtEntry',
]
