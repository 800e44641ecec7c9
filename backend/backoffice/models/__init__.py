from .auth import User, SessionToken
from .catalog import Category, Product, Lot
from .ledger import StockLedgerEntry, IdentifierSequence
from .billing import Customer, Bill, BillItem, BillCharge, FittingService
from .stock_documents import Return, ReturnItem, Wastage, StockAudit, StockAuditItem

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'Lot',
    'StockLedgerEntry', 'IdentifierSequence',
    'Customer', 'Bill', 'BillItem', 'BillCharge', 'FittingService',
    'Return', 'ReturnItem', 'Wastage', 'StockAudit', 'StockAuditItem',
]
