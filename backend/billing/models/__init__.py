from .business import Business, User, SessionToken
from .catalog import Product, Party
from .invoices import Invoice, InvoiceLine
from .estimates import Estimate, EstimateLine
from .purchases import Purchase, PurchaseLine, Expense
from .ledger import LedgerEntry, AuditLog
from .security import RateLimitWindow

__all__ = [
    'Business', 'User', 'SessionToken',
    'Product', 'Party',
    'Invoice', 'InvoiceLine',
    'Estimate', 'EstimateLine',
    'Purchase', 'PurchaseLine', 'Expense',
    'LedgerEntry', 'AuditLog',
    'RateLimitWindow',
]
