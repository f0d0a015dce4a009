# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    StockFamily, LedgerStatus, PayMethod,

    # Engine-owned tables
    StockLedger, PnLSnapshotRow,

    # POS import
    PosReceipt, PosReceiptLine, StockItemRule,

    # Staff forms & expenses
    StockPurchase, DailySalesForm, Expense,

    # Audit
    AuditLog,
)

__all__ = [
    "StockFamily", "LedgerStatus", "PayMethod",
    "StockLedger", "PnLSnapshotRow",
    "PosReceipt", "PosReceiptLine", "StockItemRule",
    "StockPurchase", "DailySalesForm", "Expense",
    "AuditLog",
]
