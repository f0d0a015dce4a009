from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Date, Integer, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import date, datetime
from decimal import Decimal
from shiftledger.db import Base
from shiftledger.models.common import IdMixin, TSMMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class StockFamily(PyEnum):
    ROLLS = "ROLLS"    # burger rolls, units
    MEAT = "MEAT"      # minced beef, grams
    DRINKS = "DRINKS"  # canned/bottled drinks, units

class LedgerStatus(PyEnum):
    OK = "OK"
    ALERT = "ALERT"
    MISSING_DATA = "MISSING_DATA"

class PayMethod(PyEnum):
    CASH = "CASH"
    QR = "QR"
    CARD = "CARD"
    GRAB = "GRAB"
    OTHER = "OTHER"

# ── Stock ledger (one row per family x shift date) ──────────────────────────
class StockLedger(Base, IdMixin, TSMMixin):
    __tablename__ = "stock_ledger"
    family: Mapped[StockFamily] = mapped_column(Enum(StockFamily))
    shift_date: Mapped[date] = mapped_column(Date)
    start_qty: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))        # prior day's actual end
    purchased_qty: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    purchased_manual: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    usage_qty: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    expected_end_qty: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    actual_end_qty: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))   # staff-declared
    actual_end_manual: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    variance_qty: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    tolerance: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    status: Mapped[LedgerStatus] = mapped_column(Enum(LedgerStatus), default=LedgerStatus.MISSING_DATA)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    __table_args__ = (
        UniqueConstraint("family", "shift_date", name="uq_stock_ledger_key"),
    )

# ── P&L snapshot (one row per inclusive period) ─────────────────────────────
class PnLSnapshotRow(Base, IdMixin, TSMMixin):
    __tablename__ = "pnl_snapshot"
    period_start: Mapped[date] = mapped_column(Date)
    period_end: Mapped[date] = mapped_column(Date)
    revenue_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    expense_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    pos_receipt_count: Mapped[int] = mapped_column(Integer, default=0)
    revenue_checksum: Mapped[str] = mapped_column(String(64))
    expense_checksum: Mapped[str] = mapped_column(String(64))
    built_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    __table_args__ = (
        UniqueConstraint("period_start", "period_end", name="uq_pnl_snapshot_period"),
    )

# ── POS import (written by the import layer, read by the engine) ────────────
class PosReceipt(Base, IdMixin, TSMMixin):
    __tablename__ = "pos_receipt"
    receipt_no: Mapped[str] = mapped_column(String(60), unique=True)
    created_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    net_sales: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    payment_method: Mapped[PayMethod] = mapped_column(Enum(PayMethod), default=PayMethod.CASH)
    refunded: Mapped[bool] = mapped_column(Boolean, default=False)

class PosReceiptLine(Base, IdMixin, TSMMixin):
    __tablename__ = "pos_receipt_line"
    receipt_id: Mapped[str] = mapped_column(String(36), ForeignKey("pos_receipt.id"))
    sku: Mapped[str | None] = mapped_column(String(60))
    name: Mapped[str] = mapped_column(String(160))
    qty: Mapped[Decimal] = mapped_column(Numeric(12, 3))

class StockItemRule(Base, IdMixin, TSMMixin):
    # which stock each sold SKU consumes; configuration data, not logic
    __tablename__ = "stock_item_rule"
    sku: Mapped[str] = mapped_column(String(60), unique=True)
    rolls_per: Mapped[Decimal] = mapped_column(Numeric(8, 3), default=0)
    patties_per: Mapped[Decimal] = mapped_column(Numeric(8, 3), default=0)
    drinks_per: Mapped[Decimal] = mapped_column(Numeric(8, 3), default=0)

# ── Staff-declared inputs (CRUD forms) ──────────────────────────────────────
class StockPurchase(Base, IdMixin, TSMMixin):
    __tablename__ = "stock_purchase"
    family: Mapped[StockFamily] = mapped_column(Enum(StockFamily))
    shift_date: Mapped[date] = mapped_column(Date)
    qty: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    supplier: Mapped[str | None] = mapped_column(String(160))
    note: Mapped[str | None] = mapped_column(Text)

class DailySalesForm(Base, IdMixin, TSMMixin):
    # shift_date may be filed as D-1, D or D+1 depending on the submitting device
    __tablename__ = "daily_sales_form"
    shift_date: Mapped[date] = mapped_column(Date)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    completed_by: Mapped[str | None] = mapped_column(String(120))
    total_sales: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    cash_sales: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    qr_sales: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    cash_banked: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    qr_banked: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    rolls_end: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    meat_end_g: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    drinks_end: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))

class Expense(Base, IdMixin, TSMMixin):
    __tablename__ = "expense"
    expense_date: Mapped[date] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    category: Mapped[str | None] = mapped_column(String(60))
    supplier: Mapped[str | None] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text)

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor_user_id: Mapped[str] = mapped_column(String(120))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(60))
    action: Mapped[str] = mapped_column(String(60))
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
