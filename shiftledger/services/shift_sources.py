"""Readers for the staff-declared and POS-observed figures of one shift.

These sit on the CRUD side of the engine: they turn stored forms, purchases
and receipts into the typed records the pure calculators consume.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shiftledger.errors import LedgerStoreError
from shiftledger.models.core import DailySalesForm, PayMethod, PosReceipt, StockFamily, StockPurchase
from shiftledger.services.ledger import LedgerRow
from shiftledger.services.reconciliation import PosObserved, StaffDeclared
from shiftledger.services.shift_window import DEFAULT_CALENDAR, ShiftCalendar, ShiftWindow

_FORM_COLUMN = {
    StockFamily.ROLLS: "rolls_end",
    StockFamily.MEAT: "meat_end_g",
    StockFamily.DRINKS: "drinks_end",
}


def find_daily_sales_form(db: Session, shift_date: date, calendar: ShiftCalendar = DEFAULT_CALENDAR) -> Optional[DailySalesForm]:
    try:
        candidates = (
            db.query(DailySalesForm)
            .filter(
                DailySalesForm.shift_date.in_([shift_date - timedelta(days=1), shift_date, shift_date + timedelta(days=1)]),
                DailySalesForm.deleted_at.is_(None),
            )
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise LedgerStoreError(f"daily sales form lookup for {shift_date} failed: {e}") from e
    return calendar.select_candidate(candidates, shift_date, key=lambda f: f.shift_date, stamp=lambda f: f.created_at)


class SqlShiftInputs:
    """Purchases from ``stock_purchase``, closing counts from the daily sales form."""

    def __init__(self, db: Session, calendar: ShiftCalendar = DEFAULT_CALENDAR):
        self.db = db
        self.calendar = calendar

    def get_purchased(self, family: StockFamily, shift_date: date) -> Decimal:
        try:
            total = (
                self.db.query(func.coalesce(func.sum(StockPurchase.qty), 0))
                .filter(StockPurchase.family == family, StockPurchase.shift_date == shift_date)
                .scalar()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"purchases {family.value} {shift_date} failed: {e}") from e
        return Decimal(str(total or 0))

    def get_declared_actual_end(self, family: StockFamily, shift_date: date) -> Optional[Decimal]:
        form = find_daily_sales_form(self.db, shift_date, self.calendar)
        if form is None:
            return None
        return getattr(form, _FORM_COLUMN[family])


def load_staff_declared(db: Session, shift_date: date, calendar: ShiftCalendar = DEFAULT_CALENDAR) -> StaffDeclared:
    form = find_daily_sales_form(db, shift_date, calendar)
    if form is None:
        return StaffDeclared()
    return StaffDeclared(
        total_sales=form.total_sales,
        cash_banked=form.cash_banked,
        qr_banked=form.qr_banked,
        stock_counts={fam: getattr(form, col) for fam, col in _FORM_COLUMN.items()},
    )


def load_pos_observed(db: Session, window: ShiftWindow, ledger_rows: Iterable[LedgerRow] = ()) -> PosObserved:
    try:
        rows = (
            db.query(PosReceipt.payment_method, func.count(PosReceipt.id), func.coalesce(func.sum(PosReceipt.net_sales), 0))
            .filter(
                PosReceipt.created_at_utc >= window.start_utc,
                PosReceipt.created_at_utc < window.end_utc,
                PosReceipt.refunded.is_(False),
            )
            .group_by(PosReceipt.payment_method)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise LedgerStoreError(f"POS totals for {window.shift_date} failed: {e}") from e
    by_method = {method: Decimal(str(amount)) for method, _, amount in rows}
    receipts = sum(n for _, n, _ in rows)
    return PosObserved(
        net_sales=sum(by_method.values(), Decimal(0)) if receipts else None,
        cash=by_method.get(PayMethod.CASH, Decimal(0)) if receipts else None,
        qr=by_method.get(PayMethod.QR, Decimal(0)) if receipts else None,
        expected_stock={r.family: r.expected_end_qty for r in ledger_rows},
        receipt_count=receipts,
    )
