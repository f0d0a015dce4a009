"""Period P&L snapshots.

A snapshot is keyed by its inclusive ``(period_start, period_end)`` and is
rebuilt by upsert, never appended. Each side carries a SHA-256 checksum of the
ordered rows that fed its total, so two builds can be compared without
re-reading the rows.
"""
import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shiftledger.errors import InvalidPeriod, LedgerStoreError
from shiftledger.models.common import utcnow
from shiftledger.models.core import Expense, PnLSnapshotRow, PosReceipt
from shiftledger.services.shift_window import DEFAULT_CALENDAR, ShiftCalendar, as_utc, parse_shift_date


def _money(x) -> Decimal:
    return Decimal(str(x or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RevenueRow:
    id: str
    receipt_no: str
    created_at: datetime
    amount: Decimal

    def canonical(self) -> list:
        return [self.id, self.receipt_no, as_utc(self.created_at).isoformat(), str(_money(self.amount))]


@dataclass(frozen=True)
class ExpenseRow:
    id: str
    expense_date: date
    amount: Decimal

    def canonical(self) -> list:
        return [self.id, self.expense_date.isoformat(), str(_money(self.amount))]


@dataclass(frozen=True)
class PnLSnapshot:
    period_start: date
    period_end: date
    revenue_total: Decimal
    expense_total: Decimal
    pos_receipt_count: int
    revenue_checksum: str
    expense_checksum: str
    built_at: datetime

    @property
    def profit_total(self) -> Decimal:
        return self.revenue_total - self.expense_total


def checksum(rows: Sequence) -> str:
    payload = json.dumps([r.canonical() for r in rows], sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SnapshotStore(Protocol):
    def get_revenue_rows(self, start: date, end: date) -> list[RevenueRow]: ...
    def get_expense_rows(self, start: date, end: date) -> list[ExpenseRow]: ...
    def upsert_snapshot(self, snap: PnLSnapshot) -> None: ...
    def get_snapshot(self, start: date, end: date) -> Optional[PnLSnapshot]: ...
    def list_snapshots(self, limit: int = 50) -> list[PnLSnapshot]: ...


def _to_snapshot(r: PnLSnapshotRow) -> PnLSnapshot:
    return PnLSnapshot(
        period_start=r.period_start,
        period_end=r.period_end,
        revenue_total=_money(r.revenue_total),
        expense_total=_money(r.expense_total),
        pos_receipt_count=r.pos_receipt_count,
        revenue_checksum=r.revenue_checksum,
        expense_checksum=r.expense_checksum,
        built_at=as_utc(r.built_at),
    )


class SqlSnapshotStore:
    def __init__(self, db: Session, calendar: ShiftCalendar = DEFAULT_CALENDAR):
        self.db = db
        self.calendar = calendar

    def get_revenue_rows(self, start, end):
        # revenue belongs to business dates: from the first shift's open to the last shift's close
        lo, hi = self.calendar.resolve(start).start_utc, self.calendar.resolve(end).end_utc
        try:
            rows = (
                self.db.query(PosReceipt)
                .filter(PosReceipt.created_at_utc >= lo, PosReceipt.created_at_utc < hi, PosReceipt.refunded.is_(False))
                .order_by(PosReceipt.created_at_utc.asc(), PosReceipt.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"revenue rows {start}..{end} failed: {e}") from e
        return [RevenueRow(r.id, r.receipt_no, r.created_at_utc, _money(r.net_sales)) for r in rows]

    def get_expense_rows(self, start, end):
        try:
            rows = (
                self.db.query(Expense)
                .filter(Expense.expense_date >= start, Expense.expense_date <= end)
                .order_by(Expense.expense_date.asc(), Expense.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"expense rows {start}..{end} failed: {e}") from e
        return [ExpenseRow(r.id, r.expense_date, _money(r.amount)) for r in rows]

    def _find(self, start, end) -> Optional[PnLSnapshotRow]:
        return (
            self.db.query(PnLSnapshotRow)
            .filter(PnLSnapshotRow.period_start == start, PnLSnapshotRow.period_end == end)
            .first()
        )

    def _write(self, payload: dict):
        row = self._find(payload["period_start"], payload["period_end"])
        if not row:
            self.db.add(PnLSnapshotRow(**payload))
        else:
            for k, v in payload.items():
                setattr(row, k, v)
        self.db.commit()

    def upsert_snapshot(self, snap):
        payload = dict(
            period_start=snap.period_start,
            period_end=snap.period_end,
            revenue_total=snap.revenue_total,
            expense_total=snap.expense_total,
            pos_receipt_count=snap.pos_receipt_count,
            revenue_checksum=snap.revenue_checksum,
            expense_checksum=snap.expense_checksum,
            built_at=snap.built_at,
        )
        try:
            try:
                self._write(payload)
            except IntegrityError:
                self.db.rollback()
                self._write(payload)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"snapshot {snap.period_start}..{snap.period_end} failed: {e}") from e

    def get_snapshot(self, start, end):
        try:
            r = self._find(start, end)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"snapshot lookup {start}..{end} failed: {e}") from e
        return _to_snapshot(r) if r else None

    def list_snapshots(self, limit=50):
        try:
            rows = self.db.query(PnLSnapshotRow).order_by(PnLSnapshotRow.built_at.desc()).limit(limit).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"snapshot history failed: {e}") from e
        return [_to_snapshot(r) for r in rows]


class SnapshotBuilder:
    def __init__(self, store: SnapshotStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def build(self, period_start, period_end) -> PnLSnapshot:
        start, end = parse_shift_date(period_start), parse_shift_date(period_end)
        if start > end:
            raise InvalidPeriod(start, end)

        revenue = self.store.get_revenue_rows(start, end)
        expenses = self.store.get_expense_rows(start, end)

        snap = PnLSnapshot(
            period_start=start,
            period_end=end,
            revenue_total=_money(sum((r.amount for r in revenue), Decimal(0))),
            expense_total=_money(sum((r.amount for r in expenses), Decimal(0))),
            pos_receipt_count=len(revenue),
            revenue_checksum=checksum(revenue),
            expense_checksum=checksum(expenses),
            built_at=self.clock(),
        )
        self.store.upsert_snapshot(snap)
        return snap
