from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shiftledger.errors import LedgerStoreError
from shiftledger.models.core import StockFamily, StockLedger
from shiftledger.services.ledger import LedgerOverrides, LedgerRow


class LedgerStore(Protocol):
    def get_row(self, family: StockFamily, shift_date: date) -> Optional[LedgerRow]: ...
    def upsert_row(self, row: LedgerRow) -> None: ...
    def get_range(self, family: StockFamily, start: date, end: date) -> list[LedgerRow]: ...
    def set_manual(self, family: StockFamily, shift_date: date, purchased_manual: Optional[Decimal],
                   actual_end_manual: Optional[Decimal], notes: Optional[str]) -> bool: ...
    def set_approved(self, family: StockFamily, shift_date: date, approved: bool) -> bool: ...


def to_row(r: StockLedger) -> LedgerRow:
    return LedgerRow(
        family=r.family,
        shift_date=r.shift_date,
        start_qty=r.start_qty,
        purchased_qty=r.purchased_qty,
        usage_qty=r.usage_qty,
        expected_end_qty=r.expected_end_qty,
        actual_end_qty=r.actual_end_qty,
        variance_qty=r.variance_qty,
        tolerance=r.tolerance,
        status=r.status,
        overrides=LedgerOverrides(purchased_manual=r.purchased_manual, actual_end_manual=r.actual_end_manual),
        approved=bool(r.approved),
        notes=r.notes,
    )


def _payload(row: LedgerRow) -> dict:
    return dict(
        family=row.family,
        shift_date=row.shift_date,
        start_qty=row.start_qty,
        purchased_qty=row.purchased_qty,
        purchased_manual=row.overrides.purchased_manual,
        usage_qty=row.usage_qty,
        expected_end_qty=row.expected_end_qty,
        actual_end_qty=row.actual_end_qty,
        actual_end_manual=row.overrides.actual_end_manual,
        variance_qty=row.variance_qty,
        tolerance=row.tolerance,
        status=row.status,
        approved=row.approved,
        notes=row.notes,
    )


class SqlLedgerStore:
    """Ledger rows in ``stock_ledger``; uniqueness of (family, shift_date) is the DB's job."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, family: StockFamily, shift_date: date) -> Optional[StockLedger]:
        return (
            self.db.query(StockLedger)
            .filter(StockLedger.family == family, StockLedger.shift_date == shift_date)
            .first()
        )

    def get_row(self, family, shift_date):
        try:
            r = self._find(family, shift_date)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"read {family.value} {shift_date} failed: {e}") from e
        return to_row(r) if r else None

    def get_range(self, family, start, end):
        try:
            rows = (
                self.db.query(StockLedger)
                .filter(StockLedger.family == family, StockLedger.shift_date >= start, StockLedger.shift_date <= end)
                .order_by(StockLedger.shift_date.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"range {family.value} {start}..{end} failed: {e}") from e
        return [to_row(r) for r in rows]

    def _write(self, payload: dict):
        row = self._find(payload["family"], payload["shift_date"])
        if not row:
            self.db.add(StockLedger(**payload))
        else:
            for k, v in payload.items():
                setattr(row, k, v)
        self.db.commit()

    def upsert_row(self, row):
        payload = _payload(row)
        try:
            try:
                self._write(payload)
            except IntegrityError:
                # a concurrent rebuild inserted the same key first; last writer wins
                self.db.rollback()
                self._write(payload)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"upsert {row.family.value} {row.shift_date} failed: {e}") from e

    def _update(self, family, shift_date, **fields) -> bool:
        try:
            row = self._find(family, shift_date)
            if not row:
                return False
            for k, v in fields.items():
                setattr(row, k, v)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerStoreError(f"update {family.value} {shift_date} failed: {e}") from e
        return True

    def set_manual(self, family, shift_date, purchased_manual, actual_end_manual, notes):
        return self._update(family, shift_date, purchased_manual=purchased_manual,
                            actual_end_manual=actual_end_manual, notes=notes)

    def set_approved(self, family, shift_date, approved):
        return self._update(family, shift_date, approved=approved)
