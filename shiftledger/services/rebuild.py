"""Drive the ledger calculator over shift dates and persist the results.

Each date reads the previous date's *persisted* actual end, so a range is
always walked oldest first, one date at a time.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from shiftledger.errors import InvalidPeriod, LedgerError
from shiftledger.models.core import StockFamily
from shiftledger.services.ledger import LedgerOverrides, LedgerRow, StockTolerances, compute_ledger
from shiftledger.services.ledger_store import LedgerStore
from shiftledger.services.shift_window import DEFAULT_CALENDAR, ShiftCalendar, iter_dates, parse_shift_date
from shiftledger.services.usage import UsageSource

logger = logging.getLogger(__name__)


class ShiftInputs(Protocol):
    def get_purchased(self, family: StockFamily, shift_date: date) -> Decimal: ...
    def get_declared_actual_end(self, family: StockFamily, shift_date: date) -> Optional[Decimal]: ...


@dataclass(frozen=True)
class RebuildOutcome:
    shift_date: date
    row: Optional[LedgerRow] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LedgerRebuilder:
    def __init__(self, store: LedgerStore, usage: UsageSource, inputs: ShiftInputs,
                 tolerances: StockTolerances = StockTolerances(), calendar: ShiftCalendar = DEFAULT_CALENDAR):
        self.store = store
        self.usage = usage
        self.inputs = inputs
        self.tolerances = tolerances
        self.calendar = calendar

    def _compute(self, family: StockFamily, d: date, overrides: Optional[LedgerOverrides] = None,
                 notes: Optional[str] = None) -> LedgerRow:
        """Read every input for ``d`` and return the row; writes nothing.

        With ``overrides`` the given overrides and notes replace the stored
        ones, otherwise the stored row's are carried over.
        """
        window = self.calendar.resolve(d)
        prior = self.store.get_row(family, d - timedelta(days=1))
        current = self.store.get_row(family, d)
        usage = self.usage.get_usage(family, window)

        if overrides is None:
            overrides = current.overrides if current else LedgerOverrides()
            notes = current.notes if current else None

        return compute_ledger(
            family,
            d,
            prior_actual_end=prior.effective_actual_end if prior else None,
            purchased_qty=self.inputs.get_purchased(family, d),
            usage_qty=usage,
            declared_actual_end=self.inputs.get_declared_actual_end(family, d),
            overrides=overrides,
            tolerance=self.tolerances.for_family(family),
            approved=current.approved if current else False,
            notes=notes,
        )

    def _save(self, row: LedgerRow) -> LedgerRow:
        self.store.upsert_row(row)
        logger.info("ledger %s %s: start=%s purchased=%s usage=%s expected=%s actual=%s variance=%s status=%s",
                    row.family.value, row.shift_date, row.start_qty, row.effective_purchased, row.usage_qty,
                    row.expected_end_qty, row.effective_actual_end, row.variance_qty, row.status.value)
        return row

    def rebuild(self, family: StockFamily, shift_date) -> LedgerRow:
        d = parse_shift_date(shift_date)
        return self._save(self._compute(family, d))

    def rebuild_range(self, family: StockFamily, start, end) -> list[RebuildOutcome]:
        s, e = parse_shift_date(start), parse_shift_date(end)
        if s > e:
            raise InvalidPeriod(s, e)
        out: list[RebuildOutcome] = []
        for d in iter_dates(s, e):
            try:
                out.append(RebuildOutcome(d, row=self.rebuild(family, d)))
            except (LedgerError, SQLAlchemyError) as exc:
                logger.exception("ledger %s %s: rebuild failed", family.value, d)
                out.append(RebuildOutcome(d, error=str(exc)))
        return out

    def backfill(self, family: StockFamily, days: int, today: date) -> list[RebuildOutcome]:
        return self.rebuild_range(family, today - timedelta(days=days - 1), today)

    def amend(self, family: StockFamily, shift_date, purchased_manual: Optional[Decimal],
              actual_end_manual: Optional[Decimal], notes: Optional[str]) -> LedgerRow:
        d = parse_shift_date(shift_date)
        # one upsert after every read, so a failed usage call leaves the stored row as it was
        overrides = LedgerOverrides(purchased_manual=purchased_manual, actual_end_manual=actual_end_manual)
        return self._save(self._compute(family, d, overrides=overrides, notes=notes))

    def approve(self, family: StockFamily, shift_date, approved: bool = True) -> Optional[LedgerRow]:
        d = parse_shift_date(shift_date)
        if not self.store.set_approved(family, d, approved):
            return None
        return self.store.get_row(family, d)
