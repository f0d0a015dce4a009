"""Per-family stock ledger arithmetic.

start (prior day's actual end) + purchased - POS usage = expected end, and the
staff-declared (or manually amended) actual end is compared against it. Pure
functions only: nothing here touches storage.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from shiftledger.models.core import LedgerStatus, StockFamily


@dataclass(frozen=True)
class StockTolerances:
    rolls: Decimal = Decimal("5")
    meat: Decimal = Decimal("500")
    drinks: Decimal = Decimal("2")

    def for_family(self, family: StockFamily) -> Decimal:
        return {
            StockFamily.ROLLS: self.rolls,
            StockFamily.MEAT: self.meat,
            StockFamily.DRINKS: self.drinks,
        }[family]

    @classmethod
    def from_settings(cls, s) -> "StockTolerances":
        return cls(rolls=Decimal(s.ROLLS_TOLERANCE), meat=Decimal(s.MEAT_TOLERANCE_G), drinks=Decimal(s.DRINKS_TOLERANCE))


@dataclass(frozen=True)
class LedgerOverrides:
    """Human corrections; authoritative over derived values and kept across rebuilds."""
    purchased_manual: Optional[Decimal] = None
    actual_end_manual: Optional[Decimal] = None


@dataclass(frozen=True)
class LedgerRow:
    family: StockFamily
    shift_date: date
    start_qty: Optional[Decimal]
    purchased_qty: Decimal
    usage_qty: Decimal
    expected_end_qty: Optional[Decimal]
    actual_end_qty: Optional[Decimal]
    variance_qty: Optional[Decimal]
    tolerance: Decimal
    status: LedgerStatus
    overrides: LedgerOverrides = field(default_factory=LedgerOverrides)
    approved: bool = False
    notes: Optional[str] = None

    @property
    def effective_purchased(self) -> Decimal:
        if self.overrides.purchased_manual is not None:
            return self.overrides.purchased_manual
        return self.purchased_qty

    @property
    def effective_actual_end(self) -> Optional[Decimal]:
        if self.overrides.actual_end_manual is not None:
            return self.overrides.actual_end_manual
        return self.actual_end_qty


def _dec(v) -> Optional[Decimal]:
    if v is None:
        return None
    return v if isinstance(v, Decimal) else Decimal(str(v))


def classify(variance: Optional[Decimal], tolerance: Decimal) -> LedgerStatus:
    if variance is None:
        return LedgerStatus.MISSING_DATA
    return LedgerStatus.ALERT if abs(variance) > tolerance else LedgerStatus.OK


def compute_ledger(
    family: StockFamily,
    shift_date: date,
    prior_actual_end,
    purchased_qty,
    usage_qty,
    declared_actual_end,
    overrides: Optional[LedgerOverrides] = None,
    tolerance=Decimal(0),
    approved: bool = False,
    notes: Optional[str] = None,
) -> LedgerRow:
    if usage_qty is None:
        raise ValueError(f"usage for {family.value} {shift_date} is required; an unavailable source must raise")
    overrides = overrides or LedgerOverrides()
    start = _dec(prior_actual_end)
    purchased = _dec(purchased_qty) or Decimal(0)
    usage = _dec(usage_qty)
    declared = _dec(declared_actual_end)
    tol = _dec(tolerance)

    effective_purchased = overrides.purchased_manual if overrides.purchased_manual is not None else purchased
    actual = overrides.actual_end_manual if overrides.actual_end_manual is not None else declared

    # negative expected ends are over-reporting signals, never clamped
    expected = None if start is None else start + effective_purchased - usage
    variance = None if expected is None or actual is None else actual - expected

    return LedgerRow(
        family=family,
        shift_date=shift_date,
        start_qty=start,
        purchased_qty=purchased,
        usage_qty=usage,
        expected_end_qty=expected,
        actual_end_qty=declared,
        variance_qty=variance,
        tolerance=tol,
        status=classify(variance, tol),
        overrides=overrides,
        approved=approved,
        notes=notes,
    )
