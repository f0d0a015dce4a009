"""Compare what staff declared for a shift with what the POS observed.

``reconcile`` is pure: the caller loads both sides (see ``shift_sources``) and
gets back one signed variance per compared field plus the breaches.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from shiftledger.models.core import StockFamily
from shiftledger.services.ledger import StockTolerances
from shiftledger.services.shift_window import ShiftWindow


@dataclass(frozen=True)
class StaffDeclared:
    total_sales: Optional[Decimal] = None
    cash_banked: Optional[Decimal] = None
    qr_banked: Optional[Decimal] = None
    stock_counts: Mapping[StockFamily, Optional[Decimal]] = field(default_factory=dict)


@dataclass(frozen=True)
class PosObserved:
    net_sales: Optional[Decimal] = None
    cash: Optional[Decimal] = None
    qr: Optional[Decimal] = None
    expected_stock: Mapping[StockFamily, Optional[Decimal]] = field(default_factory=dict)
    receipt_count: int = 0


@dataclass(frozen=True)
class ReconciliationTolerances:
    sales: Decimal = Decimal("100")
    cash: Decimal = Decimal("50")
    qr: Decimal = Decimal("50")
    stock: StockTolerances = field(default_factory=StockTolerances)

    @classmethod
    def from_settings(cls, s) -> "ReconciliationTolerances":
        return cls(
            sales=Decimal(s.SALES_TOLERANCE),
            cash=Decimal(s.CASH_TOLERANCE),
            qr=Decimal(s.QR_TOLERANCE),
            stock=StockTolerances.from_settings(s),
        )


@dataclass(frozen=True)
class FieldVariance:
    field: str
    staff_value: Optional[Decimal]
    pos_value: Optional[Decimal]
    variance: Optional[Decimal]
    tolerance: Decimal

    @property
    def flagged(self) -> bool:
        return self.variance is not None and abs(self.variance) > self.tolerance


@dataclass(frozen=True)
class ReconciliationResult:
    window: ShiftWindow
    fields: tuple[FieldVariance, ...]
    flags: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def balanced(self) -> bool:
        return not self.flags

    def get(self, name: str) -> Optional[FieldVariance]:
        return next((f for f in self.fields if f.field == name), None)


def _compare(name: str, staff, pos, tolerance: Decimal) -> FieldVariance:
    staff = None if staff is None else Decimal(str(staff))
    pos = None if pos is None else Decimal(str(pos))
    variance = None if staff is None or pos is None else staff - pos
    return FieldVariance(name, staff, pos, variance, Decimal(tolerance))


def reconcile(
    window: ShiftWindow,
    staff: StaffDeclared,
    pos: PosObserved,
    tolerances: ReconciliationTolerances = ReconciliationTolerances(),
) -> ReconciliationResult:
    compared = [
        _compare("total_sales", staff.total_sales, pos.net_sales, tolerances.sales),
        _compare("cash_banked", staff.cash_banked, pos.cash, tolerances.cash),
        _compare("qr_banked", staff.qr_banked, pos.qr, tolerances.qr),
    ]
    for family in StockFamily:
        compared.append(_compare(
            f"{family.value.lower()}_end",
            staff.stock_counts.get(family),
            pos.expected_stock.get(family),
            tolerances.stock.for_family(family),
        ))

    flags = tuple(
        f"{f.field}: staff {f.staff_value} vs POS {f.pos_value} (variance {f.variance:+}, tolerance {f.tolerance})"
        for f in compared if f.flagged
    )
    missing = tuple(f.field for f in compared if f.variance is None)
    return ReconciliationResult(window=window, fields=tuple(compared), flags=flags, missing=missing)
