from pydantic import BaseModel
from typing import Optional, Literal
from datetime import date, datetime
from decimal import Decimal

from shiftledger.services.ledger import LedgerRow
from shiftledger.services.rebuild import RebuildOutcome
from shiftledger.services.shift_window import ShiftWindow

LedgerStatusLiteral = Literal["OK", "ALERT", "MISSING_DATA"]

def _f(v: Decimal | None) -> Optional[float]:
    return None if v is None else float(v)

class ShiftWindowOut(BaseModel):
    shift_date: date
    start_utc: datetime
    end_utc: datetime

    @classmethod
    def from_window(cls, w: ShiftWindow) -> "ShiftWindowOut":
        return cls(shift_date=w.shift_date, start_utc=w.start_utc, end_utc=w.end_utc)

class ShiftContainingOut(BaseModel):
    at: datetime
    shift_date: date
    in_window: bool

class LedgerRowOut(BaseModel):
    family: str
    shift_date: date
    start_qty: Optional[float] = None
    purchased_qty: float                      # effective (manual wins)
    purchased_derived: float
    purchased_manual: Optional[float] = None
    usage_qty: float
    expected_end_qty: Optional[float] = None
    actual_end_qty: Optional[float] = None    # effective (manual wins)
    actual_end_declared: Optional[float] = None
    actual_end_manual: Optional[float] = None
    variance_qty: Optional[float] = None
    tolerance: float
    status: LedgerStatusLiteral
    approved: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, r: LedgerRow) -> "LedgerRowOut":
        return cls(
            family=r.family.value,
            shift_date=r.shift_date,
            start_qty=_f(r.start_qty),
            purchased_qty=float(r.effective_purchased),
            purchased_derived=float(r.purchased_qty),
            purchased_manual=_f(r.overrides.purchased_manual),
            usage_qty=float(r.usage_qty),
            expected_end_qty=_f(r.expected_end_qty),
            actual_end_qty=_f(r.effective_actual_end),
            actual_end_declared=_f(r.actual_end_qty),
            actual_end_manual=_f(r.overrides.actual_end_manual),
            variance_qty=_f(r.variance_qty),
            tolerance=float(r.tolerance),
            status=r.status.value,
            approved=r.approved,
            notes=r.notes,
        )

class RebuildOutcomeOut(BaseModel):
    shift_date: date
    ok: bool
    row: Optional[LedgerRowOut] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, o: RebuildOutcome) -> "RebuildOutcomeOut":
        return cls(shift_date=o.shift_date, ok=o.ok, row=LedgerRowOut.from_row(o.row) if o.row else None, error=o.error)

class RebuildRangeOut(BaseModel):
    family: str
    start: date
    end: date
    rebuilt: int
    failed: int
    results: list[RebuildOutcomeOut]

class ManualAmendIn(BaseModel):
    shift_date: str
    purchased_manual: Optional[Decimal] = None
    actual_end_manual: Optional[Decimal] = None
    notes: Optional[str] = None

class ApproveIn(BaseModel):
    shift_date: str
    approved: bool = True
