from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime

from shiftledger.services.reconciliation import ReconciliationResult
from shiftledger.services.snapshot import PnLSnapshot
from shiftledger.schemas.ledger import ShiftWindowOut

class PnLSnapshotOut(BaseModel):
    period_start: date
    period_end: date
    revenue_total: float
    expense_total: float
    profit_total: float
    pos_receipt_count: int
    revenue_checksum: str
    expense_checksum: str
    built_at: datetime

    @classmethod
    def from_snapshot(cls, s: PnLSnapshot) -> "PnLSnapshotOut":
        return cls(
            period_start=s.period_start,
            period_end=s.period_end,
            revenue_total=float(s.revenue_total),
            expense_total=float(s.expense_total),
            profit_total=float(s.profit_total),
            pos_receipt_count=s.pos_receipt_count,
            revenue_checksum=s.revenue_checksum,
            expense_checksum=s.expense_checksum,
            built_at=s.built_at,
        )

class FieldVarianceOut(BaseModel):
    field: str
    staff_value: Optional[float] = None
    pos_value: Optional[float] = None
    variance: Optional[float] = None
    tolerance: float
    flagged: bool

class ReconciliationOut(BaseModel):
    window: ShiftWindowOut
    balanced: bool
    fields: list[FieldVarianceOut]
    flags: list[str]
    missing: list[str]

    @classmethod
    def from_result(cls, r: ReconciliationResult) -> "ReconciliationOut":
        def f(v):
            return None if v is None else float(v)
        return cls(
            window=ShiftWindowOut.from_window(r.window),
            balanced=r.balanced,
            fields=[
                FieldVarianceOut(field=x.field, staff_value=f(x.staff_value), pos_value=f(x.pos_value),
                                 variance=f(x.variance), tolerance=float(x.tolerance), flagged=x.flagged)
                for x in r.fields
            ],
            flags=list(r.flags),
            missing=list(r.missing),
        )
