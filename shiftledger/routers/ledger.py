from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from datetime import datetime, timezone
from shiftledger.config import settings
from shiftledger.db import get_db
from shiftledger.deps import require_auth, require_role, get_rebuilder, get_calendar
from shiftledger.models.core import StockFamily
from shiftledger.schemas.ledger import (
    LedgerRowOut, RebuildOutcomeOut, RebuildRangeOut, ManualAmendIn, ApproveIn,
)
from shiftledger.services.rebuild import LedgerRebuilder
from shiftledger.services.shift_window import ShiftCalendar, parse_shift_date
from shiftledger.util.audit import log_audit

router = APIRouter(prefix="/ledger", tags=["ledger"])

def _family(name: str) -> StockFamily:
    try:
        return StockFamily(name.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"unknown stock family: {name}")

def _range_out(family: StockFamily, start, end, outcomes) -> RebuildRangeOut:
    results = [RebuildOutcomeOut.from_outcome(o) for o in outcomes]
    failed = sum(1 for o in outcomes if not o.ok)
    return RebuildRangeOut(family=family.value, start=start, end=end,
                           rebuilt=len(results) - failed, failed=failed, results=results)

@router.get("/{family}")
def get_ledger(family: str, date: str | None = None, start: str | None = None, end: str | None = None,
               rb: LedgerRebuilder = Depends(get_rebuilder), sub: str = Depends(require_auth)):
    fam = _family(family)
    if date:
        d = parse_shift_date(date)
        row = rb.store.get_row(fam, d)
        return {"family": fam.value, "date": d, "row": LedgerRowOut.from_row(row) if row else None}
    if start and end:
        s, e = parse_shift_date(start), parse_shift_date(end)
        rows = rb.store.get_range(fam, s, e)
        return {"family": fam.value, "start": s, "end": e, "rows": [LedgerRowOut.from_row(r) for r in rows]}
    raise HTTPException(status_code=400, detail="Provide ?date= or ?start=&end=")

@router.post("/{family}/rebuild")
def rebuild(family: str, date: str | None = None, start: str | None = None, end: str | None = None,
            rb: LedgerRebuilder = Depends(get_rebuilder), sub: str = Depends(require_role("MANAGER"))):
    fam = _family(family)
    if date:
        return LedgerRowOut.from_row(rb.rebuild(fam, date))
    if start and end:
        return _range_out(fam, parse_shift_date(start), parse_shift_date(end), rb.rebuild_range(fam, start, end))
    raise HTTPException(status_code=400, detail="Provide ?date= or ?start=&end=")

@router.post("/{family}/backfill", response_model=RebuildRangeOut)
def backfill(family: str, days: int | None = None,
             rb: LedgerRebuilder = Depends(get_rebuilder), calendar: ShiftCalendar = Depends(get_calendar),
             sub: str = Depends(require_role("MANAGER"))):
    fam = _family(family)
    if days is None:
        days = settings.BACKFILL_DAYS
    if days < 1:
        raise HTTPException(status_code=400, detail="days must be >= 1")
    today = calendar.shift_date_containing(datetime.now(timezone.utc))
    outcomes = rb.backfill(fam, days, today)
    return _range_out(fam, outcomes[0].shift_date, outcomes[-1].shift_date, outcomes)

@router.post("/{family}/manual", response_model=LedgerRowOut)
def update_manual(family: str, body: ManualAmendIn, db: Session = Depends(get_db),
                  rb: LedgerRebuilder = Depends(get_rebuilder), sub: str = Depends(require_role("MANAGER"))):
    fam = _family(family)
    d = parse_shift_date(body.shift_date)
    before = rb.store.get_row(fam, d)
    row = rb.amend(fam, d, body.purchased_manual, body.actual_end_manual, body.notes)
    log_audit(db, sub, "stock_ledger", f"{fam.value}:{d}", "MANUAL_AMEND",
              before={"purchased_manual": before.overrides.purchased_manual,
                      "actual_end_manual": before.overrides.actual_end_manual,
                      "notes": before.notes} if before else None,
              after={"purchased_manual": body.purchased_manual,
                     "actual_end_manual": body.actual_end_manual,
                     "notes": body.notes})
    db.commit()
    return LedgerRowOut.from_row(row)

@router.post("/{family}/approve", response_model=LedgerRowOut)
def approve(family: str, body: ApproveIn, db: Session = Depends(get_db),
            rb: LedgerRebuilder = Depends(get_rebuilder), sub: str = Depends(require_role("MANAGER"))):
    fam = _family(family)
    row = rb.approve(fam, body.shift_date, body.approved)
    if row is None:
        raise HTTPException(404, detail="ledger row not found; rebuild first")
    log_audit(db, sub, "stock_ledger", f"{fam.value}:{row.shift_date}", "APPROVE" if body.approved else "UNAPPROVE")
    db.commit()
    return LedgerRowOut.from_row(row)
