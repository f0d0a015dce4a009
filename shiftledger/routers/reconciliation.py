from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from shiftledger.db import get_db
from shiftledger.deps import require_auth, get_calendar, get_reconciliation_tolerances
from shiftledger.models.core import StockFamily
from shiftledger.schemas.reports import ReconciliationOut
from shiftledger.services.ledger_store import SqlLedgerStore
from shiftledger.services.reconciliation import ReconciliationTolerances, reconcile
from shiftledger.services.shift_sources import load_pos_observed, load_staff_declared
from shiftledger.services.shift_window import ShiftCalendar

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])

@router.get("/{shift_date}", response_model=ReconciliationOut)
def shift_reconciliation(shift_date: str, db: Session = Depends(get_db),
                         calendar: ShiftCalendar = Depends(get_calendar),
                         tolerances: ReconciliationTolerances = Depends(get_reconciliation_tolerances),
                         sub: str = Depends(require_auth)):
    window = calendar.resolve(shift_date)
    store = SqlLedgerStore(db)
    ledger_rows = [r for r in (store.get_row(f, window.shift_date) for f in StockFamily) if r]
    staff = load_staff_declared(db, window.shift_date, calendar)
    pos = load_pos_observed(db, window, ledger_rows)
    return ReconciliationOut.from_result(reconcile(window, staff, pos, tolerances))
