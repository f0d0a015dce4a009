from fastapi import APIRouter, Depends
from datetime import datetime
from shiftledger.deps import require_auth, get_calendar
from shiftledger.schemas.ledger import ShiftWindowOut, ShiftContainingOut
from shiftledger.services.shift_window import ShiftCalendar

router = APIRouter(prefix="/shift", tags=["shift"])

@router.get("/window", response_model=ShiftWindowOut)
def shift_window(date: str, calendar: ShiftCalendar = Depends(get_calendar), sub: str = Depends(require_auth)):
    return ShiftWindowOut.from_window(calendar.resolve(date))

@router.get("/containing", response_model=ShiftContainingOut)
def shift_containing(at: datetime, calendar: ShiftCalendar = Depends(get_calendar), sub: str = Depends(require_auth)):
    d = calendar.shift_date_containing(at)
    return ShiftContainingOut(at=at, shift_date=d, in_window=calendar.resolve(d).contains(at))
