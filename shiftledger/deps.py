from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from sqlalchemy.orm import Session
from shiftledger.config import settings
from shiftledger.db import get_db
from shiftledger.services.ledger import StockTolerances
from shiftledger.services.ledger_store import SqlLedgerStore
from shiftledger.services.rebuild import LedgerRebuilder
from shiftledger.services.reconciliation import ReconciliationTolerances
from shiftledger.services.shift_sources import SqlShiftInputs
from shiftledger.services.shift_window import ShiftCalendar
from shiftledger.services.snapshot import SnapshotBuilder, SqlSnapshotStore
from shiftledger.services.usage import HttpUsageSource, UsageSource, build_usage_source
from shiftledger.util.security import decode_token

auth_scheme = HTTPBearer(auto_error=False)

def _claims(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme)) -> dict:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

def require_auth(claims: dict = Depends(_claims)) -> str:
    return claims["sub"]

def require_role(code: str):
    def _dep(claims: dict = Depends(_claims)) -> str:
        roles = set(claims.get("roles") or [])
        # ADMIN shortcut
        if "ADMIN" in roles or code in roles:
            return claims["sub"]
        raise HTTPException(status_code=403, detail=f"Missing role: {code}")
    return _dep

def get_calendar() -> ShiftCalendar:
    return ShiftCalendar(settings.SHIFT_UTC_OFFSET_HOURS, settings.SHIFT_START_HOUR, settings.SHIFT_END_HOUR)

def get_usage_source(db: Session = Depends(get_db)):
    source = build_usage_source(settings, db)
    if isinstance(source, HttpUsageSource):
        with source:
            yield source
    else:
        yield source

def get_rebuilder(db: Session = Depends(get_db), usage: UsageSource = Depends(get_usage_source),
                  calendar: ShiftCalendar = Depends(get_calendar)) -> LedgerRebuilder:
    return LedgerRebuilder(
        store=SqlLedgerStore(db),
        usage=usage,
        inputs=SqlShiftInputs(db, calendar),
        tolerances=StockTolerances.from_settings(settings),
        calendar=calendar,
    )

def get_reconciliation_tolerances() -> ReconciliationTolerances:
    return ReconciliationTolerances.from_settings(settings)

def get_snapshot_builder(db: Session = Depends(get_db), calendar: ShiftCalendar = Depends(get_calendar)) -> SnapshotBuilder:
    return SnapshotBuilder(SqlSnapshotStore(db, calendar))
