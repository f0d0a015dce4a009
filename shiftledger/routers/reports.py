from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from shiftledger.db import get_db
from shiftledger.deps import require_role, require_auth, get_snapshot_builder
from shiftledger.schemas.reports import PnLSnapshotOut
from shiftledger.services.shift_window import parse_shift_date
from shiftledger.services.snapshot import SnapshotBuilder
from shiftledger.util.audit import log_audit

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/pnl/refresh", response_model=PnLSnapshotOut)
def refresh_pnl(start: str, end: str, db: Session = Depends(get_db),
                builder: SnapshotBuilder = Depends(get_snapshot_builder),
                sub: str = Depends(require_role("MANAGER"))):
    previous = builder.store.get_snapshot(parse_shift_date(start), parse_shift_date(end))
    snap = builder.build(start, end)
    log_audit(db, sub, "pnl_snapshot", f"{snap.period_start}:{snap.period_end}", "REBUILD",
              before={"revenue_checksum": previous.revenue_checksum,
                      "expense_checksum": previous.expense_checksum} if previous else None,
              after={"revenue_checksum": snap.revenue_checksum,
                     "expense_checksum": snap.expense_checksum})
    db.commit()
    return PnLSnapshotOut.from_snapshot(snap)


@router.get("/pnl", response_model=PnLSnapshotOut)
def get_pnl(start: str, end: str, builder: SnapshotBuilder = Depends(get_snapshot_builder),
            sub: str = Depends(require_auth)):
    snap = builder.store.get_snapshot(parse_shift_date(start), parse_shift_date(end))
    if not snap:
        raise HTTPException(404, detail="no snapshot for this period; refresh first")
    return PnLSnapshotOut.from_snapshot(snap)


@router.get("/pnl/history", response_model=list[PnLSnapshotOut])
def pnl_history(limit: int = 50, builder: SnapshotBuilder = Depends(get_snapshot_builder),
                sub: str = Depends(require_auth)):
    return [PnLSnapshotOut.from_snapshot(s) for s in builder.store.list_snapshots(limit)]
