import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shiftledger.middleware import RequestIdMiddleware
from shiftledger.db import Base, engine
from shiftledger.config import settings
from shiftledger.errors import InvalidDateFormat, InvalidPeriod, LedgerStoreError, UsageSourceUnavailable
from shiftledger import models  # noqa: F401  (registers tables)

from shiftledger.routers import shift, ledger, reconciliation, reports

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("shiftledger")

app = FastAPI(title="Shift Ledger API", version="0.1.0")

@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(InvalidDateFormat)
@app.exception_handler(InvalidPeriod)
def bad_date(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(UsageSourceUnavailable)
def usage_unavailable(request: Request, exc: UsageSourceUnavailable):
    logger.error("usage source unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})

@app.exception_handler(LedgerStoreError)
def store_failed(request: Request, exc: LedgerStoreError):
    logger.error("store failure: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})

app.include_router(shift.router)
app.include_router(ledger.router)
app.include_router(reconciliation.router)
app.include_router(reports.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
