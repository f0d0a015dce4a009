"""POS-derived consumption per stock family for one shift window.

A source returns ``Decimal(0)`` when nothing was sold and raises
``UsageSourceUnavailable`` when it cannot answer; callers must never treat the
second as the first.
"""
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shiftledger.errors import UsageSourceUnavailable
from shiftledger.models.core import PosReceipt, PosReceiptLine, StockFamily, StockItemRule
from shiftledger.services.shift_window import ShiftWindow


class UsageSource(Protocol):
    def get_usage(self, family: StockFamily, window: ShiftWindow) -> Decimal: ...


class SqlUsageSource:
    def __init__(self, db: Session, grams_per_patty: Decimal = Decimal("95")):
        self.db = db
        self.grams_per_patty = Decimal(grams_per_patty)

    def _per_unit(self, family: StockFamily):
        if family == StockFamily.ROLLS:
            return StockItemRule.rolls_per
        if family == StockFamily.MEAT:
            return StockItemRule.patties_per
        return StockItemRule.drinks_per

    def get_usage(self, family: StockFamily, window: ShiftWindow) -> Decimal:
        q = (
            select(func.coalesce(func.sum(PosReceiptLine.qty * self._per_unit(family)), 0))
            .join(PosReceipt, PosReceipt.id == PosReceiptLine.receipt_id)
            .join(StockItemRule, StockItemRule.sku == PosReceiptLine.sku)
            .where(
                PosReceipt.created_at_utc >= window.start_utc,
                PosReceipt.created_at_utc < window.end_utc,
                PosReceipt.refunded.is_(False),
            )
        )
        try:
            total = self.db.execute(q).scalar()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UsageSourceUnavailable(f"POS usage query failed for {family.value} {window.shift_date}: {e}") from e
        qty = Decimal(str(total or 0))
        if family == StockFamily.MEAT:
            qty = qty * self.grams_per_patty
        return qty


class HttpUsageSource:
    """Usage from a remote POS analytics service: GET /usage -> {"qty": n}."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def close(self):
        # an injected client belongs to the caller
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def get_usage(self, family: StockFamily, window: ShiftWindow) -> Decimal:
        params = {
            "family": family.value,
            "from": window.start_utc.isoformat(),
            "to": window.end_utc.isoformat(),
        }
        try:
            r = self.client.get(f"{self.base_url}/usage", params=params)
            r.raise_for_status()
            body = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UsageSourceUnavailable(f"usage service failed for {family.value} {window.shift_date}: {e}") from e

        qty = body.get("qty") if isinstance(body, dict) else None
        if qty is None or isinstance(qty, bool):
            raise UsageSourceUnavailable(f"usage service returned no qty for {family.value} {window.shift_date}")
        try:
            return Decimal(str(qty))
        except InvalidOperation as e:
            raise UsageSourceUnavailable(f"usage service returned non-numeric qty {qty!r}") from e


def build_usage_source(s, db: Session) -> UsageSource:
    if s.USAGE_SOURCE == "http":
        if not s.USAGE_SOURCE_URL:
            raise ValueError("USAGE_SOURCE=http needs USAGE_SOURCE_URL")
        return HttpUsageSource(s.USAGE_SOURCE_URL, timeout=s.USAGE_SOURCE_TIMEOUT)
    return SqlUsageSource(db, grams_per_patty=s.MEAT_GRAMS_PER_PATTY)
