# test_usage_source.py
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from conftest import bkk
from shiftledger.config import Settings, settings
from shiftledger.deps import get_usage_source
from shiftledger.errors import LedgerStoreError, UsageSourceUnavailable
from shiftledger.models.core import (
    DailySalesForm, PosReceipt, PosReceiptLine, StockFamily, StockItemRule, StockPurchase,
)
from shiftledger.services.shift_sources import SqlShiftInputs
from shiftledger.services.shift_window import resolve
from shiftledger.services.usage import HttpUsageSource, SqlUsageSource, build_usage_source

D = date(2025, 8, 9)
W = resolve(D)


def _rules(db):
    db.add_all([
        StockItemRule(sku="BURGER-1", rolls_per=1, patties_per=1, drinks_per=0),
        StockItemRule(sku="BURGER-2", rolls_per=1, patties_per=2, drinks_per=0),
        StockItemRule(sku="COMBO", rolls_per=1, patties_per=1, drinks_per=1),
        StockItemRule(sku="COKE", rolls_per=0, patties_per=0, drinks_per=1),
    ])


def _receipt(db, no, at, lines, refunded=False):
    r = PosReceipt(receipt_no=no, created_at_utc=at, net_sales=0, refunded=refunded)
    db.add(r)
    db.flush()
    for sku, qty in lines:
        db.add(PosReceiptLine(receipt_id=r.id, sku=sku, name=sku or "custom", qty=qty))
    return r


@pytest.fixture()
def sales(db):
    _rules(db)
    _receipt(db, "R-1", bkk(2025, 8, 9, 18, 0), [("BURGER-1", 2), ("COKE", 3)])   # at opening: inside
    _receipt(db, "R-2", bkk(2025, 8, 10, 1, 15), [("BURGER-2", 1), ("COMBO", 1)])  # after midnight: inside
    _receipt(db, "R-3", bkk(2025, 8, 10, 3, 0), [("BURGER-1", 10)])                # at close: outside
    _receipt(db, "R-4", bkk(2025, 8, 9, 17, 59), [("COKE", 10)])                   # before open: outside
    _receipt(db, "R-5", bkk(2025, 8, 9, 20, 0), [("BURGER-1", 4)], refunded=True)
    _receipt(db, "R-6", bkk(2025, 8, 9, 21, 0), [("UNMAPPED", 7), (None, 1)])
    db.commit()


def test_sql_usage_counts_only_receipts_inside_window(db, sales):
    src = SqlUsageSource(db)
    assert src.get_usage(StockFamily.ROLLS, W) == Decimal(4)
    assert src.get_usage(StockFamily.DRINKS, W) == Decimal(4)


def test_sql_usage_meat_is_in_grams(db, sales):
    # 2 + 2 + 1 patties
    assert SqlUsageSource(db).get_usage(StockFamily.MEAT, W) == Decimal(5 * 95)
    assert SqlUsageSource(db, grams_per_patty=Decimal(100)).get_usage(StockFamily.MEAT, W) == Decimal(500)


def test_sql_usage_is_zero_for_a_quiet_shift(db, sales):
    assert SqlUsageSource(db).get_usage(StockFamily.ROLLS, resolve("2025-08-12")) == Decimal(0)


def test_sql_usage_failure_is_not_zero(db, sales, monkeypatch):
    def boom(*a, **kw):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "execute", boom)
    with pytest.raises(UsageSourceUnavailable):
        SqlUsageSource(db).get_usage(StockFamily.ROLLS, W)


def _http(handler):
    return HttpUsageSource("http://pos.local/api/", client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_http_usage_reads_qty_and_sends_window():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"qty": 132.5})

    assert _http(handler).get_usage(StockFamily.ROLLS, W) == Decimal("132.5")
    assert seen["path"] == "/api/usage"
    assert seen["params"] == {
        "family": "ROLLS",
        "from": "2025-08-09T11:00:00+00:00",
        "to": "2025-08-09T20:00:00+00:00",
    }


def test_http_usage_zero_is_valid():
    assert _http(lambda r: httpx.Response(200, json={"qty": 0})).get_usage(StockFamily.DRINKS, W) == Decimal(0)


@pytest.mark.parametrize("response", [
    httpx.Response(503, text="maintenance"),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json={"quantity": 3}),
    httpx.Response(200, json={"qty": None}),
    httpx.Response(200, json={"qty": True}),
    httpx.Response(200, json={"qty": "lots"}),
    httpx.Response(200, json=[1, 2]),
])
def test_http_usage_bad_answers_raise_unavailable(response):
    with pytest.raises(UsageSourceUnavailable):
        _http(lambda r: response).get_usage(StockFamily.ROLLS, W)


def test_http_usage_network_error_raises_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UsageSourceUnavailable):
        _http(handler).get_usage(StockFamily.MEAT, W)


def test_build_usage_source_selects_backend(db):
    assert isinstance(build_usage_source(Settings(APP_SECRET="x", DB_URL="sqlite://"), db), SqlUsageSource)
    http = build_usage_source(Settings(APP_SECRET="x", DB_URL="sqlite://", USAGE_SOURCE="http",
                                       USAGE_SOURCE_URL="http://pos.local"), db)
    assert isinstance(http, HttpUsageSource)
    with pytest.raises(ValueError):
        build_usage_source(Settings(APP_SECRET="x", DB_URL="sqlite://", USAGE_SOURCE="http"), db)


def test_purchases_are_summed_per_family_and_date(db):
    db.add_all([
        StockPurchase(family=StockFamily.ROLLS, shift_date=D, qty=60, supplier="Makro"),
        StockPurchase(family=StockFamily.ROLLS, shift_date=D, qty=40),
        StockPurchase(family=StockFamily.ROLLS, shift_date=date(2025, 8, 10), qty=99),
        StockPurchase(family=StockFamily.MEAT, shift_date=D, qty=2000),
    ])
    db.commit()
    inputs = SqlShiftInputs(db)
    assert inputs.get_purchased(StockFamily.ROLLS, D) == Decimal(100)
    assert inputs.get_purchased(StockFamily.MEAT, D) == Decimal(2000)
    assert inputs.get_purchased(StockFamily.DRINKS, D) == Decimal(0)


def test_declared_end_uses_form_filed_under_next_date_when_submitted_in_window(db):
    db.add_all([
        # staff device rolled over midnight and filed the 9th's form as the 10th
        DailySalesForm(shift_date=date(2025, 8, 10), created_at=bkk(2025, 8, 10, 2, 40), rolls_end=6, meat_end_g=1200, drinks_end=18),
        DailySalesForm(shift_date=D, created_at=bkk(2025, 8, 11, 2, 0), rolls_end=99),
    ])
    db.commit()
    inputs = SqlShiftInputs(db)
    assert inputs.get_declared_actual_end(StockFamily.ROLLS, D) == Decimal(6)
    assert inputs.get_declared_actual_end(StockFamily.MEAT, D) == Decimal(1200)


def test_deleted_forms_are_ignored(db):
    db.add(DailySalesForm(shift_date=D, created_at=bkk(2025, 8, 10, 1, 0), rolls_end=6, deleted_at=bkk(2025, 8, 10, 9, 0)))
    db.commit()
    assert SqlShiftInputs(db).get_declared_actual_end(StockFamily.ROLLS, D) is None


def test_http_source_closes_only_its_own_client():
    owned = HttpUsageSource("http://pos.local")
    with owned:
        assert not owned.client.is_closed
    assert owned.client.is_closed

    injected = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"qty": 1})))
    HttpUsageSource("http://pos.local", client=injected).close()
    assert not injected.is_closed
    injected.close()


def test_usage_dependency_closes_http_client_after_request(db, monkeypatch):
    monkeypatch.setattr(settings, "USAGE_SOURCE", "http")
    monkeypatch.setattr(settings, "USAGE_SOURCE_URL", "http://pos.local")
    dep = get_usage_source(db)
    source = next(dep)
    assert isinstance(source, HttpUsageSource)
    assert not source.client.is_closed
    dep.close()
    assert source.client.is_closed


def test_usage_dependency_yields_sql_source_by_default(db):
    dep = get_usage_source(db)
    assert isinstance(next(dep), SqlUsageSource)
    dep.close()


def test_shift_input_query_failure_raises_store_error(db, monkeypatch):
    def boom(*a, **kw):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "query", boom)
    inputs = SqlShiftInputs(db)
    with pytest.raises(LedgerStoreError):
        inputs.get_purchased(StockFamily.ROLLS, D)
    with pytest.raises(LedgerStoreError):
        inputs.get_declared_actual_end(StockFamily.ROLLS, D)
