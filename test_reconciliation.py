# test_reconciliation.py
from datetime import date
from decimal import Decimal

from conftest import bkk
from shiftledger.models.core import DailySalesForm, PayMethod, PosReceipt, StockFamily
from shiftledger.services.ledger import compute_ledger
from shiftledger.services.reconciliation import (
    PosObserved, ReconciliationTolerances, StaffDeclared, reconcile,
)
from shiftledger.services.shift_sources import load_pos_observed, load_staff_declared
from shiftledger.services.shift_window import resolve

D = date(2025, 8, 9)
W = resolve(D)


def _staff(**kw):
    base = dict(total_sales=Decimal("12500"), cash_banked=Decimal("4300"), qr_banked=Decimal("6100"),
                stock_counts={StockFamily.ROLLS: Decimal(6), StockFamily.MEAT: Decimal(1200), StockFamily.DRINKS: Decimal(18)})
    base.update(kw)
    return StaffDeclared(**base)


def _pos(**kw):
    base = dict(net_sales=Decimal("12480"), cash=Decimal("4300"), qr=Decimal("6120"),
                expected_stock={StockFamily.ROLLS: Decimal(8), StockFamily.MEAT: Decimal(1500), StockFamily.DRINKS: Decimal(18)},
                receipt_count=57)
    base.update(kw)
    return PosObserved(**base)


def test_balanced_shift_has_no_flags():
    res = reconcile(W, _staff(), _pos())
    assert res.balanced
    assert res.flags == ()
    assert res.missing == ()
    assert res.get("total_sales").variance == Decimal(20)
    assert res.get("qr_banked").variance == Decimal(-20)
    assert res.get("rolls_end").variance == Decimal(-2)
    assert res.window == W


def test_variance_is_staff_minus_pos_and_breach_is_flagged():
    res = reconcile(W, _staff(cash_banked=Decimal("4200")), _pos())
    cash = res.get("cash_banked")
    assert cash.variance == Decimal(-100)
    assert cash.flagged
    assert not res.balanced
    assert res.flags == ("cash_banked: staff 4200 vs POS 4300 (variance -100, tolerance 50)",)


def test_variance_exactly_at_tolerance_is_not_flagged():
    res = reconcile(W, _staff(total_sales=Decimal("12580")), _pos())
    assert res.get("total_sales").variance == Decimal(100)
    assert not res.get("total_sales").flagged


def test_stock_fields_use_family_tolerances():
    res = reconcile(W, _staff(stock_counts={StockFamily.ROLLS: Decimal(6), StockFamily.MEAT: Decimal(900),
                                            StockFamily.DRINKS: Decimal(15)}), _pos())
    assert res.get("meat_end").variance == Decimal(-600)
    assert [f.field for f in res.fields if f.flagged] == ["meat_end", "drinks_end"]


def test_missing_side_is_reported_not_flagged():
    res = reconcile(W, StaffDeclared(total_sales=Decimal(100)), PosObserved())
    assert res.balanced
    assert res.get("total_sales").variance is None
    assert set(res.missing) == {"total_sales", "cash_banked", "qr_banked", "rolls_end", "meat_end", "drinks_end"}


def test_custom_tolerances():
    tight = ReconciliationTolerances(sales=Decimal(0), cash=Decimal(0), qr=Decimal(0))
    res = reconcile(W, _staff(), _pos(), tight)
    # stock keeps its own family tolerances
    assert [f.field for f in res.fields if f.flagged] == ["total_sales", "qr_banked"]


def _receipt(db, no, at, amount, method, refunded=False):
    db.add(PosReceipt(receipt_no=no, created_at_utc=at, net_sales=amount, payment_method=method, refunded=refunded))


def test_load_pos_observed_groups_by_payment_method(db):
    _receipt(db, "R-1", bkk(2025, 8, 9, 18, 30), Decimal("250.00"), PayMethod.CASH)
    _receipt(db, "R-2", bkk(2025, 8, 9, 22, 0), Decimal("480.50"), PayMethod.QR)
    _receipt(db, "R-3", bkk(2025, 8, 10, 2, 59), Decimal("310.00"), PayMethod.GRAB)
    _receipt(db, "R-4", bkk(2025, 8, 10, 0, 10), Decimal("999.00"), PayMethod.CASH, refunded=True)
    _receipt(db, "R-5", bkk(2025, 8, 10, 3, 0), Decimal("75.00"), PayMethod.CASH)
    db.commit()

    rolls = compute_ledger(StockFamily.ROLLS, D, 40, 100, 132, 6)
    pos = load_pos_observed(db, W, [rolls])
    assert pos.receipt_count == 3
    assert pos.net_sales == Decimal("1040.50")
    assert pos.cash == Decimal("250.00")
    assert pos.qr == Decimal("480.50")
    assert pos.expected_stock == {StockFamily.ROLLS: Decimal(8)}


def test_load_pos_observed_without_receipts_is_missing_not_zero(db):
    pos = load_pos_observed(db, W)
    assert pos.receipt_count == 0
    assert pos.net_sales is None and pos.cash is None and pos.qr is None


def test_load_staff_declared_from_form(db):
    db.add(DailySalesForm(shift_date=D, created_at=bkk(2025, 8, 10, 2, 30), completed_by="Noon",
                          total_sales=Decimal("12500"), cash_banked=Decimal("4300"), qr_banked=Decimal("6100"),
                          rolls_end=6, meat_end_g=1200, drinks_end=None))
    db.commit()
    staff = load_staff_declared(db, D)
    assert staff.total_sales == Decimal("12500")
    assert staff.stock_counts[StockFamily.ROLLS] == Decimal(6)
    assert staff.stock_counts[StockFamily.DRINKS] is None


def test_load_staff_declared_takes_form_filed_under_next_date_inside_window(db):
    db.add_all([
        DailySalesForm(shift_date=date(2025, 8, 10), created_at=bkk(2025, 8, 10, 2, 30),
                       total_sales=Decimal("12500"), cash_banked=Decimal("4300"), rolls_end=6),
        # literal date but sent the following night
        DailySalesForm(shift_date=D, created_at=bkk(2025, 8, 11, 2, 0),
                       total_sales=Decimal("99999"), cash_banked=Decimal("1"), rolls_end=99),
    ])
    db.commit()
    staff = load_staff_declared(db, D)
    assert staff.total_sales == Decimal("12500")
    assert staff.cash_banked == Decimal("4300")
    assert staff.stock_counts[StockFamily.ROLLS] == Decimal(6)


def test_load_staff_declared_takes_form_filed_under_previous_date_inside_window(db):
    db.add(DailySalesForm(shift_date=date(2025, 8, 8), created_at=bkk(2025, 8, 9, 23, 15),
                          total_sales=Decimal("8800"), drinks_end=14))
    db.commit()
    staff = load_staff_declared(db, D)
    assert staff.total_sales == Decimal("8800")
    assert staff.stock_counts[StockFamily.DRINKS] == Decimal(14)


def test_load_staff_declared_falls_back_to_newest_neighbour(db):
    db.add_all([
        DailySalesForm(shift_date=D, created_at=bkk(2025, 8, 10, 6, 0), total_sales=Decimal("100")),
        DailySalesForm(shift_date=date(2025, 8, 10), created_at=bkk(2025, 8, 10, 9, 0), total_sales=Decimal("200")),
    ])
    db.commit()
    assert load_staff_declared(db, D).total_sales == Decimal("200")


def test_load_staff_declared_without_form_is_empty(db):
    staff = load_staff_declared(db, D)
    assert staff.total_sales is None
    assert staff.stock_counts == {}
