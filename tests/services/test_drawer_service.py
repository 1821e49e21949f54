"""
Tests for the daily cash drawer lifecycle.

Covers open/close/reopen state rules, derived balances, pagination of the
summary, the posting guards and the stale-drawer batch close.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from caja_kernel.exceptions import (
    AutoCloseFailedError,
    DrawerAlreadyClosedError,
    DrawerAlreadyOpenError,
    DrawerClosedError,
    DrawerNotFoundError,
    InvalidPageError,
)
from caja_kernel.models.audit import AuditAction
from caja_kernel.services.drawer_service import DrawerService
from tests.conftest import TEST_ACTOR_ID, TODAY, FailingAuditSink

YESTERDAY = TODAY - timedelta(days=1)


class TestOpen:
    def test_open_creates_drawer(self, drawer_service):
        info = drawer_service.open(TODAY, Decimal("1000.00"), TEST_ACTOR_ID)

        assert info.drawer_date == TODAY
        assert info.opening_balance == Decimal("1000.00")
        assert info.is_closed is False
        assert info.closing_balance is None
        assert info.closed_at is None
        assert info.opened_by_id == TEST_ACTOR_ID

    def test_default_opening_balance(self, drawer_service):
        assert drawer_service.open(TODAY).opening_balance == Decimal("0.00")

    def test_configured_default_opening_balance(self, session, deterministic_clock):
        service = DrawerService(session, deterministic_clock, default_opening_balance="250")
        assert service.open(TODAY).opening_balance == Decimal("250.00")

    def test_open_is_idempotent(self, drawer_service):
        first = drawer_service.open(TODAY, "1000.00")
        second = drawer_service.open(TODAY, "5.00")

        assert second.id == first.id
        assert second.opening_balance == Decimal("1000.00")

    def test_open_returns_closed_drawer_unchanged(self, drawer_service):
        drawer_service.open(TODAY, "10.00")
        drawer_service.close(TODAY)

        info = drawer_service.open(TODAY, "99.00")
        assert info.is_closed is True
        assert info.opening_balance == Decimal("10.00")

    def test_open_logged(self, drawer_service, captured_logs):
        drawer_service.open(TODAY, "1000.00", TEST_ACTOR_ID)
        opened = [r for r in captured_logs() if r["message"] == "drawer_opened"]
        assert len(opened) == 1
        assert opened[0]["drawer_date"] == "2025-01-10"
        assert opened[0]["opening_balance"] == "1000.00"


class TestClose:
    def test_close_uses_derived_balance(self, drawer_service, open_drawer, make_receipt, make_expense):
        make_receipt("500.00")
        make_expense("120.00")

        info = drawer_service.close(TODAY, actor_id=TEST_ACTOR_ID)

        assert info.is_closed is True
        assert info.closing_balance == Decimal("1380.00")
        assert info.closed_by_id == TEST_ACTOR_ID

    def test_close_matches_summary(self, drawer_service, open_drawer, make_receipt):
        make_receipt("75.25")
        expected = drawer_service.get_summary(TODAY).closing_balance
        assert drawer_service.close(TODAY).closing_balance == expected

    def test_close_override(self, drawer_service, open_drawer, make_receipt):
        make_receipt("500.00")
        info = drawer_service.close(TODAY, closing_balance="1490.00")
        assert info.closing_balance == Decimal("1490.00")
        # The summary still derives from movements
        assert drawer_service.get_summary(TODAY).closing_balance == Decimal("1500.00")

    def test_closed_at_from_clock(self, drawer_service, open_drawer, deterministic_clock):
        info = drawer_service.close(TODAY)
        assert info.closed_at == deterministic_clock.now()

    def test_close_twice(self, drawer_service, open_drawer):
        drawer_service.close(TODAY)
        with pytest.raises(DrawerAlreadyClosedError):
            drawer_service.close(TODAY)

    def test_close_missing(self, drawer_service):
        with pytest.raises(DrawerNotFoundError):
            drawer_service.close(TODAY)

    def test_close_empty_drawer_keeps_opening(self, drawer_service, open_drawer):
        assert drawer_service.close(TODAY).closing_balance == Decimal("1000.00")


class TestReopen:
    def test_reopen_keeps_previous_closing_balance(self, drawer_service, open_drawer, make_receipt):
        make_receipt("500.00")
        drawer_service.close(TODAY)

        info = drawer_service.reopen(TODAY, TEST_ACTOR_ID)

        assert info.is_closed is False
        assert info.closed_at is None
        assert info.closed_by_id is None
        assert info.closing_balance == Decimal("1500.00")

    def test_live_balance_is_authoritative_after_reopen(
        self, drawer_service, open_drawer, make_receipt
    ):
        make_receipt("500.00")
        drawer_service.close(TODAY)
        drawer_service.reopen(TODAY)
        make_receipt("100.00")

        summary = drawer_service.get_summary(TODAY)
        assert summary.drawer.closing_balance == Decimal("1500.00")
        assert summary.closing_balance == Decimal("1600.00")
        assert drawer_service.close(TODAY).closing_balance == Decimal("1600.00")

    def test_reopen_open_drawer(self, drawer_service, open_drawer):
        with pytest.raises(DrawerAlreadyOpenError):
            drawer_service.reopen(TODAY)

    def test_reopen_missing(self, drawer_service):
        with pytest.raises(DrawerNotFoundError):
            drawer_service.reopen(TODAY)


class TestSummary:
    def test_empty_summary(self, drawer_service, open_drawer):
        summary = drawer_service.get_summary(TODAY)
        assert summary.movements == ()
        assert summary.total == 0
        assert summary.total_inflow == Decimal("0.00")
        assert summary.total_outflow == Decimal("0.00")
        assert summary.closing_balance == Decimal("1000.00")
        assert summary.page is None
        assert summary.last_page == 1

    def test_newest_first_with_running_balance(
        self, drawer_service, open_drawer, make_receipt, make_expense
    ):
        make_receipt("200.00")
        make_expense("50.00", "Limpieza")
        make_receipt("10.00")

        summary = drawer_service.get_summary(TODAY)

        assert [m.amount for m in summary.movements] == [
            Decimal("10.00"),
            Decimal("50.00"),
            Decimal("200.00"),
        ]
        assert [m.running_balance for m in summary.movements] == [
            Decimal("1160.00"),
            Decimal("1150.00"),
            Decimal("1200.00"),
        ]
        assert summary.movements[1].label == "Limpieza"
        assert summary.total_inflow == Decimal("210.00")
        assert summary.total_outflow == Decimal("50.00")

    def test_same_instant_movements_keep_payment_order(
        self, drawer_service, open_drawer, make_receipt
    ):
        make_receipt("600.00", split={"cash": "300.00", "transfer": "200.00", "check": "100.00"})

        first = drawer_service.get_summary(TODAY)
        second = drawer_service.get_summary(TODAY)

        assert [m.amount for m in first.movements] == [
            Decimal("100.00"),
            Decimal("200.00"),
            Decimal("300.00"),
        ]
        assert [m.running_balance for m in first.movements] == [
            Decimal("1600.00"),
            Decimal("1500.00"),
            Decimal("1300.00"),
        ]
        assert second.movements == first.movements

    def test_pagination_keeps_running_balance(self, drawer_service, open_drawer, make_receipt):
        for _ in range(5):
            make_receipt("10.00")

        full = drawer_service.get_summary(TODAY)
        page2 = drawer_service.get_summary(TODAY, page=2, limit=2)

        assert page2.total == 5
        assert page2.page == 2
        assert page2.limit == 2
        assert page2.last_page == 3
        assert page2.movements == full.movements[2:4]
        assert page2.closing_balance == full.closing_balance

    def test_page_past_end_is_empty(self, drawer_service, open_drawer, make_receipt):
        make_receipt("10.00")
        summary = drawer_service.get_summary(TODAY, page=4, limit=10)
        assert summary.movements == ()
        assert summary.total == 1

    @pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (-1, None)])
    def test_invalid_page(self, drawer_service, open_drawer, page, limit):
        with pytest.raises(InvalidPageError):
            drawer_service.get_summary(TODAY, page=page, limit=limit)

    def test_missing_drawer(self, drawer_service):
        with pytest.raises(DrawerNotFoundError):
            drawer_service.get_summary(TODAY)


class TestPostingGuards:
    def test_validate_open(self, drawer_service, open_drawer):
        assert drawer_service.validate_open(TODAY).id == open_drawer.id

    def test_validate_open_missing(self, drawer_service):
        with pytest.raises(DrawerNotFoundError):
            drawer_service.validate_open(TODAY)

    def test_validate_open_closed(self, drawer_service, open_drawer):
        drawer_service.close(TODAY)
        with pytest.raises(DrawerClosedError):
            drawer_service.validate_open(TODAY)

    def test_auto_open_creates(self, drawer_service):
        info = drawer_service.validate_or_auto_open(TODAY)
        assert info.is_closed is False
        assert info.opening_balance == Decimal("0.00")

    def test_auto_open_ignores_configured_default(self, session, deterministic_clock):
        service = DrawerService(session, deterministic_clock, default_opening_balance="250")
        assert service.validate_or_auto_open(TODAY).opening_balance == Decimal("0.00")

    def test_auto_open_returns_open(self, drawer_service, open_drawer):
        assert drawer_service.validate_or_auto_open(TODAY).id == open_drawer.id

    def test_auto_open_refuses_closed(self, drawer_service, open_drawer):
        drawer_service.close(TODAY)
        with pytest.raises(DrawerClosedError):
            drawer_service.validate_or_auto_open(TODAY)

    def test_auto_open_reopens_when_allowed(self, drawer_service, open_drawer):
        drawer_service.close(TODAY)
        info = drawer_service.validate_or_auto_open(TODAY, allow_reopen_if_closed=True)
        assert info.is_closed is False


class TestAutoCloseStale:
    def test_closes_only_earlier_open_drawers(self, drawer_service):
        drawer_service.open(TODAY - timedelta(days=3), "10.00")
        drawer_service.open(YESTERDAY, "20.00")
        drawer_service.open(TODAY, "30.00")
        drawer_service.open(TODAY - timedelta(days=5), "1.00")
        drawer_service.close(TODAY - timedelta(days=5))

        closed = drawer_service.auto_close_stale()

        assert [d.drawer_date for d in closed] == [TODAY - timedelta(days=3), YESTERDAY]
        assert [d.closing_balance for d in closed] == [Decimal("10.00"), Decimal("20.00")]
        assert drawer_service.get_summary(TODAY).drawer.is_closed is False

    def test_list_open_before(self, drawer_service):
        drawer_service.open(YESTERDAY)
        drawer_service.open(TODAY)
        assert [d.drawer_date for d in drawer_service.list_open_before()] == [YESTERDAY]

    def test_nothing_to_close(self, drawer_service, open_drawer):
        assert drawer_service.auto_close_stale() == []

    def test_explicit_today(self, drawer_service, open_drawer):
        closed = drawer_service.auto_close_stale(today=TODAY + timedelta(days=1))
        assert [d.drawer_date for d in closed] == [TODAY]

    def test_audit_record_per_drawer(self, drawer_service, auditor_service):
        drawer_service.open(YESTERDAY, "20.00")
        drawer_service.auto_close_stale()

        records = auditor_service.list_records(action=AuditAction.DRAWER_AUTO_CLOSED)
        assert len(records) == 1
        assert records[0].entity_type == "Drawer"
        assert records[0].detail == {
            "drawer_date": YESTERDAY.isoformat(),
            "closing_balance": "20.00",
        }

    def test_failing_audit_sink_keeps_close(self, session, deterministic_clock, captured_logs):
        sink = FailingAuditSink()
        service = DrawerService(session, deterministic_clock, auditor=sink)
        service.open(YESTERDAY, "20.00")

        closed = service.auto_close_stale()

        assert [d.drawer_date for d in closed] == [YESTERDAY]
        assert sink.calls == 1
        assert service.list_open_before() == []
        warnings = [r for r in captured_logs() if r["message"] == "audit_sink_failed"]
        assert len(warnings) == 1
        assert warnings[0]["sink"] == "FailingAuditSink"

    def test_failure_isolated_per_drawer(self, drawer_service, monkeypatch, captured_logs):
        drawer_service.open(TODAY - timedelta(days=2))
        drawer_service.open(YESTERDAY)

        original = drawer_service._close_drawer
        bad_date = TODAY - timedelta(days=2)

        def flaky_close(drawer, closing_balance, actor_id):
            if drawer.drawer_date == bad_date:
                raise DrawerAlreadyClosedError(drawer.drawer_date)
            return original(drawer, closing_balance, actor_id)

        monkeypatch.setattr(drawer_service, "_close_drawer", flaky_close)

        closed = drawer_service.auto_close_stale()

        assert [d.drawer_date for d in closed] == [YESTERDAY]
        assert [d.drawer_date for d in drawer_service.list_open_before()] == [bad_date]
        failures = [r for r in captured_logs() if r["message"] == "drawer_auto_close_failed"]
        assert len(failures) == 1

    def test_all_failed_raises(self, drawer_service, monkeypatch):
        drawer_service.open(YESTERDAY)

        def always_fail(drawer, closing_balance, actor_id):
            raise DrawerAlreadyClosedError(drawer.drawer_date)

        monkeypatch.setattr(drawer_service, "_close_drawer", always_fail)

        with pytest.raises(AutoCloseFailedError) as exc_info:
            drawer_service.auto_close_stale()
        assert exc_info.value.failed_dates == [YESTERDAY]


def test_drawer_dates_are_unique(session, drawer_service):
    from sqlalchemy.exc import IntegrityError

    from caja_kernel.models.drawer import Drawer

    drawer_service.open(date(2025, 1, 1))
    session.add(Drawer(drawer_date=date(2025, 1, 1), opening_balance=Decimal("0"), is_closed=False))
    with pytest.raises(IntegrityError):
        session.flush()
    session.rollback()
