"""
Tests for the operator CLI.

``main`` runs against the suite's engine: engine initialization from
settings is patched out so the global engine set up by the fixtures stays
in place.  Commands really commit, hence ``session_factory`` for cleanup.
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from caja_config import reset_settings
from caja_kernel.domain.dtos import DrawerInfo
from caja_kernel.services import DocumentCounter, DrawerService
from scripts import caja_cli


@pytest.fixture
def cli(monkeypatch, session_factory):
    """Run ``main`` with default settings and the test engine."""
    for name in ("CAJA_SETTINGS", "CAJA_DATABASE_URL", "CAJA_LOG_LEVEL", "CAJA_LOCK_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(caja_cli, "init_engine_from_settings", lambda settings: None)
    reset_settings()
    yield caja_cli.main
    reset_settings()


class TestParseArgs:
    def test_open_with_balance(self):
        args = caja_cli._parse_args(["--actor-id", "3", "open", "--date", "2025-01-10", "--opening-balance", "250.00"])
        assert args.command == "open"
        assert args.date == date(2025, 1, 10)
        assert args.opening_balance == "250.00"
        assert args.actor_id == 3

    def test_summary_paging(self):
        args = caja_cli._parse_args(["summary", "--page", "2", "--limit", "5"])
        assert (args.page, args.limit, args.date) == (2, 5, None)

    def test_command_required(self):
        with pytest.raises(SystemExit) as exc_info:
            caja_cli._parse_args([])
        assert exc_info.value.code == 2

    def test_bad_date(self):
        with pytest.raises(SystemExit):
            caja_cli._parse_args(["open", "--date", "10/01/2025"])


class TestPrinting:
    def test_print_drawer(self, capsys):
        caja_cli._print_drawer(
            DrawerInfo(
                id=uuid4(),
                drawer_date=date(2025, 1, 10),
                opening_balance=Decimal("1000"),
                closing_balance=None,
                is_closed=False,
                closed_at=None,
                opened_by_id=None,
                closed_by_id=None,
            )
        )
        out = capsys.readouterr().out
        assert "2025-01-10" in out
        assert "OPEN" in out
        assert "1000.00" in out


class TestMain:
    def test_init_db_sets_counter(self, cli, session_factory, capsys):
        assert cli(["init-db", "--counter-start", "1200"]) == 0
        assert "1200" in capsys.readouterr().out

        session = session_factory()
        try:
            assert DocumentCounter(session).current_value() == 1200
        finally:
            session.close()

    def test_open_summary_close(self, cli, session_factory, capsys):
        assert cli(["open", "--date", "2025-01-10", "--opening-balance", "250.00"]) == 0
        assert cli(["summary", "--date", "2025-01-10"]) == 0
        assert cli(["close", "--date", "2025-01-10"]) == 0
        out = capsys.readouterr().out
        assert re.search(r"balance\s+250\.00", out)
        assert "CLOSED" in out

        session = session_factory()
        try:
            summary = DrawerService(session).get_summary(date(2025, 1, 10))
            assert summary.drawer.is_closed is True
            assert summary.drawer.closing_balance == Decimal("250.00")
        finally:
            session.close()

    def test_auto_close(self, cli, session_factory, capsys):
        assert cli(["open", "--date", "2025-01-02"]) == 0
        assert cli(["pending"]) == 0
        assert cli(["auto-close"]) == 0
        out = capsys.readouterr().out
        assert "2025-01-02" in out
        assert "Closed 1 drawer(s)" in out

    def test_ledger_error_exit_code(self, cli, capsys):
        assert cli(["close", "--date", "2025-01-10"]) == 1
        assert "DRAWER_NOT_FOUND" in capsys.readouterr().err
