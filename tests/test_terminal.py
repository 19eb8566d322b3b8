"""Tests for the curses session, with curses itself mocked out."""

from __future__ import annotations

import curses
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from sysgauge.errors import TerminalError
from sysgauge.render import Frame, Span
from sysgauge.terminal import CursesSession


def _tty(is_tty: bool = True) -> MagicMock:
    stream = MagicMock()
    stream.isatty.return_value = is_tty
    return stream


@pytest.fixture
def mock_curses() -> Iterator[MagicMock]:
    with patch("sysgauge.terminal.curses") as mock:
        mock.error = curses.error
        mock.A_BOLD = curses.A_BOLD
        mock.A_REVERSE = curses.A_REVERSE
        mock.has_colors.return_value = False
        mock.initscr.return_value = MagicMock()
        yield mock


# ── open ───────────────────────────────────────────────────────────────────


class TestOpen:
    def test_requires_tty(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(False), stdout=_tty())
        with pytest.raises(TerminalError, match="interactive terminal"):
            session.open()
        mock_curses.initscr.assert_not_called()
        assert not session.active

    def test_stdout_redirected(self, mock_curses: MagicMock) -> None:
        with pytest.raises(TerminalError):
            CursesSession(stdin=_tty(), stdout=_tty(False)).open()

    def test_enters_raw_mode(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        assert session.active
        mock_curses.noecho.assert_called_once()
        mock_curses.raw.assert_called_once()
        mock_curses.initscr.return_value.keypad.assert_called_once_with(True)
        mock_curses.curs_set.assert_called_once_with(0)

    def test_setup_failure_restores(self, mock_curses: MagicMock) -> None:
        mock_curses.raw.side_effect = curses.error("raw failed")
        session = CursesSession(stdin=_tty(), stdout=_tty())
        with pytest.raises(TerminalError, match="raw failed"):
            session.open()
        assert session.restore_count == 1
        mock_curses.endwin.assert_called_once()
        assert not session.active

    def test_cursor_hiding_is_optional(self, mock_curses: MagicMock) -> None:
        mock_curses.curs_set.side_effect = curses.error("no cursor control")
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        assert session.active


# ── restore ────────────────────────────────────────────────────────────────


class TestRestore:
    def test_restore_is_idempotent(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        session.restore()
        session.restore()
        assert session.restore_count == 1
        mock_curses.endwin.assert_called_once()
        mock_curses.echo.assert_called_once()
        mock_curses.noraw.assert_called_once()

    def test_restore_before_open_does_nothing(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.restore()
        assert session.restore_count == 0
        mock_curses.endwin.assert_not_called()

    def test_endwin_runs_even_if_restore_steps_fail(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        mock_curses.noraw.side_effect = curses.error("noraw failed")
        session.restore()
        mock_curses.endwin.assert_called_once()

    def test_context_manager_restores_on_error(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        with pytest.raises(RuntimeError):
            with session:
                raise RuntimeError("boom")
        assert session.restore_count == 1


# ── drawing and input ──────────────────────────────────────────────────────


class TestDrawing:
    def test_paint_applies_attributes(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        screen = mock_curses.initscr.return_value
        frame = Frame(
            rows=5,
            cols=20,
            spans=(Span(0, 0, "title", bold=True), Span(1, 2, "tab", reverse=True)),
        )
        session.paint(frame)
        screen.erase.assert_called_once()
        screen.addstr.assert_any_call(0, 0, "title", curses.A_BOLD)
        screen.addstr.assert_any_call(1, 2, "tab", curses.A_REVERSE)
        screen.refresh.assert_called_once()

    def test_paint_ignores_out_of_bounds(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        mock_curses.initscr.return_value.addstr.side_effect = curses.error
        session.paint(Frame(rows=1, cols=5, spans=(Span(0, 0, "hello"),)))

    def test_read_key_uses_millisecond_timeout(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        screen = mock_curses.initscr.return_value
        screen.getch.return_value = ord("q")
        assert session.read_key(0.25) == ord("q")
        screen.timeout.assert_called_with(250)

    def test_size(self, mock_curses: MagicMock) -> None:
        session = CursesSession(stdin=_tty(), stdout=_tty())
        session.open()
        mock_curses.initscr.return_value.getmaxyx.return_value = (24, 80)
        assert session.size() == (24, 80)
