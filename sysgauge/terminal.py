"""Curses terminal session.

:class:`CursesSession` owns the terminal while the dashboard runs: raw mode,
the alternate screen (entered by ``initscr``), keypad translation and a hidden
cursor. :meth:`CursesSession.restore` puts everything back and is safe to call
any number of times; only the first call does anything.
"""

from __future__ import annotations

import curses
import logging
import sys
from typing import Any, Protocol, TextIO

from sysgauge.errors import TerminalError
from sysgauge.render import C_BLUE, C_CRITICAL, C_DIM, C_NORMAL, C_TITLE, C_WARNING, Frame

logger = logging.getLogger(__name__)

NO_KEY = -1


class TerminalSession(Protocol):
    """The terminal operations the event loop relies on."""

    def open(self) -> None: ...

    def restore(self) -> None: ...

    def size(self) -> tuple[int, int]: ...

    def read_key(self, timeout: float) -> int: ...

    def paint(self, frame: Frame) -> None: ...


def _init_colors() -> None:
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(C_NORMAL, curses.COLOR_GREEN, -1)
    curses.init_pair(C_WARNING, curses.COLOR_YELLOW, -1)
    curses.init_pair(C_CRITICAL, curses.COLOR_RED, -1)
    curses.init_pair(C_TITLE, curses.COLOR_CYAN, -1)
    curses.init_pair(C_DIM, curses.COLOR_WHITE, -1)
    curses.init_pair(C_BLUE, curses.COLOR_BLUE, -1)


def _safe(win: Any, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


class CursesSession:
    """Scoped ownership of the real terminal."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._screen: Any = None
        self._active = False
        self._colors = False
        self.restore_count = 0

    def __enter__(self) -> CursesSession:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.restore()

    @property
    def active(self) -> bool:
        return self._active

    def open(self) -> None:
        """Enter dashboard mode.

        Raises:
            TerminalError: stdin/stdout is not a terminal or curses setup failed.
                The terminal is left as it was found.
        """
        if not (self._stdin.isatty() and self._stdout.isatty()):
            raise TerminalError("sysgauge needs an interactive terminal")
        try:
            self._screen = curses.initscr()
            self._active = True
            curses.noecho()
            curses.raw()
            self._screen.keypad(True)
            try:
                curses.curs_set(0)
            except curses.error:
                pass  # terminal can't hide the cursor
            if curses.has_colors():
                _init_colors()
                self._colors = True
        except curses.error as e:
            self.restore()
            raise TerminalError(f"cannot initialise terminal: {e}") from e
        logger.debug("terminal session opened")

    def restore(self) -> None:
        """Leave raw mode and the alternate screen. Idempotent."""
        if not self._active:
            return
        self._active = False
        self.restore_count += 1
        try:
            if self._screen is not None:
                self._screen.keypad(False)
            curses.noraw()
            curses.echo()
            try:
                curses.curs_set(1)
            except curses.error:
                pass
        except curses.error:
            logger.warning("partial terminal restore; calling endwin anyway")
        finally:
            curses.endwin()
        logger.debug("terminal session restored")

    def size(self) -> tuple[int, int]:
        return self._screen.getmaxyx()

    def read_key(self, timeout: float) -> int:
        """Wait up to *timeout* seconds for a key; ``NO_KEY`` if none came."""
        self._screen.timeout(max(0, int(timeout * 1000)))
        return self._screen.getch()

    def paint(self, frame: Frame) -> None:
        win = self._screen
        win.erase()
        for span in frame.spans:
            attr = curses.color_pair(span.role) if self._colors else 0
            if span.bold:
                attr |= curses.A_BOLD
            if span.reverse:
                attr |= curses.A_REVERSE
            _safe(win, span.y, span.x, span.text, attr)
        win.refresh()
