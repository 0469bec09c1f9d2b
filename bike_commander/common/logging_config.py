from __future__ import annotations

import logging
import sys
import threading
import weakref

from nicegui import ui

# Per-fix GPS chatter goes here, below DEBUG
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_RESET = "\033[0m"
_DIM = "\033[2m"

# levelno -> ANSI color for the level name
_LEVEL_STYLES: dict[int, str] = {
    TRACE: "\033[32m",
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[37m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[41m",
}

# httpx/httpcore log every request at INFO; GPS polling would flood the log
QUIET_LOGGERS = ("httpx", "httpcore")


class AnsiColorFormatter(logging.Formatter):
    """Console formatter: dimmed clock, colored level, logger name."""

    def __init__(self, colored: bool = True) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.colored = colored and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        clock = self.formatTime(record, self.datefmt)
        level = record.levelname
        if self.colored:
            clock = f"{_DIM}{clock}{_RESET}"
            style = _LEVEL_STYLES.get(record.levelno)
            if style:
                level = f"{style}{level}{_RESET}"
        line = f"{clock} {level} {record.name}: {record.message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class NiceGuiLogHandler(logging.Handler):
    """Mirror records into every live Response Log widget."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S")
        )
        self._widgets: weakref.WeakSet[ui.log] = weakref.WeakSet()
        self._widgets_lock = threading.Lock()

    def add_widget(self, widget: ui.log) -> None:
        with self._widgets_lock:
            self._widgets.add(widget)

    def emit(self, record: logging.LogRecord) -> None:
        with self._widgets_lock:
            widgets = list(self._widgets)
        if not widgets:
            return
        msg = self.format(record)
        for widget in widgets:
            if widget.is_deleted:
                self._widgets.discard(widget)
                continue
            try:
                widget.push(msg)
            except RuntimeError:
                # client went away between the check and the push
                self._widgets.discard(widget)


ui_log_handler = NiceGuiLogHandler()


def attach_ui_log(log_widget: ui.log) -> None:
    """Show log records in ``log_widget`` until it is deleted."""
    ui_log_handler.add_widget(log_widget)


def configure_logging(
    level: int = logging.INFO, use_color: bool = True, add_ui_handler: bool = True
) -> logging.Logger:
    """
    Configure the root logger.

    Console output goes to stderr through AnsiColorFormatter. With
    ``add_ui_handler`` records of INFO and above are also pushed to the
    control page's Response Log. HTTP client loggers stay at WARNING unless
    TRACE is requested. Safe to call more than once.
    """
    root = logging.getLogger()
    root.setLevel(level)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler(stream=sys.stderr)
        console.setLevel(level)
        console.setFormatter(AnsiColorFormatter(colored=use_color))
        root.addHandler(console)

    if add_ui_handler and ui_log_handler not in root.handlers:
        ui_log_handler.setLevel(max(level, logging.INFO))
        root.addHandler(ui_log_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= TRACE else logging.WARNING)

    return root
