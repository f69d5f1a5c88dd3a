"""Logging setup for vm-reconcile.

Modules obtain loggers through get_logger() and attach structured fields
with ``extra={...}`` (vm_name, tier, pid, argv, ...). As a library the
package only installs a NullHandler; the ``vmr`` CLI calls
configure_logging() to get output on stderr:

    DEBUG [2026-10-17 10:02:54] vm_reconcile.address - Address resolved vm_name=web1 tier=ping address=192.168.1.77

Records are written by a QueueListener thread, not by the coroutine that
logged them. When the queue holds _MAX_QUEUED_RECORDS records, or stderr
refuses a write, the record is dropped.

VM_RECONCILE_LOG_LEVEL sets the initial level of the library logger.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "vm_reconcile"

_library_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
_library_logger.addHandler(logging.NullHandler())

_env_level = logging.getLevelNamesMapping().get(os.environ.get("VM_RECONCILE_LOG_LEVEL", "").strip().upper())
if _env_level:  # NOTSET and unknown names are ignored
    _library_logger.setLevel(_env_level)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_MAX_QUEUED_RECORDS = 1024

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


class _StructuredFormatter(logging.Formatter):
    """Appends ``extra`` fields to the message as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = [f"{key}={value}" for key, value in vars(record).items() if key not in _RECORD_ATTRS]
        return f"{line} {' '.join(fields)}" if fields else line


class _StderrHandler(logging.Handler):
    """Prints ``vmr`` diagnostics, dimmed so they stand apart from command output."""

    def __init__(self) -> None:
        super().__init__()
        self.setFormatter(_StructuredFormatter(fmt=_FMT, datefmt=_DATEFMT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            click.echo(click.style(line, dim=True), err=True)
        except BlockingIOError:
            return
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _QueuedStderrHandler(logging.handlers.QueueHandler):
    """Hands records for _StderrHandler to a listener thread."""

    def __init__(self) -> None:
        records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_MAX_QUEUED_RECORDS)
        super().__init__(records)
        self._listener = logging.handlers.QueueListener(records, _StderrHandler())
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # vm_name, tier, argv ... are rendered by _StructuredFormatter, so
        # the record is passed through unflattened
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Logger for a vm_reconcile module (pass ``__name__``)."""
    return logging.getLogger(name)


def configure_logging(*, level: int | str | None = None, quiet: bool = False) -> None:
    """Send library logs to stderr. Safe to call more than once.

    Args:
        level: Level for the library logger; None keeps the current one
            (VM_RECONCILE_LOG_LEVEL, else inherited from the root logger)
        quiet: Only errors. Wins over ``level``.
    """
    if not any(isinstance(handler, _QueuedStderrHandler) for handler in _library_logger.handlers):
        _library_logger.addHandler(_QueuedStderrHandler())

    if quiet:
        _library_logger.setLevel(logging.ERROR)
    elif level is not None:
        _library_logger.setLevel(level)
