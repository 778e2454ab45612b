"""Status reporting for long-running, multi-step operations.

The Reporter protocol is the sink every operation writes progress to.
Any object with ``start()``, ``success()``, ``warning()``, ``failure()``,
``end()`` and ``error()`` satisfies it. ``CliReporter`` renders to the
terminal with click; ``for_cluster()`` derives a prefixed reporter so that
parallel per-cluster output stays attributable.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

import click

logger = logging.getLogger(__name__)


@runtime_checkable
class Reporter(Protocol):
    """Protocol for progress sinks."""

    def start(self, message: str) -> None:
        """Begin a new step. Ends any step already in progress."""
        ...

    def success(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def failure(self, message: str) -> None: ...

    def end(self) -> None:
        """Close the current step as successful if nothing else closed it."""
        ...

    def error(self, message: str, exc: BaseException) -> BaseException:
        """Report *exc* as a failure of the current step and return it."""
        ...

    def for_cluster(self, name: str) -> Reporter:
        """Return a reporter whose output is attributed to cluster *name*."""
        ...


_OUTPUT_LOCK = threading.Lock()


class CliReporter:
    """Reporter that writes styled progress lines with ``click.echo``.

    Output from several threads is serialised by a module-wide lock.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix
        self._current: str | None = None

    def _emit(self, symbol: str, color: str, message: str, err: bool = False) -> None:
        prefix = f"[{self._prefix}] " if self._prefix else ""
        with _OUTPUT_LOCK:
            click.echo(click.style(symbol, fg=color, bold=True) + f" {prefix}{message}", err=err)

    def start(self, message: str) -> None:
        self.end()
        self._current = message
        logger.debug("%s started: %s", self._prefix or "subctl", message)
        self._emit(" ⌛", "cyan", message)

    def success(self, message: str) -> None:
        self._emit(" ✓", "green", message)

    def warning(self, message: str) -> None:
        logger.warning("%s", message)
        self._emit(" ⚠", "yellow", message)

    def failure(self, message: str) -> None:
        self._current = None
        self._emit(" ✗", "red", message, err=True)

    def end(self) -> None:
        if self._current is not None:
            self.success(self._current)
            self._current = None

    def error(self, message: str, exc: BaseException) -> BaseException:
        logger.debug("%s: %s", message, exc, exc_info=exc)
        self.failure(f"{message}: {exc}")
        return exc

    def for_cluster(self, name: str) -> CliReporter:
        return CliReporter(prefix=name)
