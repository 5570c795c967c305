from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TextIO

RENDER_INTERVAL_S = 0.05
INDICATOR_SLOTS = 6
PREFIX_LENGTH = INDICATOR_SLOTS + 2


@dataclass(frozen=True)
class Ratio:
    """Completed/total progress with an estimate of the remaining time."""

    numerator: int
    total: int
    remaining_s: float = 0.0
    created_at: float = field(default_factory=time.perf_counter)
    now: float | None = None

    @property
    def relative_remaining(self) -> float:
        now = time.perf_counter() if self.now is None else self.now
        return max(self.remaining_s - (now - self.created_at), 0.0)


def format_ratio(ratio: Ratio) -> str:
    return f"{ratio.numerator:>7d}/{ratio.total:d} {ratio.relative_remaining:>5.1f}s"


def estimate_remaining(elapsed_s: float, completed: int, total: int) -> float:
    if completed <= 0:
        return 0.0
    return elapsed_s * (total - completed) / completed


def is_interactive(console: TextIO) -> bool:
    isatty = getattr(console, "isatty", None)
    return bool(isatty and isatty())


class Awaiter:
    """Fixed render cadence; returns True once the stop event is set."""

    def __init__(self, interval_s: float = RENDER_INTERVAL_S) -> None:
        self.interval_s = interval_s

    def wait(self, stop_event: threading.Event) -> bool:
        return stop_event.wait(self.interval_s)


class ProgressReporter:
    """Renders the most recently set :class:`Ratio` on a single console line.

    ``set`` may be called from any number of threads; the last write wins.
    Stopping renders the last value once more, prefixed with ``100%``.
    When ``enabled`` is None the reporter only renders to a terminal.
    """

    def __init__(
        self,
        console: TextIO | None = None,
        awaiter: Awaiter | None = None,
        formatter: Callable[[Ratio], str] = format_ratio,
        enabled: bool | None = None,
    ) -> None:
        self._console = console or sys.stderr
        self._awaiter = awaiter or Awaiter()
        self._formatter = formatter
        self._enabled = is_interactive(self._console) if enabled is None else enabled
        self._value: Ratio | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def value(self) -> Ratio | None:
        return self._value

    def set(self, value: Ratio) -> None:
        self._value = value

    def start(self) -> None:
        if not self._enabled or self._thread is not None:
            return
        self._stop_event.clear()
        thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name="progress-reporter",
            daemon=True,
        )
        self._thread = thread
        thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def run(self, stop_event: threading.Event) -> None:
        state = 0
        while True:
            self._render(self._indicator(state))
            state += 1
            if self._awaiter.wait(stop_event):
                break
        self._render("100%".ljust(PREFIX_LENGTH), final=True)

    def _indicator(self, state: int) -> str:
        position = state % INDICATOR_SLOTS
        slots = "".join("=" if i == position else "-" for i in range(INDICATOR_SLOTS))
        return f"[{slots}]"

    def _render(self, prefix: str, final: bool = False) -> None:
        value = self._value
        text = self._formatter(value) if value is not None else ""
        self._console.write(f"\r{prefix}{text}")
        if final:
            self._console.write("\n")
        self._console.flush()


__all__ = [
    "Ratio",
    "Awaiter",
    "ProgressReporter",
    "format_ratio",
    "estimate_remaining",
    "is_interactive",
]
