# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Progress and message reporting for load operations.

The loader never prints directly; it talks to the active :class:`Reporter`.
Library users get a quiet :class:`SilentReporter` unless they install
another one, the CLI picks plain or rich output from ``--reporter``.
"""

from __future__ import annotations

import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

__all__ = [
    "TaskStatus",
    "TaskRecord",
    "Reporter",
    "PlainReporter",
    "RichReporter",
    "SilentReporter",
    "set_reporter",
    "get_reporter",
    "set_verbosity",
    "get_verbosity",
    "task",
]


class TaskStatus(Enum):
    RUNNING = auto()
    SUCCESS = auto()
    FAILED = auto()
    SKIPPED = auto()


ICONS = {
    TaskStatus.SUCCESS: "✔",
    TaskStatus.FAILED: "✖",
    TaskStatus.SKIPPED: "→",
}

# Task meta keys echoed in completion lines.
_STAT_KEYS = ("entries", "vertices", "bytes", "keyframes")


@dataclass(slots=True)
class TaskRecord:
    task_id: str
    name: str
    total: Optional[int] = None
    completed: int = 0
    status: TaskStatus = TaskStatus.RUNNING
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        icon = ICONS.get(self.status, "?")
        duration = (self.end_time or self.start_time) - self.start_time
        total_part = (
            f" {self.completed}/{self.total}" if self.total is not None else ""
        )
        stats = [f"{k}={self.meta[k]}" for k in _STAT_KEYS if k in self.meta]
        stats_part = f" [{' '.join(stats)}]" if stats else ""
        return f"{icon} {self.name}{total_part} ({duration:.2f}s){stats_part}"


_VERBOSITY: int = 0


def set_verbosity(level: int) -> None:
    global _VERBOSITY
    _VERBOSITY = max(0, level)


def get_verbosity() -> int:
    return _VERBOSITY


class Reporter:
    """Base reporter. Worker threads may call :meth:`advance` concurrently."""

    supports_progress: bool = False

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: Dict[str, TaskRecord] = {}

    def start_task(
        self, task_id: str, name: str, total: int | None = None, **meta: Any
    ) -> None:
        rec = TaskRecord(task_id, name, total, meta=meta)
        with self._lock:
            self._tasks[task_id] = rec
        self._on_start(rec)

    def advance(self, task_id: str, step: int = 1, **meta: Any) -> None:
        with self._lock:
            rec = self._tasks.get(task_id)
            if rec is None:
                return
            rec.completed += step
            rec.meta.update(meta)
        self._on_advance(rec, meta.get("current_item"))

    def end_task(
        self,
        task_id: str,
        status: TaskStatus = TaskStatus.SUCCESS,
        **final_meta: Any,
    ) -> None:
        with self._lock:
            rec = self._tasks.pop(task_id, None)
        if rec is None:
            return
        rec.status = status
        rec.end_time = time.time()
        rec.meta.update(final_meta)
        self._on_end(rec)

    def _on_start(self, rec: TaskRecord) -> None:
        pass

    def _on_advance(self, rec: TaskRecord, item: Any) -> None:
        pass

    def _on_end(self, rec: TaskRecord) -> None:
        pass

    def status(self, message: str, **fields: Any) -> None:
        raise NotImplementedError

    def verbose(self, message: str, *, level: int = 1, **fields: Any) -> None:
        pass

    def error(self, message: str, **fields: Any) -> None:
        raise NotImplementedError

    def warning(self, message: str, **fields: Any) -> None:
        self.status(message, **fields)

    def section(self, title: str) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass


class SilentReporter(Reporter):
    """No-op reporter (library default and quiet mode)."""

    def status(self, message: str, **fields: Any) -> None:
        pass

    def error(self, message: str, **fields: Any) -> None:
        pass

    def warning(self, message: str, **fields: Any) -> None:
        pass

    def section(self, title: str) -> None:
        pass


class PlainReporter(Reporter):
    """Line oriented reporter with minimal icons and optional color."""

    def __init__(self, stream=None, use_color: bool | None = None):
        super().__init__()
        self.stream = stream or sys.stderr
        self.use_color = (
            use_color
            if use_color is not None
            else getattr(self.stream, "isatty", lambda: False)()
        )

    def _c(self, code: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"\x1b[{code}m{text}\x1b[0m"

    def _on_advance(self, rec: TaskRecord, item: Any) -> None:
        if get_verbosity() < 1:
            return
        label = item if item is not None else f"item#{rec.completed}"
        total = rec.total if rec.total is not None else "?"
        self.stream.write(
            f"   · {rec.name}: {label} ({rec.completed}/{total})\n"
        )

    def _on_end(self, rec: TaskRecord) -> None:
        self.stream.write(f" {rec.summary()}\n")

    def status(self, message: str, **fields: Any) -> None:
        self.stream.write(f"{self._c('32', 'INFO')}: {message}\n")

    def verbose(self, message: str, *, level: int = 1, **fields: Any) -> None:
        if get_verbosity() < level:
            return
        self.stream.write(f"{self._c('36', f'VERB{level}')}: {message}\n")

    def error(self, message: str, **fields: Any) -> None:
        self.stream.write(f"{self._c('31', 'ERROR')}: {message}\n")

    def warning(self, message: str, **fields: Any) -> None:
        self.stream.write(f"{self._c('33', 'WARN')}: {message}\n")

    def section(self, title: str) -> None:
        self.stream.write(f"\n[{title}]\n")


class RichReporter(Reporter):
    """Rich console reporter with one progress bar per running task."""

    supports_progress = True

    def __init__(self, console: Console | None = None):
        super().__init__()
        self.console = console or Console(
            stderr=True, highlight=False, soft_wrap=False
        )
        self.progress: Progress | None = None
        self._bar_ids: Dict[str, Any] = {}

    def _ensure_progress(self) -> Progress:
        if self.progress is None:
            self.progress = Progress(
                SpinnerColumn(spinner_name="dots"),
                TextColumn("{task.description}", justify="left"),
                BarColumn(bar_width=None),
                TextColumn("{task.completed}/{task.total}"),
                TimeElapsedColumn(),
                console=self.console,
                expand=True,
            )
            self.progress.start()
        return self.progress

    def _on_start(self, rec: TaskRecord) -> None:
        if rec.total is None:
            self.console.rule(rec.name)
            return
        progress = self._ensure_progress()
        self._bar_ids[rec.task_id] = progress.add_task(
            rec.name, total=rec.total
        )

    def _on_advance(self, rec: TaskRecord, item: Any) -> None:
        bar = self._bar_ids.get(rec.task_id)
        if bar is not None and self.progress is not None:
            self.progress.update(bar, completed=rec.completed)

    def _on_end(self, rec: TaskRecord) -> None:
        bar = self._bar_ids.pop(rec.task_id, None)
        if bar is not None and self.progress is not None:
            self.progress.remove_task(bar)
        self.console.print(rec.summary())
        if not self._bar_ids:
            self.flush()

    def status(self, message: str, **fields: Any) -> None:
        self.console.print(f"[green]INFO[/]: {message}")

    def verbose(self, message: str, *, level: int = 1, **fields: Any) -> None:
        if get_verbosity() < level:
            return
        self.console.print(f"[cyan]VERB{level}[/]: {message}")

    def error(self, message: str, **fields: Any) -> None:
        self.console.print(f"[bold red]ERROR[/]: {message}")

    def warning(self, message: str, **fields: Any) -> None:
        self.console.print(f"[yellow]WARN[/]: {message}")

    def section(self, title: str) -> None:
        self.console.rule(title)

    def flush(self) -> None:
        if self.progress is not None:
            try:
                self.progress.stop()
            finally:
                self.progress = None
                self._bar_ids.clear()


_ACTIVE_REPORTER: Reporter | None = None


def set_reporter(rep: Reporter) -> None:
    global _ACTIVE_REPORTER
    _ACTIVE_REPORTER = rep


def get_reporter() -> Reporter:
    global _ACTIVE_REPORTER
    if _ACTIVE_REPORTER is None:
        _ACTIVE_REPORTER = SilentReporter()
    return _ACTIVE_REPORTER


@contextmanager
def task(task_id: str, name: str, total: int | None = None, **meta: Any):
    rep = get_reporter()
    rep.start_task(task_id, name, total, **meta)
    try:
        yield rep
    except Exception:
        rep.end_task(task_id, TaskStatus.FAILED)
        raise
    else:
        rep.end_task(task_id, TaskStatus.SUCCESS)
