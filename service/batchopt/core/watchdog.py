"""Background closer for blocking dialogs raised by the planning engine.

Long unattended optimizer and dose calls can stall on a modal warning. The
watchdog polls the engine process's top-level windows on its own thread and
closes those whose title matches one of the configured patterns. It shares
nothing with the batch except its cancellation event.
"""

from __future__ import annotations

import os
import re
import threading
from typing import Callable, List, Optional, Sequence

from loguru import logger

from ..adapters.windows import WindowBackend, WindowInfo, build_window_backend
from ..config import Settings, get_settings

EventCallback = Callable[[str], None]


class DialogWatchdog:
    def __init__(
        self,
        backend: WindowBackend,
        title_patterns: Sequence[str],
        poll_interval: float = 1.0,
        process_id: Optional[int] = None,
        on_event: Optional[EventCallback] = None,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.backend = backend
        self.patterns = [re.compile(p) for p in title_patterns]
        self.poll_interval = poll_interval
        self.process_id = process_id if process_id is not None else os.getpid()
        self._on_event = on_event
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.closed_count = 0
        self.fault_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._on_event is None:
            return
        try:
            self._on_event(message)
        except Exception as exc:
            logger.warning("Dialog watchdog event callback failed: {}", exc)

    def matches(self, window: WindowInfo) -> bool:
        return any(p.search(window.title) for p in self.patterns)

    def scan_once(self) -> List[WindowInfo]:
        """Close every matching window once; returns the windows closed."""
        closed = []
        for window in self.backend.list_windows(self.process_id):
            if self._cancel.is_set():
                break
            if not self.matches(window):
                continue
            self.backend.close_window(window)
            closed.append(window)
            self.closed_count += 1
            self._report(f"Closed pop-up window \"{window.title}\".")
        return closed

    def _run(self) -> None:
        while not self._cancel.is_set():
            try:
                self.scan_once()
            except Exception as exc:
                self.fault_count += 1
                self._report(f"Something wrong with routine to close pop-up windows: {exc}")
            self._cancel.wait(self.poll_interval)

    def start(self) -> None:
        if self.running:
            return
        self._cancel.clear()
        self._thread = threading.Thread(target=self._run, name="dialog-watchdog", daemon=True)
        self._thread.start()
        logger.debug("Dialog watchdog started for process {}", self.process_id)

    def cancel(self) -> None:
        self._cancel.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel and join; waits at most ``timeout`` (default two poll intervals)."""
        self.cancel()
        thread, self._thread = self._thread, None
        if thread is None:
            return
        thread.join(timeout if timeout is not None else 2 * self.poll_interval + 1.0)
        if thread.is_alive():
            self._report("Dialog watchdog did not stop in time; it exits after the current scan.")

    def __enter__(self) -> "DialogWatchdog":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()


def build_watchdog(settings: Settings | None = None, on_event: Optional[EventCallback] = None) -> Optional[DialogWatchdog]:
    settings = settings or get_settings()
    if not settings.watchdog_enabled:
        return None
    return DialogWatchdog(
        backend=build_window_backend(),
        title_patterns=settings.watchdog_title_patterns,
        poll_interval=settings.watchdog_poll_interval,
        on_event=on_event,
    )
