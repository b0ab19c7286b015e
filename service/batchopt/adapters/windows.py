"""Top-level window enumeration for the dialog watchdog.

The Win32 backend talks to user32 through ctypes; on other platforms the
null backend reports no windows, so the watchdog idles harmlessly.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import List

from loguru import logger

WM_CLOSE = 0x0010


@dataclass(frozen=True)
class WindowInfo:
    handle: int
    title: str
    process_id: int


class WindowBackend:
    def list_windows(self, process_id: int) -> List[WindowInfo]:
        raise NotImplementedError

    def close_window(self, window: WindowInfo) -> None:
        raise NotImplementedError


class NullWindowBackend(WindowBackend):
    def list_windows(self, process_id: int) -> List[WindowInfo]:
        return []

    def close_window(self, window: WindowInfo) -> None:
        return None


class Win32WindowBackend(WindowBackend):
    def __init__(self):
        import ctypes
        from ctypes import wintypes

        self._ctypes = ctypes
        self._wintypes = wintypes
        self._user32 = ctypes.windll.user32
        self._enum_proc = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.HWND, wintypes.LPARAM)

    def _window_pid(self, hwnd) -> int:
        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, self._ctypes.byref(pid))
        return pid.value

    def _window_title(self, hwnd) -> str:
        length = self._user32.GetWindowTextLengthW(hwnd)
        if length <= 0:
            return ""
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        return buffer.value

    def list_windows(self, process_id: int) -> List[WindowInfo]:
        found: List[WindowInfo] = []

        def _visit(hwnd, _lparam):
            if self._user32.IsWindowVisible(hwnd) and self._window_pid(hwnd) == process_id:
                found.append(WindowInfo(handle=int(hwnd), title=self._window_title(hwnd), process_id=process_id))
            return True

        self._user32.EnumWindows(self._enum_proc(_visit), 0)
        return found

    def close_window(self, window: WindowInfo) -> None:
        self._user32.PostMessageW(window.handle, WM_CLOSE, 0, 0)


def build_window_backend() -> WindowBackend:
    if sys.platform == "win32":
        return Win32WindowBackend()
    logger.info("Dialog watchdog has no window backend on {}; dialogs will not be closed", sys.platform)
    return NullWindowBackend()
