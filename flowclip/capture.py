"""Desktop context capture around clipboard changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import pyperclip

from .models import CaptureContext, ClipboardItem
from .utils import utc_now

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import psutil  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    psutil = None  # type: ignore

try:  # pragma: no cover - optional dependency
    import mss  # type: ignore
    from mss import tools as mss_tools  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    mss = None  # type: ignore
    mss_tools = None  # type: ignore

try:  # pragma: no cover - optional dependency
    from PIL import ImageGrab  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    ImageGrab = None  # type: ignore


@dataclass(slots=True)
class WindowInfo:
    title: str
    app_name: str


class ActiveWindowReader:
    """Reads the foreground window title and owning process on Windows."""

    def __init__(self) -> None:
        from sys import platform

        self._supported = False
        if not platform.startswith("win"):
            logger.info("Active window lookup is only available on Windows; source app will be 'unknown'")
            return
        try:
            import ctypes
            from ctypes import wintypes

            self._ctypes = ctypes
            self._wintypes = wintypes
            self._user32 = ctypes.windll.user32
            self._supported = True
        except (ImportError, AttributeError, OSError) as exc:  # pragma: no cover - runtime safeguard
            logger.warning("Active window lookup unavailable: %s", exc)

    def is_supported(self) -> bool:
        return self._supported

    def current(self) -> Optional[WindowInfo]:
        if not self._supported:
            return None
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        length = self._user32.GetWindowTextLengthW(hwnd) or 1024
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, self._ctypes.byref(pid))
        return WindowInfo(title=buffer.value.strip(), app_name=self._process_name(int(pid.value)))

    @staticmethod
    def _process_name(pid: int) -> str:
        if pid <= 0 or psutil is None:
            return "unknown"
        try:
            return Path(psutil.Process(pid).name()).stem or "unknown"
        except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
            return "unknown"


class ScreenCapturer:
    """Saves full-screen PNG captures, preferring mss over Pillow."""

    def __init__(self, output_dir: Path | str = "captures", *, monitor_index: int = 1) -> None:
        self.output_dir = Path(output_dir)
        self.monitor_index = monitor_index
        if mss is not None and mss_tools is not None:
            self._backend: Optional[Callable[[Path], None]] = self._capture_with_mss
        elif ImageGrab is not None:
            self._backend = self._capture_with_pillow
        else:
            self._backend = None

    @property
    def available(self) -> bool:
        return self._backend is not None

    def capture(self) -> Optional[Path]:
        if self._backend is None:
            logger.debug("No screen capture backend available")
            return None
        self.output_dir.mkdir(parents=True, exist_ok=True)
        destination = self.output_dir / f"clip_{utc_now().strftime('%Y%m%d_%H%M%S_%f')}.png"
        try:
            self._backend(destination)
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.warning("Screen capture failed: %s", exc)
            return None
        if not destination.exists():
            logger.error("Screen capture backend did not produce a file: %s", destination)
            return None
        return destination

    def _capture_with_mss(self, destination: Path) -> None:
        with mss.mss() as sct:
            monitors = sct.monitors
            index = min(max(self.monitor_index, 1), len(monitors) - 1)
            shot = sct.grab(monitors[index])
            mss_tools.to_png(shot.rgb, shot.size, output=str(destination))

    def _capture_with_pillow(self, destination: Path) -> None:
        image = ImageGrab.grab()
        image.save(destination, format="PNG")


class ContextCapture:
    """Polls the clipboard and packages each new value with its desktop context."""

    def __init__(
        self,
        *,
        windows: Optional[ActiveWindowReader] = None,
        screens: Optional[ScreenCapturer] = None,
        read_clipboard: Callable[[], str] = pyperclip.paste,
    ) -> None:
        self.windows = windows or ActiveWindowReader()
        self.screens = screens
        self._read_clipboard = read_clipboard
        self._last_content: Optional[str] = None

    def prime(self) -> None:
        """Remember the current clipboard so it is not reported as new."""

        self._last_content = self._read()

    def poll(self) -> Optional[ClipboardItem]:
        content = self._read()
        if not content or content == self._last_content:
            return None
        self._last_content = content
        if not content.strip():
            return None
        return self.capture(content)

    def capture(self, content: str) -> ClipboardItem:
        return ClipboardItem.create(content, self.context())

    def context(self) -> CaptureContext:
        window = self.windows.current() if self.windows.is_supported() else None
        screenshot = self.screens.capture() if self.screens is not None else None
        return CaptureContext(
            source_app=window.app_name if window else "unknown",
            window_title=window.title if window else "",
            screenshot_path=screenshot,
        )

    def _read(self) -> str:
        try:
            value = self._read_clipboard()
        except pyperclip.PyperclipException as exc:
            logger.warning("Clipboard unavailable: %s", exc)
            return ""
        return value if isinstance(value, str) else ""
