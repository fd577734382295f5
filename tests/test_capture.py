from __future__ import annotations

from pathlib import Path

import pyperclip

from flowclip.capture import ContextCapture, ScreenCapturer, WindowInfo


class FakeWindows:
    def __init__(self, window: WindowInfo | None) -> None:
        self.window = window

    def is_supported(self) -> bool:
        return self.window is not None

    def current(self) -> WindowInfo | None:
        return self.window


class FakeScreens:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.calls = 0

    def capture(self) -> Path:
        self.calls += 1
        return self.path


class Clipboard:
    def __init__(self, *values) -> None:
        self.values = list(values)

    def __call__(self) -> str:
        value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        if isinstance(value, Exception):
            raise value
        return value


def test_poll_reports_only_new_content() -> None:
    clipboard = Clipboard("old", "old", "new", "new", "   ", "")
    capture = ContextCapture(windows=FakeWindows(WindowInfo("notes.txt - Notepad", "notepad")), read_clipboard=clipboard)
    capture.prime()
    assert capture.poll() is None
    item = capture.poll()
    assert item is not None
    assert (item.content, item.source_app, item.window_title) == ("new", "notepad", "notes.txt - Notepad")
    assert capture.poll() is None
    assert capture.poll() is None
    assert capture.poll() is None


def test_context_without_window_support(tmp_path) -> None:
    screens = FakeScreens(tmp_path / "shot.png")
    capture = ContextCapture(windows=FakeWindows(None), screens=screens, read_clipboard=Clipboard("x"))
    context = capture.context()
    assert context.source_app == "unknown"
    assert context.window_title == ""
    assert context.screenshot_path == tmp_path / "shot.png"
    assert screens.calls == 1


def test_clipboard_errors_read_as_empty() -> None:
    clipboard = Clipboard(pyperclip.PyperclipException("no clipboard"), "later")
    capture = ContextCapture(windows=FakeWindows(None), read_clipboard=clipboard)
    assert capture.poll() is None
    assert capture.poll().content == "later"


def test_capturer_without_backend_returns_none(tmp_path) -> None:
    capturer = ScreenCapturer(tmp_path)
    capturer._backend = None
    assert not capturer.available
    assert capturer.capture() is None
