from __future__ import annotations

import io

import pytest

import progressbar_printer
import terminal
from live_printer import ProgressbarRegistry

TERMINAL_WIDTH = 80


@pytest.fixture(autouse=True)
def fixed_terminal_width(monkeypatch):
    """Pin the terminal width so rendered lines are deterministic."""
    monkeypatch.setattr(progressbar_printer, "get_terminal_width", lambda: TERMINAL_WIDTH)
    monkeypatch.setattr(terminal, "get_terminal_width", lambda: TERMINAL_WIDTH)
    return TERMINAL_WIDTH


@pytest.fixture
def registry() -> ProgressbarRegistry:
    return ProgressbarRegistry()


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


class FakeArea:
    """Records what a MultiPrinter asks the terminal area to draw."""

    def __init__(self) -> None:
        self.updates: list[str] = []
        self.stopped = False

    def set_writer(self, writer) -> None:
        self.writer = writer

    def update(self, content: str) -> None:
        self.updates.append(content)

    def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def area() -> FakeArea:
    return FakeArea()
