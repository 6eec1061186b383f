"""
Tests for the buffer multiplexing and redraw loop of MultiPrinter.
"""

from __future__ import annotations

import io
import threading
import time
from datetime import timedelta

import pytest

from live_printer import LivePrinter
from models import DEFAULT_MULTI_PRINTER, DEFAULT_PROGRESSBAR
from multi_printer import MultiPrinter, SyncBuffer, visible_line
from progressbar_printer import ProgressbarPrinter
from terminal import TerminalArea, remove_color

FAST = DEFAULT_MULTI_PRINTER.with_update_delay(timedelta(milliseconds=10))


class _DummyPrinter:
    def __init__(self) -> None:
        self.started = 0
        self.stopped = 0

    def generic_start(self) -> "_DummyPrinter":
        self.started += 1
        return self

    def generic_stop(self) -> "_DummyPrinter":
        self.stopped += 1
        return self


@pytest.mark.parametrize(
    "content, expected",
    [
        ("A\rB\rC", "C"),
        ("A\r\r", "A"),
        ("\rfirst\rsecond\n", "second"),
        ("\n\nplain line\n", "plain line"),
        ("only", "only"),
        ("", ""),
        ("\r\r", ""),
    ],
)
def test_visible_line(content, expected) -> None:
    assert visible_line(content) == expected


def test_sync_buffer_decodes_bytes() -> None:
    buf = SyncBuffer()
    assert buf.write(b"caf\xc3\xa9 ") == 5
    buf.write(b"\xff")
    buf.write("done")

    assert buf.getvalue() == "caf\u00e9 \ufffddone"
    assert str(buf) == buf.getvalue()


def test_sync_buffer_concurrent_writes() -> None:
    buf = SyncBuffer()

    def produce(char: str) -> None:
        for _ in range(200):
            buf.write(char * 3)

    threads = [threading.Thread(target=produce, args=(c,)) for c in "abcde"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    content = buf.getvalue()
    assert len(content) == 5 * 200 * 3
    # Every write lands whole.
    for i in range(0, len(content), 3):
        assert len(set(content[i:i + 3])) == 1


def test_merge_keeps_registration_order(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    b1, b2, b3 = multi.new_writer(), multi.new_writer(), multi.new_writer()

    b3.write("\rthree-old\rthree")
    b1.write("\rone")
    b2.write("\rtwo-old\rtwo\r")

    assert multi.get_string() == "one\ntwo\nthree\n"


def test_empty_buffer_contributes_blank_line(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    multi.new_writer()
    multi.new_writer().write("x")

    assert multi.get_string() == "\nx\n"


def test_start_redraws_until_stopped(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    buf = multi.new_writer()

    multi.start()
    assert multi.is_active
    buf.write("\rhalfway")
    time.sleep(0.1)
    buf.write("\rdone")
    multi.stop()

    assert not multi.is_active
    assert "halfway\n" in area.updates
    assert area.updates[-1] == "done\n"
    assert area.stopped

    count = len(area.updates)
    time.sleep(0.05)
    assert len(area.updates) == count


def test_lifecycle_fans_out_to_sub_printers(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    printers = [_DummyPrinter(), _DummyPrinter()]
    for printer in printers:
        multi.add_printer(printer)

    multi.start()
    assert [p.started for p in printers] == [1, 1]
    multi.stop()
    assert [p.stopped for p in printers] == [1, 1]


def test_printers_and_buffers_are_independent(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    multi.add_printer(_DummyPrinter())

    assert multi.get_string() == ""
    assert len(multi.printers) == 1
    assert multi.buffers == []


def test_progressbars_share_one_area(area, registry) -> None:
    multi = MultiPrinter(FAST, area=area)
    config = DEFAULT_PROGRESSBAR.with_show_elapsed_time(False).with_show_title(True)
    first = ProgressbarPrinter(config.with_title("first").with_writer(multi.new_writer()), registry=registry)
    second = ProgressbarPrinter(config.with_title("second").with_total(5).with_writer(multi.new_writer()), registry=registry)
    multi.add_printer(first)
    multi.add_printer(second)

    multi.start()
    assert first.is_active and second.is_active
    first.add(50)
    second.add(2)

    lines = remove_color(multi.get_string()).splitlines()
    assert lines[0].startswith("first [050/100]")
    assert lines[1].startswith("second [2/5]")

    second.add(3)
    multi.stop()

    assert not first.is_active
    assert not second.is_active
    final = remove_color(area.updates[-1]).splitlines()
    assert final[0].startswith("first [050/100]")
    assert final[1].startswith("second [5/5]")
    assert "100%" in final[1]


def test_with_update_delay_returns_copy(area) -> None:
    multi = MultiPrinter(FAST, area=area)
    multi.new_writer()

    slower = multi.with_update_delay(timedelta(seconds=1))
    slower.new_writer()

    assert multi.update_delay == timedelta(milliseconds=10)
    assert slower.update_delay == timedelta(seconds=1)
    assert len(multi.buffers) == 1
    assert len(slower.buffers) == 2


def test_with_writer_returns_copy(stream) -> None:
    multi = MultiPrinter(FAST)
    redirected = multi.with_writer(stream)

    assert multi.writer is None
    assert redirected.writer is stream


def test_set_writer_retargets_area(stream) -> None:
    multi = MultiPrinter(FAST.with_writer(io.StringIO()))
    multi.new_writer().write("\rhello")
    multi.set_writer(stream)

    multi.start()
    time.sleep(0.05)
    multi.stop()

    assert multi.writer is stream
    assert "hello" in stream.getvalue()


def test_redraw_through_terminal_area(stream) -> None:
    multi = MultiPrinter(FAST, area=TerminalArea(stream))
    multi.new_writer().write("a")
    multi.new_writer().write("b")

    multi.start()
    time.sleep(0.05)
    multi.stop()

    output = stream.getvalue()
    assert output.startswith("a\x1b[0K\nb\x1b[0K\n")
    # Later frames move back up over the two lines drawn before.
    assert "\x1b[2Fa" in output


def test_multi_printers_nest(area) -> None:
    inner = MultiPrinter(FAST, area=type(area)())
    outer = MultiPrinter(FAST, area=area)
    outer.add_printer(inner)

    assert isinstance(inner, LivePrinter)
    outer.start()
    assert inner.is_active
    outer.stop()
    assert not inner.is_active


def test_restart_tracks_fresh_bars(area, registry, stream) -> None:
    multi = MultiPrinter(FAST, area=area)
    config = DEFAULT_PROGRESSBAR.with_show_elapsed_time(False).with_writer(stream)
    bar = ProgressbarPrinter(config, registry=registry)
    multi.add_printer(bar)

    multi.start()
    multi.stop()
    assert not bar.is_active

    multi.start()
    fresh = multi.printers[0]
    assert fresh is not bar
    assert fresh.is_active

    multi.stop()
    assert not fresh.is_active
    assert len(registry) == 0
