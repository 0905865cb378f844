"""Tests for dagger_gen.persistence: debounced autosave."""

import asyncio

from dagger_gen.persistence import DebouncedSaver
from dagger_gen.storage import PersistenceError


class Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.saved: list[dict] = []
        self.fail = fail

    def __call__(self, snapshot: dict) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.saved.append(snapshot)


def test_zero_delay_saves_immediately():
    rec = Recorder()
    saver = DebouncedSaver(rec, delay=0)
    saver.queue({"n": 1})
    assert rec.saved == [{"n": 1}]
    assert not saver.pending


def test_without_event_loop_saves_immediately():
    rec = Recorder()
    DebouncedSaver(rec, delay=5).queue({"n": 1})
    assert rec.saved == [{"n": 1}]


async def test_coalesces_to_last_snapshot():
    rec = Recorder()
    saver = DebouncedSaver(rec, delay=0.05)
    for n in range(5):
        saver.queue({"n": n})
    assert rec.saved == []
    assert saver.pending
    await asyncio.sleep(0.15)
    assert rec.saved == [{"n": 4}]
    assert not saver.pending


async def test_flush_writes_now():
    rec = Recorder()
    saver = DebouncedSaver(rec, delay=10)
    saver.queue({"n": 1})
    assert saver.flush()
    assert rec.saved == [{"n": 1}]
    assert not saver.flush()


async def test_cancel_drops_pending():
    rec = Recorder()
    saver = DebouncedSaver(rec, delay=0.01)
    saver.queue({"n": 1})
    saver.cancel()
    await asyncio.sleep(0.05)
    assert rec.saved == []


def test_failure_is_logged_and_dropped(caplog):
    saver = DebouncedSaver(Recorder(fail=True), delay=0)
    saver.queue({"n": 1})
    assert not saver.pending
    assert "Autosave failed" in caplog.text
