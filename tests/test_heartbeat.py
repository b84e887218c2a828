"""Tests for the keep-alive heartbeat manager."""

from __future__ import annotations

import asyncio

import pytest

from toolstream.chat.streaming.heartbeat import HeartbeatManager


class BeatCounter:
    def __init__(self, accept: int | None = None) -> None:
        self.count = 0
        self._accept = accept

    def __call__(self) -> bool:
        if self._accept is not None and self.count >= self._accept:
            return False
        self.count += 1
        return True


@pytest.mark.asyncio
async def test_sends_immediately_then_periodically() -> None:
    beat = BeatCounter()
    async with HeartbeatManager(beat, interval=0.01) as heartbeat:
        assert beat.count == 1
        await asyncio.sleep(0.055)
        assert heartbeat.running

    assert beat.count >= 3
    assert heartbeat.cleaned
    assert not heartbeat.running


@pytest.mark.asyncio
async def test_cleanup_is_idempotent_and_stops_beats() -> None:
    beat = BeatCounter()
    heartbeat = HeartbeatManager(beat, interval=0.01)
    heartbeat.start()

    heartbeat.cleanup()
    heartbeat.cleanup()
    count = beat.count
    await asyncio.sleep(0.03)
    await heartbeat.aclose()

    assert beat.count == count
    assert not heartbeat.running


@pytest.mark.asyncio
async def test_stops_when_beat_reports_closed_stream() -> None:
    beat = BeatCounter(accept=2)
    heartbeat = HeartbeatManager(beat, interval=0.01)
    heartbeat.start()
    await asyncio.sleep(0.05)

    assert beat.count == 2
    assert not heartbeat.running
    await heartbeat.aclose()


@pytest.mark.asyncio
async def test_start_after_cleanup_does_nothing() -> None:
    beat = BeatCounter()
    heartbeat = HeartbeatManager(beat, interval=0.01)
    heartbeat.cleanup()
    heartbeat.start()

    assert beat.count == 0
    assert not heartbeat.running


def test_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        HeartbeatManager(lambda: True, interval=0)
