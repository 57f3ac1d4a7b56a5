"""
Unit tests for RefreshScheduler.

Coverage:
* initial publication and boundary-aligned regeneration
* countdown cadence never calling generate()
* stop() cancelling both cadences
"""

from __future__ import annotations

import pytest

from qr_autofetch.codegen import CodeGenerator, GeneratedCode
from qr_autofetch.scheduler import RefreshScheduler


@pytest.fixture()
def generator(fake_scheduler) -> CodeGenerator:
    return CodeGenerator("g1", "h1", static_key="K", clock=fake_scheduler.clock)


def test_start_publishes_immediately(generator, fake_scheduler) -> None:
    codes: list[GeneratedCode] = []
    refresh = RefreshScheduler(generator, fake_scheduler, clock=fake_scheduler.clock, on_code=codes.append)
    first = refresh.start()
    assert codes == [first]
    assert first.window.boundary_seconds == 10
    assert refresh.latest is first
    assert refresh.remaining_ms == 10_000
    assert refresh.running


def test_boundary_tick_follows_window_end(generator, fake_scheduler) -> None:
    fake_scheduler.advance(3.0)
    codes: list[GeneratedCode] = []
    refresh = RefreshScheduler(generator, fake_scheduler, clock=fake_scheduler.clock, on_code=codes.append)
    refresh.start()
    assert codes[0].remaining_ms == 7_000

    fake_scheduler.advance(7.0)
    assert [c.window.boundary_seconds for c in codes] == [10, 20]
    fake_scheduler.advance(20.0)
    assert [c.window.boundary_seconds for c in codes] == [10, 20, 30, 40]
    assert codes[-1].remaining_ms == 10_000


def test_countdown_uses_remaining_only(generator, fake_scheduler, monkeypatch) -> None:
    samples: list[int] = []
    refresh = RefreshScheduler(
        generator, fake_scheduler, clock=fake_scheduler.clock, on_countdown=samples.append
    )
    refresh.start()
    calls = 0
    original = generator.generate

    def _counting(*args, **kwargs):
        nonlocal calls
        calls += 1
        return original(*args, **kwargs)

    monkeypatch.setattr(generator, "generate", _counting)
    fake_scheduler.advance(0.5)
    assert calls == 0
    assert samples[0] == 10_000
    assert samples[-1] == 9_500
    assert samples == sorted(samples, reverse=True)
    assert len(samples) == 6


def test_stop_cancels_both_cadences(generator, fake_scheduler) -> None:
    codes: list[GeneratedCode] = []
    samples: list[int] = []
    refresh = RefreshScheduler(
        generator,
        fake_scheduler,
        clock=fake_scheduler.clock,
        on_code=codes.append,
        on_countdown=samples.append,
    )
    refresh.start()
    refresh.stop()
    fake_scheduler.advance(30)
    assert len(codes) == 1
    assert len(samples) == 1
    assert not refresh.running
    assert fake_scheduler.pending == []
    refresh.stop()


def test_start_twice_rejected(generator, fake_scheduler) -> None:
    refresh = RefreshScheduler(generator, fake_scheduler, clock=fake_scheduler.clock)
    refresh.start()
    with pytest.raises(RuntimeError):
        refresh.start()


def test_listeners_added_later(generator, fake_scheduler) -> None:
    refresh = RefreshScheduler(generator, fake_scheduler, clock=fake_scheduler.clock)
    codes: list[GeneratedCode] = []
    refresh.add_code_listener(codes.append)
    refresh.start()
    fake_scheduler.advance(10)
    assert len(codes) == 2
