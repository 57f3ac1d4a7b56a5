"""Unit tests for CodeGenerator."""

from __future__ import annotations

import logging

import pytest

from qr_autofetch.codegen import CodeGenerator, Credentials, GeneratedCode
from qr_autofetch.codegen.window import window_for

K_H1_B10 = "cbefd49745601b66e004daade4ee0a831da44ded1cf81b060aa7eb126a1fda6b"
K_H1_B20 = "d359a98401f32feb125077d16f102d90364b70fa8046155b1b475085589a3e3a"


def _generator(**kwargs) -> CodeGenerator:
    kwargs.setdefault("static_key", "K")
    return CodeGenerator("g1", "h1", **kwargs)


def test_generate_current_window() -> None:
    result = _generator().generate("current", 0)
    assert result.window.boundary_seconds == 10
    assert result.remaining_ms == 10_000
    assert result.digest == K_H1_B10
    assert result.code == f"g1-{K_H1_B10}-arkose+"
    assert result.derivation_input == "Kh110K"


def test_generate_next_window() -> None:
    result = _generator().generate("next", 0)
    assert result.window.boundary_seconds == 20
    assert result.digest == K_H1_B20
    assert result.remaining_ms == 10_000


def test_next_window_mid_interval_matches_advanced_window() -> None:
    result = _generator().generate("next", 4_000)
    assert result.window == window_for(10_000, 4_000, advance=True)
    assert result.window.boundary_seconds == 20
    assert result.remaining_ms == 6_000
    assert result.digest == K_H1_B20


def test_unknown_mode_rejected() -> None:
    with pytest.raises(ValueError):
        _generator().generate("previous", 0)  # type: ignore[arg-type]


def test_default_timestamp_comes_from_clock() -> None:
    gen = _generator(clock=lambda: 3.5)
    result = gen.generate()
    assert result.window.boundary_seconds == 10
    assert result.remaining_ms == 6_500
    assert gen.remaining_ms() == 6_500


def test_remaining_decreases_within_window() -> None:
    gen = _generator()
    samples = [gen.generate("current", t).remaining_ms for t in (0, 2_500, 9_999)]
    assert samples == [10_000, 7_500, 1]
    assert gen.generate("current", 10_000).remaining_ms == 10_000


def test_valid_until_and_public_dict() -> None:
    result = _generator().generate("current", 4_000)
    assert (result.valid_until - result.generated_at).total_seconds() == 6
    public = result.to_public_dict()
    assert public["window_boundary"] == 10
    assert public["remaining_ms"] == 6_000
    assert "derivation_input" not in public
    assert "Kh110K" not in str(public)


def test_new_window_notified_once_per_boundary(caplog: pytest.LogCaptureFixture) -> None:
    seen: list[GeneratedCode] = []
    gen = _generator(on_new_window=seen.append)
    with caplog.at_level(logging.INFO, logger="qr-autofetch.codegen.generator"):
        gen.generate("current", 0)
        gen.generate("current", 5_000)
        gen.generate("current", 9_999)
        gen.generate("current", 10_000)
    assert [r.window.boundary_seconds for r in seen] == [10, 20]
    lines = [r.getMessage() for r in caplog.records if "New code generated" in r.getMessage()]
    assert len(lines) == 2
    assert lines[0].startswith("New code generated for window 10: g1-cbefd497")


def test_remaining_ms_does_not_touch_notification_state() -> None:
    seen: list[GeneratedCode] = []
    gen = _generator(on_new_window=seen.append)
    for t in range(0, 30_000, 100):
        gen.remaining_ms(t)
    assert seen == []
    gen.generate("current", 25_000)
    assert len(seen) == 1


def test_from_credentials_and_repr_hides_secret() -> None:
    gen = CodeGenerator.from_credentials(
        Credentials(identity="g1", secret="very-secret"), static_key="K", interval_ms=30_000
    )
    assert gen.identity == "g1"
    assert gen.interval_ms == 30_000
    assert "very-secret" not in repr(gen)
    assert "very-secret" not in repr(Credentials("g1", "very-secret"))


def test_fractional_interval_rejected() -> None:
    with pytest.raises(ValueError):
        _generator(interval_ms=2_500)
