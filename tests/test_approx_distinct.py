from __future__ import annotations

import pytest

from yard_analytics.streaming.approx_distinct import ApproxDistinct, fnv1a32


def test_fnv1a32_matches_reference_values() -> None:
    assert fnv1a32("") == 0x811C9DC5
    assert fnv1a32("a") == 0xE40C292C


def test_fnv1a32_hashes_utf16_code_units() -> None:
    # U+00E9 is a single 16-bit unit, not the two UTF-8 bytes C3 A9.
    assert fnv1a32("\u00e9") == 0x6C0B6C44

    expected = 0x811C9DC5
    for unit in (0xD83D, 0xDE00):
        expected = ((expected ^ unit) * 0x01000193) & 0xFFFFFFFF
    assert fnv1a32("\U0001F600") == expected
    assert fnv1a32("\ud83d\ude00") == expected


def test_approx_distinct_ignores_blank_and_duplicate_keys() -> None:
    sketch = ApproxDistinct(2048)
    sketch.add(None)
    sketch.add("   ")
    assert sketch.estimate() == 0

    for _ in range(50):
        sketch.add("DRIVER-1")
    sketch.add(" DRIVER-1 ")
    assert sketch.estimate() == 1


def test_approx_distinct_estimates_moderate_cardinality() -> None:
    sketch = ApproxDistinct(2048)
    for idx in range(100):
        sketch.add(f"driver-{idx}")
    assert 90 <= sketch.estimate() <= 110


def test_approx_distinct_saturates_at_bitmap_size() -> None:
    sketch = ApproxDistinct(8)
    for idx in range(1_000):
        sketch.add(idx)
    assert sketch.zero_bits() == 0
    assert sketch.estimate() == 8

    with pytest.raises(ValueError, match="bits must be >= 1"):
        ApproxDistinct(0)
