from __future__ import annotations

import itertools
from datetime import datetime, timedelta

import pytest

from yard_analytics.detention import DetentionStatus, classify
from yard_analytics.preprocess.time import UTC

ARRIVAL = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
PRE = ARRIVAL + timedelta(hours=1)
DET = ARRIVAL + timedelta(hours=2)


def test_classify_without_departure_is_still_in_yard() -> None:
    assert classify(ARRIVAL, None, PRE, DET).status is DetentionStatus.STILL_IN_YARD
    assert classify(ARRIVAL, None, None, None).status is DetentionStatus.STILL_IN_YARD


def test_classify_without_thresholds_is_unknown() -> None:
    departure = ARRIVAL + timedelta(hours=5)
    assert classify(ARRIVAL, departure, None, None).status is DetentionStatus.UNKNOWN


def test_classify_compares_departure_against_thresholds() -> None:
    detained = classify(ARRIVAL, DET + timedelta(minutes=90), PRE, DET)
    assert detained.status is DetentionStatus.IN_DETENTION
    assert detained.detention_hours == 1.5

    prevented = classify(ARRIVAL, PRE + timedelta(minutes=30), PRE, DET)
    assert prevented.status is DetentionStatus.PREVENTED
    assert prevented.detention_hours is None

    on_time = classify(ARRIVAL, PRE - timedelta(minutes=1), PRE, DET)
    assert on_time.status is DetentionStatus.NO_DETENTION

    # Departing exactly at the threshold is not past it.
    assert classify(ARRIVAL, DET, None, DET).status is DetentionStatus.NO_DETENTION


def test_classify_with_only_detention_threshold() -> None:
    result = classify(ARRIVAL, DET + timedelta(hours=3), None, DET)
    assert result.status is DetentionStatus.IN_DETENTION
    assert result.detention_hours == 3.0


@pytest.mark.parametrize(
    ("has_arrival", "has_departure", "has_pre", "has_det"),
    list(itertools.product([True, False], repeat=4)),
)
def test_classify_covers_every_field_combination(
    has_arrival: bool, has_departure: bool, has_pre: bool, has_det: bool
) -> None:
    departure = DET + timedelta(hours=1)
    result = classify(
        ARRIVAL if has_arrival else None,
        departure if has_departure else None,
        PRE if has_pre else None,
        DET if has_det else None,
    )

    if not has_departure:
        expected = DetentionStatus.STILL_IN_YARD
    elif not (has_pre or has_det):
        expected = DetentionStatus.UNKNOWN
    elif has_det:
        expected = DetentionStatus.IN_DETENTION
    else:
        expected = DetentionStatus.PREVENTED
    assert result.status is expected
    assert (result.detention_hours == 1.0) is (expected is DetentionStatus.IN_DETENTION)
