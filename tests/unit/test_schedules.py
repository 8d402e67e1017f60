"""
Unit tests for the pure scheduling functions behind both executors.
"""

from __future__ import annotations

import pytest

from crocload.executors import arrival_offsets, target_at
from crocload.options import ArrivalRateProfile, Stage

pytestmark = pytest.mark.unit

ORIGINAL_STAGES = (Stage(300.0, 20), Stage(1200.0, 20), Stage(300.0, 0))


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [
        (0.0, 0),
        (15.0, 1),
        (150.0, 10),
        (299.9, 20),
        (300.0, 20),
        (900.0, 20),
        (1500.0, 20),
        (1650.0, 10),
        (1800.0, 0),
        (5000.0, 0),
    ],
)
def test_target_follows_original_profile(elapsed, expected):
    assert target_at(ORIGINAL_STAGES, elapsed) == expected


def test_target_starts_from_start_vus():
    stages = (Stage(10.0, 0),)

    assert target_at(stages, 0.0, start_vus=6) == 6
    assert target_at(stages, 5.0, start_vus=6) == 3
    assert target_at(stages, -1.0, start_vus=6) == 6


def test_zero_length_stage_jumps_to_target():
    stages = (Stage(0.0, 5), Stage(10.0, 5))

    assert target_at(stages, 0.0) == 5


def test_spike_offsets_are_periodic():
    profile = ArrivalRateProfile(
        exec_name="spikeWorkload",
        rate=30,
        time_unit=1.0,
        duration=60.0,
        pre_allocated_vus=30,
        max_vus=30,
    )

    offsets = list(arrival_offsets(profile))

    assert len(offsets) == 1800
    assert offsets[1] == pytest.approx(1 / 30)
    assert offsets[-1] < 60.0
    for second in range(60):
        in_window = [o for o in offsets if second <= o < second + 1]
        assert len(in_window) == 30


def test_offsets_for_fractional_windows():
    profile = ArrivalRateProfile(
        exec_name="x", rate=3, time_unit=2.0, duration=1.0, pre_allocated_vus=1, max_vus=1
    )

    assert list(arrival_offsets(profile)) == pytest.approx([0.0, 2 / 3])
