"""Range tracking: outlier filter and EMA merge."""

import math

import numpy as np
import pytest
import torch

from fxcal.quantize.calib import Range, RangeTracker


def test_observe_returns_exact_extremes_without_outliers() -> None:
    data = [3.5, -2.0, 0.0, 99.0, -100.0]
    rng = RangeTracker().observe(data)
    assert rng == Range(-100.0, 99.0)


def test_observe_skips_values_above_threshold() -> None:
    data = torch.tensor([1.0, 250.0, -0.5, -1e6, float("inf")])
    rng = RangeTracker().observe(data)
    assert rng == Range(-0.5, 1.0)


def test_observe_all_outliers_yields_empty_sentinel() -> None:
    rng = RangeTracker().observe(np.array([101.0, -500.0, float("-inf")]))
    assert rng.is_empty
    assert rng.min == math.inf and rng.max == -math.inf


def test_observe_ignores_nan() -> None:
    rng = RangeTracker().observe([float("nan"), 2.0, 4.0])
    assert rng == Range(2.0, 4.0)


def test_observe_custom_threshold() -> None:
    rng = RangeTracker(outlier_threshold=1.0).observe([0.5, 1.0, 1.5])
    assert rng == Range(0.5, 1.0)


def test_merge_with_self_is_identity() -> None:
    r = Range(-1.25, 3.75)
    assert RangeTracker.merge(r, r, 0.01) == r


def test_merge_with_self_is_exact_for_arbitrary_bounds() -> None:
    gen = torch.Generator().manual_seed(0)
    lows = (torch.rand(2000, generator=gen, dtype=torch.float64) - 0.5) * 200.0
    widths = torch.rand(2000, generator=gen, dtype=torch.float64) * 10.0
    ranges = [Range(float(lo), float(lo + w)) for lo, w in zip(lows, widths)]
    ranges.append(Range(71.48085531751386, 72.78085531751385))
    for r in ranges:
        assert RangeTracker.merge(r, r, 0.01) == r


def test_merge_weights_incoming_by_decay() -> None:
    merged = RangeTracker.merge(Range(0.0, 10.0), Range(-10.0, 20.0), 0.01)
    assert merged.min == pytest.approx(-0.1)
    assert merged.max == pytest.approx(10.1)


def test_merge_with_empty_keeps_evidence() -> None:
    r = Range(1.0, 2.0)
    assert RangeTracker.merge(r, Range.empty(), 0.01) == r
    assert RangeTracker.merge(Range.empty(), r, 0.01) == r
