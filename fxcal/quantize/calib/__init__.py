# fxcal/quantize/calib/__init__.py
"""
Range calibration toolkit.

Public API:
- Range, RangeTracker:   outlier-filtered min/max + EMA merge
- OutputIdentity:        (owner, index) key of one graph output
- Calibrator, calibrate: dataset -> engine -> distribution table
- QuantizationContext:   ordered outputs + distribution table + plan
- range_to_affine:       Range -> (scale, bias) for unsigned codes

Typical usage (calibrate → derive):
    from fxcal.quantize.calib import Calibrator, range_to_affine
    from fxcal.quantize.fixed_point import extract_value_and_shift

    ctx = Calibrator(decay=0.01).calibrate(loader, engine, plan)
    for ident in ctx.outputs:
        rng = ctx.range_of(ident)
        if rng is None:
            continue  # never observed
        scale, bias = range_to_affine(rng, bits=8)
        mul, shift = extract_value_and_shift(1.0 / scale, max_bits=16, max_shift=20)
"""

from .observers import Range, RangeTracker
from .calibrator import (
    OutputIdentity,
    PlanContext,
    ExecutionEngine,
    QuantizationContext,
    Calibrator,
    calibrate,
)
from .range_calc import range_to_affine

__all__ = [
    "Range",
    "RangeTracker",
    "OutputIdentity",
    "PlanContext",
    "ExecutionEngine",
    "QuantizationContext",
    "Calibrator",
    "calibrate",
    "range_to_affine",
]
