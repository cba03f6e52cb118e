# fxcal/quantize/calib/range_calc.py
"""
Turn a calibrated Range into the affine (scale, bias) pair consumed by
fxcal.quantize.fixed_point.quantize:

    q = round(x * scale - bias),   x ~= (q + bias) / scale
"""

from __future__ import annotations

from typing import Tuple

import torch

from ..errors import ConfigurationError
from .observers import Range


def range_to_affine(rng: Range, bits: int) -> Tuple[float, float]:
    if bits <= 0:
        raise ConfigurationError(f"range_to_affine: bits must be positive, got {bits}")
    if rng.is_empty:
        raise ConfigurationError("range_to_affine: range has no observations")

    qrange = float((1 << int(bits)) - 1)
    diff = max(rng.max - rng.min, torch.finfo(torch.float32).eps)
    scale = qrange / diff
    bias = float(round(rng.min * scale))
    return scale, bias


__all__ = ["range_to_affine"]
