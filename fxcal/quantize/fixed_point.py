# fxcal/quantize/fixed_point.py
"""
Fixed-point helpers for integer-only accelerators.

quantize(data, scale, bias, weights_bits)
    float buffer -> unsigned codes, q = clamp(round(x * scale - bias), 0, 2**bits - 1).
    Also reports the largest dequantization error over the buffer.

extract_value_and_shift(value, max_bits, max_shift)
    float multiplier -> (mul, shift) with value == mul * 2**-shift,
    |mul| < 2**(max_bits - 1) and shift <= max_shift, i.e. "multiply by an
    integer register, then arithmetic right shift".

Both are pure functions and can run concurrently on independent inputs.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple, Tuple

import numpy as np
import torch

from .errors import ConfigurationError


class FixedPointEncoding(NamedTuple):
    mul: float
    shift: int


def _as_float64(data: Any) -> np.ndarray:
    if torch.is_tensor(data):
        return data.detach().to(device="cpu", dtype=torch.float64).reshape(-1).numpy()
    return np.asarray(data, dtype=np.float64).reshape(-1)


def _check_scale(scale: float) -> float:
    scale = float(scale)
    if scale == 0.0 or not math.isfinite(scale):
        raise ConfigurationError(f"quantize: scale must be finite and non-zero, got {scale}")
    return scale


def quantize(
    data: Any,
    scale: float,
    bias: float,
    weights_bits: int,
    dtype: Any = np.uint16,
) -> Tuple[np.ndarray, float]:
    """
    Quantize `data` into `weights_bits`-wide unsigned codes stored as `dtype`.

    Rounding is np.rint (round half to even). The returned error is the MAX of
    |(q + bias) / scale - x| over all elements, not the mean.
    """
    dt = np.dtype(dtype)
    if dt.kind not in ("u", "i"):
        raise ConfigurationError(f"quantize: dtype must be an integer type, got {dt}")
    width = dt.itemsize * 8 - (1 if dt.kind == "i" else 0)
    if not 1 <= int(weights_bits) <= width:
        raise ConfigurationError(
            f"quantize: weights_bits must be in [1, {width}] for {dt}, got {weights_bits}"
        )
    scale = _check_scale(scale)
    bias = float(bias)

    x = _as_float64(data)
    # clamp the top on the integer side: (1 << 64) - 1 has no exact float64
    top = 2.0 ** int(weights_bits)
    q = np.maximum(np.rint(x * scale - bias), 0.0)
    over = q >= top
    encoded = np.where(over, 0.0, q).astype(dt)
    encoded[over] = (1 << int(weights_bits)) - 1

    if x.size == 0:
        return encoded, 0.0
    err = np.abs((encoded.astype(np.float64) + bias) / scale - x)
    return encoded, float(err.max())


def dequantize(encoded: Any, scale: float, bias: float) -> np.ndarray:
    """Inverse of `quantize`: (q + bias) / scale as float64."""
    scale = _check_scale(scale)
    q = _as_float64(encoded)
    return (q + float(bias)) / scale


def extract_value_and_shift(value: float, max_bits: int, max_shift: int) -> FixedPointEncoding:
    if max_bits < 1:
        raise ConfigurationError(f"extract_value_and_shift: max_bits must be >= 1, got {max_bits}")
    if max_shift < 0:
        raise ConfigurationError(f"extract_value_and_shift: max_shift must be >= 0, got {max_shift}")
    value = float(value)
    if not math.isfinite(value):
        raise ConfigurationError(f"extract_value_and_shift: value must be finite, got {value}")

    if abs(value) > 1:
        # large magnitude: the shift budget lends bits to the mantissa
        mul, exp = math.frexp(value)
        shift = min(max_shift, max_bits - 1 - exp)
        mul = math.ldexp(mul, shift + exp)
    elif value == 0:
        mul, shift = 0.0, 0
    else:
        # exp <= 0 here; the negative exponent is folded back into the shift
        mul, exp = math.frexp(value)
        shift = min(max_shift + exp, max_bits - 1)
        mul = math.ldexp(mul, shift)
        shift -= exp

    assert abs(mul) < 2 ** (max_bits - 1), f"mul={mul} does not fit {max_bits} bits"
    assert shift <= max_shift, f"shift={shift} exceeds max_shift={max_shift}"
    assert math.isclose(value, math.ldexp(mul, -shift), rel_tol=1e-12, abs_tol=0.0), (
        f"{mul} * 2**-{shift} does not reconstruct {value}"
    )
    return FixedPointEncoding(mul, shift)


__all__ = ["FixedPointEncoding", "quantize", "dequantize", "extract_value_and_shift"]
