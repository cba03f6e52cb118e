# fxcal/quantize/calib/observers.py
"""
Range / RangeTracker: outlier-resistant min/max tracking for calibration.

Every tensor an output produces during calibration is reduced to a Range:
    - values with |x| > outlier_threshold (default 100.0) are ignored, so a
      single unstable activation cannot blow out the calibrated range
    - NaN never contributes to a bound

Successive Ranges of the same output are blended with an exponential moving
average (decay 0.01 during calibration) so that one odd batch barely moves
the running estimate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np
import torch

DEFAULT_OUTLIER_THRESHOLD = 100.0
DEFAULT_DECAY = 0.01


@dataclass(frozen=True)
class Range:
    min: float = math.inf
    max: float = -math.inf

    @classmethod
    def empty(cls) -> "Range":
        """Sentinel for "no observation yet"."""
        return cls(math.inf, -math.inf)

    @property
    def is_empty(self) -> bool:
        return self.min > self.max

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}


def _flatten(buffer: Any) -> torch.Tensor:
    if torch.is_tensor(buffer):
        return buffer.detach().to(device="cpu", dtype=torch.float64).reshape(-1)
    return torch.from_numpy(np.asarray(buffer, dtype=np.float64).reshape(-1))


class RangeTracker:
    """
    Stateless helpers turning raw buffers into Ranges and merging them.
    """

    def __init__(self, outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD) -> None:
        self.outlier_threshold = float(outlier_threshold)

    @torch.no_grad()
    def observe(self, buffer: Any) -> Range:
        """
        Range of all elements with |x| <= outlier_threshold.
        Returns Range.empty() when nothing survives the filter.
        """
        flat = _flatten(buffer)
        # NaN compares False, so it is dropped along with the outliers
        kept = flat[flat.abs() <= self.outlier_threshold]
        if kept.numel() == 0:
            return Range.empty()
        return Range(float(kept.min().item()), float(kept.max().item()))

    @staticmethod
    def merge(existing: Range, incoming: Range, decay: float = DEFAULT_DECAY) -> Range:
        """EMA of both bounds: decay * incoming + (1 - decay) * existing, written as a lerp."""
        if incoming.is_empty:
            return existing
        if existing.is_empty:
            return incoming
        return Range(
            existing.min + decay * (incoming.min - existing.min),
            existing.max + decay * (incoming.max - existing.max),
        )

    def __repr__(self) -> str:
        return f"RangeTracker(outlier_threshold={self.outlier_threshold})"


__all__ = ["Range", "RangeTracker", "DEFAULT_OUTLIER_THRESHOLD", "DEFAULT_DECAY"]
