# fxcal/pipeline/calib_schema.py
"""
Distribution artifact schema.

Payload layout (JSON or torch.save):
    {
      "outputs":       ["<owner>:<index>", ...],        # calibration order
      "distributions": {"<owner>:<index>": {"min": float, "max": float}, ...},
      "meta":          {...}                             # free-form
    }

Outputs listed in "outputs" but missing from "distributions" were never
observed; they stay missing after a round trip.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fxcal.quantize.calib import OutputIdentity, QuantizationContext, Range


def _require_keys(d: Mapping, keys: Iterable[str], ctx: str) -> None:
    missing = [k for k in keys if k not in d]
    if missing:
        raise ValueError(f"{ctx}: missing keys {missing}; found {sorted(map(str, d.keys()))}")


def _expect_number(x: Any, name: str, ctx: str) -> float:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        raise ValueError(f"{ctx}: '{name}' must be number, got {type(x).__name__}")
    value = float(x)
    if not math.isfinite(value):
        raise ValueError(f"{ctx}: '{name}' must be finite, got {value}")
    return value


def validate_distribution_payload(payload: Mapping[str, Any]) -> None:
    """
    Raise ValueError with an actionable message if `payload` is malformed.
    """
    ctx = "validate_distribution_payload"
    if not isinstance(payload, Mapping):
        raise ValueError(f"{ctx}: payload must be a mapping, got {type(payload).__name__}")
    _require_keys(payload, ("outputs", "distributions"), ctx)

    outputs = payload["outputs"]
    if not isinstance(outputs, (list, tuple)) or not all(isinstance(k, str) for k in outputs):
        raise ValueError(f"{ctx}: 'outputs' must be a list of '<owner>:<index>' strings")
    if len(set(outputs)) != len(outputs):
        raise ValueError(f"{ctx}: 'outputs' contains duplicates")

    dists = payload["distributions"]
    if not isinstance(dists, Mapping):
        raise ValueError(f"{ctx}: 'distributions' must be a mapping")
    known = set(outputs)
    for key, entry in dists.items():
        where = f"{ctx}[{key}]"
        if key not in known:
            raise ValueError(f"{where}: not listed in 'outputs'")
        if not isinstance(entry, Mapping):
            raise ValueError(f"{where}: entry must be a mapping")
        _require_keys(entry, ("min", "max"), where)
        lo = _expect_number(entry["min"], "min", where)
        hi = _expect_number(entry["max"], "max", where)
        if lo > hi:
            raise ValueError(f"{where}: min={lo} > max={hi}")


def context_to_payload(ctx: QuantizationContext, meta: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    return {
        "outputs": [o.key for o in ctx.outputs],
        "distributions": {
            o.key: ctx.distributions[o].to_dict() for o in ctx.outputs if o in ctx.distributions
        },
        "meta": dict(meta or {}),
    }


def payload_to_context(payload: Mapping[str, Any]) -> QuantizationContext:
    validate_distribution_payload(payload)
    outputs: List[OutputIdentity] = [OutputIdentity.from_key(k) for k in payload["outputs"]]
    dists = {
        OutputIdentity.from_key(k): Range(float(v["min"]), float(v["max"]))
        for k, v in payload["distributions"].items()
    }
    return QuantizationContext(outputs=outputs, distributions=dists, plan=None)


__all__ = ["validate_distribution_payload", "context_to_payload", "payload_to_context"]
