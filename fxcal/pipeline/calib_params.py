# fxcal/pipeline/calib_params.py
"""
Derive per-output quantization parameters from a finalized distribution table.

Each observed output gets:
    min, max      calibrated range
    scale, bias   affine pair for fxcal.quantize.fixed_point.quantize
    mul, shift    fixed-point encoding of the dequantization step 1/scale

Outputs that were never observed are listed under "unseen"; no default range
is invented for them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from fxcal.overwatch import initialize_overwatch
from fxcal.quantize.calib import QuantizationContext, range_to_affine
from fxcal.quantize.fixed_point import extract_value_and_shift

overwatch = initialize_overwatch(__name__)

ParamsEntry = Dict[str, Any]
ParamsTable = Dict[str, Any]


def derive_params(ctx: QuantizationContext, bits: int, max_bits: int, max_shift: int) -> ParamsTable:
    entries: Dict[str, ParamsEntry] = {}
    unseen: List[str] = []
    for ident in ctx.outputs:
        rng = ctx.range_of(ident)
        if rng is None:
            unseen.append(ident.key)
            continue
        scale, bias = range_to_affine(rng, bits)
        mul, shift = extract_value_and_shift(1.0 / scale, max_bits, max_shift)
        entries[ident.key] = {
            "min": rng.min,
            "max": rng.max,
            "scale": scale,
            "bias": bias,
            "mul": mul,
            "shift": shift,
        }

    if unseen:
        overwatch.warning(f"{len(unseen)} outputs were never observed and get no parameters: {unseen[:10]}")
    return {
        "entries": entries,
        "unseen": unseen,
        "meta": {"bits": bits, "max_bits": max_bits, "max_shift": max_shift},
    }


def summarize_table(table: Mapping[str, Any], top_k: int = 20) -> str:
    entries = table.get("entries", {})
    meta = table.get("meta", {})
    lines = [
        f"[Params] outputs={len(entries)} unseen={len(table.get('unseen', []))} "
        f"bits={meta.get('bits')} max_bits={meta.get('max_bits')} max_shift={meta.get('max_shift')}"
    ]
    for key in list(entries)[: max(top_k, 0)]:
        e = entries[key]
        lines.append(
            f"  - {key}: range=[{e['min']:.4f}, {e['max']:.4f}] scale={e['scale']:.6g} "
            f"bias={e['bias']:g} mul={e['mul']:g} shift={e['shift']}"
        )
    if len(entries) > top_k:
        lines.append(f"  ... ({len(entries) - top_k} more)")
    for key in table.get("unseen", []):
        lines.append(f"  - {key}: (unseen)")
    return "\n".join(lines)


__all__ = ["derive_params", "summarize_table"]
