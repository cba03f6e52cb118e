# fxcal/quantize/calib_io.py
# -*- coding: utf-8 -*-
"""
Save / load finalized distribution tables and derived parameter tables.

Suffix decides the format: ".pt" goes through torch.save / torch.load,
anything else is JSON. See fxcal.pipeline.calib_schema for the payload layout.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Mapping, Optional

import torch

from fxcal.pipeline.calib_schema import context_to_payload, payload_to_context
from fxcal.quantize.calib import QuantizationContext


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def _is_torch_file(path: str) -> bool:
    return str(path).lower().endswith((".pt", ".pth"))


def _write(path: str, payload: Mapping[str, Any]) -> None:
    path = str(path)
    _ensure_dir(path)
    if _is_torch_file(path):
        torch.save(dict(payload), path)
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def _read(path: str) -> Dict[str, Any]:
    path = str(path)
    if _is_torch_file(path):
        return torch.load(path, map_location="cpu")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_context(path: str, ctx: QuantizationContext, meta: Optional[Mapping[str, Any]] = None) -> None:
    """Write ordered outputs + observed ranges. The plan reference is not persisted."""
    _write(path, context_to_payload(ctx, meta))


def load_context(path: str) -> QuantizationContext:
    """Read and validate a distribution artifact; raises ValueError if malformed."""
    return payload_to_context(_read(path))


def write_params_table(path: str, table: Mapping[str, Any]) -> None:
    _write(path, table)


def read_params_table(path: str) -> Dict[str, Any]:
    return _read(path)


__all__ = ["save_context", "load_context", "write_params_table", "read_params_table"]
