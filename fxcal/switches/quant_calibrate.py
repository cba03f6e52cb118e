# fxcal/switches/quant_calibrate.py
# -*- coding: utf-8 -*-
"""
CLI entry for range calibration.

This script:
  1. Loads a torch.save'd nn.Module.
  2. Loads calibration samples (a .pt tensor, first dim = samples).
  3. Runs the Calibrator over the requested submodule outputs.
  4. Writes the distribution table (.json or .pt).
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from typing import List, Optional

import torch
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from fxcal.conf.calib import CalibConfig
from fxcal.overwatch import initialize_overwatch
from fxcal.pipeline.calib_collect import collect_distributions
from fxcal.quantize.calib_io import save_context
from fxcal.quantize.errors import ConfigurationError, StructuralMismatchError

overwatch = initialize_overwatch("quant_calibrate")


# ------------------------------------------------------------------------------
# CLI
# ------------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="fxcal range calibration")
    p.add_argument("--model", type=str, required=True,
                   help="Path to a torch.save'd nn.Module")
    p.add_argument("--data", type=str, required=True,
                   help="Path to a .pt tensor of calibration samples (first dim = samples)")
    p.add_argument("--config", type=str, default=None,
                   help="Optional CalibConfig JSON; CLI flags override it")
    p.add_argument("--targets", type=str, default=None,
                   help="Comma-separated submodule names to calibrate (e.g. features.0,classifier)")
    p.add_argument("--batch-size", type=int, default=None)
    p.add_argument("--max-batches", type=int, default=None)
    p.add_argument("--layout", type=str, choices=["nchw", "nhwc"], default=None)
    p.add_argument("--device", type=str, default=None)
    p.add_argument("--progress", action="store_true", help="Show a progress bar over batches")
    p.add_argument("--out", type=str, default=None,
                   help="Where to write the distribution table (.json or .pt)")
    return p


def _resolve_config(args: argparse.Namespace) -> CalibConfig:
    cfg = CalibConfig.load_json(args.config) if args.config else CalibConfig.from_env()
    overrides = {
        "targets": args.targets,
        "batch_size": args.batch_size,
        "max_batches": args.max_batches,
        "layout": args.layout,
        "device": args.device,
        "stats_out": args.out,
    }
    cfg.merge({k: v for k, v in overrides.items() if v is not None})
    if args.progress:
        cfg.progress = True
    return cfg.validate()


# ------------------------------------------------------------------------------
# Core
# ------------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)

    try:
        cfg = _resolve_config(args)
        overwatch.info(f"[Step] Calibration with targets: {', '.join(cfg.targets) or '(input only)'}")

        model = torch.load(args.model, map_location="cpu", weights_only=False)
        if not isinstance(model, nn.Module):
            raise ConfigurationError(f"{args.model} does not hold an nn.Module (got {type(model).__name__})")
        samples = torch.load(args.data, map_location="cpu")
        if not torch.is_tensor(samples):
            raise ConfigurationError(f"{args.data} does not hold a tensor (got {type(samples).__name__})")

        loader = DataLoader(TensorDataset(samples.float()), batch_size=cfg.batch_size, shuffle=False)
        ctx = collect_distributions(model, loader, cfg)

        meta = {
            "created_at": datetime.now().isoformat(timespec="seconds"),
            "model": args.model,
            "data": args.data,
            "decay": cfg.decay,
            "outlier_threshold": cfg.outlier_threshold,
        }
        save_context(cfg.stats_out, ctx, meta=meta)
    except (ConfigurationError, StructuralMismatchError, OSError, ValueError) as e:
        overwatch.error(f"[Error] {e}")
        sys.exit(1)

    overwatch.info(f"[Save] distribution table written to: {cfg.stats_out}")
    for ident in ctx.outputs:
        rng = ctx.range_of(ident)
        shown = "(unseen)" if rng is None else f"[{rng.min:.4f}, {rng.max:.4f}]"
        overwatch.info(f"{ident}: {shown}", ctx_level=1)
    overwatch.info("[Done] Calibration step completed.")


# ------------------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------------------

if __name__ == "__main__":
    main()
