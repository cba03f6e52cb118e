# fxcal/switches/quant_params.py
# -*- coding: utf-8 -*-
"""
CLI entry for parameter derivation: distribution table -> per-output
(scale, bias) and fixed-point (mul, shift) of the dequantization step.

Settings come from --config (or FXCAL_* environment variables), then CLI flags.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from fxcal.conf.calib import CalibConfig
from fxcal.overwatch import initialize_overwatch
from fxcal.pipeline.calib_params import derive_params, summarize_table
from fxcal.quantize.calib_io import load_context, write_params_table
from fxcal.quantize.errors import ConfigurationError

overwatch = initialize_overwatch("quant_params")


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="fxcal fixed-point parameter derivation")
    p.add_argument("--stats", type=str, default=None,
                   help="Distribution table written by fxcal-calibrate (default: config stats_out)")
    p.add_argument("--config", type=str, default=None,
                   help="Optional CalibConfig JSON; CLI flags override it")
    p.add_argument("--bits", type=int, default=None, help="Code width (config weights_bits)")
    p.add_argument("--max-bits", type=int, default=None, help="Multiplier register width")
    p.add_argument("--max-shift", type=int, default=None, help="Largest right shift")
    p.add_argument("--top-k", type=int, default=30, help="Entries shown in the summary")
    p.add_argument("--save-table", type=str, default=None,
                   help="Where to save the parameter table (default: config params_out)")
    p.add_argument("--no-save", action="store_true", help="Only print the summary")
    return p


def _resolve_config(args: argparse.Namespace) -> CalibConfig:
    cfg = CalibConfig.load_json(args.config) if args.config else CalibConfig.from_env()
    overrides = {
        "stats_out": args.stats,
        "weights_bits": args.bits,
        "max_bits": args.max_bits,
        "max_shift": args.max_shift,
        "params_out": args.save_table,
    }
    cfg.merge({k: v for k, v in overrides.items() if v is not None})
    return cfg.validate()


def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)

    try:
        cfg = _resolve_config(args)
        overwatch.info(
            f"[Config] bits={cfg.weights_bits}, max_bits={cfg.max_bits}, max_shift={cfg.max_shift}"
        )
        ctx = load_context(cfg.stats_out)
        table = derive_params(ctx, cfg.weights_bits, cfg.max_bits, cfg.max_shift)
        if not args.no_save:
            write_params_table(cfg.params_out, table)
    except (ConfigurationError, OSError, ValueError) as e:
        overwatch.error(f"[Error] {e}")
        sys.exit(1)

    print(summarize_table(table, top_k=args.top_k))
    if not args.no_save:
        overwatch.info(f"[Save] parameter table written to: {cfg.params_out}")


if __name__ == "__main__":
    main()
