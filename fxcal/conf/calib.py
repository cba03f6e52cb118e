# fxcal/conf/calib.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any
import os
import json

from fxcal.quantize.errors import ConfigurationError


LAYOUTS = ("nchw", "nhwc")


@dataclass
class CalibConfig:
    """
    Range calibration + fixed-point parameter configuration.

    Fields
    ------
    decay : EMA weight given to each new batch range (0.01 = slow, stable)
    outlier_threshold : |x| above this is ignored when tracking ranges
    weights_bits : width of the unsigned codes produced by quantize()
    max_bits : signed register width available for a multiplier mantissa
    max_shift : largest right shift the accelerator's shifter supports
    max_batches : stop after this many batches (None = whole dataset)
    input_name : owner name of the fed input output
    targets : module names whose outputs are calibrated, in order
    layout : "nchw" or "nhwc"; layout the engine expects for the input
    device : device used for forward passes
    batch_size : batch size when the CLI builds its own loader
    progress : show a tqdm bar over batches
    stats_out : distribution table artifact (.json or .pt)
    params_out : derived parameter table (.json)
    """
    decay: float = 0.01
    outlier_threshold: float = 100.0

    weights_bits: int = 8
    max_bits: int = 16
    max_shift: int = 20

    max_batches: Optional[int] = None
    input_name: str = "input"
    targets: List[str] = field(default_factory=list)
    layout: str = "nchw"
    device: str = "cpu"
    batch_size: int = 8
    progress: bool = False

    stats_out: str = "outputs/calib_distributions.json"
    params_out: str = "outputs/calib_params.json"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> "CalibConfig":
        if not 0.0 < self.decay <= 1.0:
            raise ConfigurationError(f"CalibConfig: decay must be in (0, 1], got {self.decay}")
        if self.outlier_threshold <= 0:
            raise ConfigurationError(f"CalibConfig: outlier_threshold must be > 0, got {self.outlier_threshold}")
        if self.weights_bits < 1:
            raise ConfigurationError(f"CalibConfig: weights_bits must be >= 1, got {self.weights_bits}")
        if self.max_bits < 1:
            raise ConfigurationError(f"CalibConfig: max_bits must be >= 1, got {self.max_bits}")
        if self.max_shift < 0:
            raise ConfigurationError(f"CalibConfig: max_shift must be >= 0, got {self.max_shift}")
        if self.max_batches is not None and self.max_batches < 0:
            raise ConfigurationError(f"CalibConfig: max_batches must be >= 0, got {self.max_batches}")
        if self.layout not in LAYOUTS:
            raise ConfigurationError(f"CalibConfig: layout must be one of {LAYOUTS}, got {self.layout!r}")
        return self

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "CalibConfig":
        return cls().merge(obj)

    @classmethod
    def from_env(cls, prefix: str = "FXCAL_") -> "CalibConfig":
        """
        Override common fields from environment variables:
          FXCAL_DECAY=0.01
          FXCAL_OUTLIER_THRESHOLD=100
          FXCAL_WEIGHTS_BITS=8
          FXCAL_MAX_BITS=16
          FXCAL_MAX_SHIFT=20
          FXCAL_MAX_BATCHES=32
          FXCAL_TARGETS=features.0,features.3,classifier
          FXCAL_LAYOUT=nchw|nhwc
          FXCAL_DEVICE=cuda|cpu
          FXCAL_PROGRESS=0|1
          FXCAL_STATS_OUT=...
          FXCAL_PARAMS_OUT=...
        Malformed numbers are ignored and keep the default.
        """
        cfg = cls()
        def _get(name: str) -> Optional[str]:
            return os.environ.get(prefix + name)

        for name, conv in (
            ("DECAY", float),
            ("OUTLIER_THRESHOLD", float),
            ("WEIGHTS_BITS", int),
            ("MAX_BITS", int),
            ("MAX_SHIFT", int),
            ("MAX_BATCHES", int),
            ("BATCH_SIZE", int),
        ):
            if (v := _get(name)):
                try:
                    setattr(cfg, name.lower(), conv(v))
                except ValueError:
                    pass

        if (v := _get("TARGETS")):
            cfg.targets = [t.strip() for t in v.split(",") if t.strip()]
        if (v := _get("PROGRESS")) is not None:
            cfg.progress = v.strip() not in ("0", "false", "False", "")
        for name in ("INPUT_NAME", "LAYOUT", "DEVICE", "STATS_OUT", "PARAMS_OUT"):
            if (v := _get(name)):
                setattr(cfg, name.lower(), v)
        return cfg

    def merge(self, other: Optional[Dict[str, Any]] = None) -> "CalibConfig":
        """
        Overwrite known fields from a dict, return self.
        """
        if not other:
            return self
        for k, v in other.items():
            if hasattr(self, k):
                setattr(self, k, v)
        if isinstance(self.targets, str):
            self.targets = [t.strip() for t in self.targets.split(",") if t.strip()]
        return self

    @classmethod
    def load_json(cls, path: str) -> "CalibConfig":
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        return cls.from_dict(obj)

    def save_json(self, path: str) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)


__all__ = ["CalibConfig", "LAYOUTS"]
