# fxcal/pipeline/calib_collect.py
"""
Run range calibration on a torch nn.Module.

ModulePlan    : plan over a model input plus a list of named submodules
TorchHookEngine: executes the model once per batch and captures the outputs
                 of the requested submodules through forward hooks

Identity convention:
    OutputIdentity(<input_name>, 0)  -> the batch input itself (fed)
    OutputIdentity(<module_name>, 0) -> first tensor produced by that module
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import torch
from torch import nn
from torch.utils.hooks import RemovableHandle

from fxcal.conf.calib import CalibConfig
from fxcal.overwatch import initialize_overwatch
from fxcal.quantize.calib import Calibrator, OutputIdentity, QuantizationContext
from fxcal.quantize.errors import ConfigurationError, StructuralMismatchError

overwatch = initialize_overwatch(__name__)


def _extract_first_tensor(obj: Any) -> Optional[torch.Tensor]:
    if torch.is_tensor(obj):
        return obj
    if isinstance(obj, (list, tuple)):
        for item in obj:
            tensor = _extract_first_tensor(item)
            if tensor is not None:
                return tensor
    if isinstance(obj, Mapping):
        for item in obj.values():
            tensor = _extract_first_tensor(item)
            if tensor is not None:
                return tensor
    return None


class ModulePlan:
    """Input identity first, then one identity per target module, in order."""

    def __init__(
        self,
        input_name: str,
        targets: Sequence[str],
        shapes: Optional[Mapping[str, Sequence[Optional[int]]]] = None,
    ) -> None:
        if not input_name:
            raise ConfigurationError("ModulePlan: input_name must be non-empty")
        if input_name in targets:
            raise ConfigurationError(f"ModulePlan: target '{input_name}' collides with the input name")
        self.input = OutputIdentity(input_name)
        self._outputs = [self.input] + [OutputIdentity(t) for t in dict.fromkeys(targets)]
        self._shapes = dict(shapes or {})

    @property
    def outputs(self) -> List[OutputIdentity]:
        return list(self._outputs)

    def is_fed(self, ident: OutputIdentity) -> bool:
        return ident == self.input

    def output_shape(self, ident: OutputIdentity) -> Optional[Sequence[Optional[int]]]:
        return self._shapes.get(ident.owner)

    def __repr__(self) -> str:
        return f"ModulePlan(outputs={[str(o) for o in self._outputs]})"


class TorchHookEngine:
    def __init__(self, model: nn.Module, device: str = "cpu", layout: str = "nchw") -> None:
        if layout not in ("nchw", "nhwc"):
            raise ConfigurationError(f"TorchHookEngine: unknown layout {layout!r}")
        self.device = torch.device(device)
        self.model = model.to(self.device).eval()
        self.layout = layout
        self._modules: Dict[str, nn.Module] = dict(model.named_modules())

    def to_input(self, batch: Any) -> torch.Tensor:
        """First tensor of the batch, on device, in the layout the model expects."""
        tensor = _extract_first_tensor(batch)
        if tensor is None:
            raise StructuralMismatchError(f"batch of type {type(batch).__name__} holds no tensor")
        tensor = tensor.to(self.device)
        if self.layout == "nhwc" and tensor.dim() == 4:
            tensor = tensor.permute(0, 2, 3, 1).contiguous()
        return tensor

    @torch.no_grad()
    def run(self, inp: torch.Tensor, fetches: Sequence[OutputIdentity]) -> List[torch.Tensor]:
        captured: Dict[str, torch.Tensor] = {}
        handles: List[RemovableHandle] = []

        def _hook_factory(name: str):
            def _hook(_mod: nn.Module, _inputs: Any, output: Any) -> None:
                tensor = _extract_first_tensor(output)
                if tensor is not None and name not in captured:
                    captured[name] = tensor.detach()
            return _hook

        for ident in fetches:
            module = self._modules.get(ident.owner)
            if module is None:
                raise StructuralMismatchError(f"model has no submodule named '{ident.owner}'")
            handles.append(module.register_forward_hook(_hook_factory(ident.owner)))

        try:
            self.model(inp)
        finally:
            for h in handles:
                h.remove()

        missing = [str(i) for i in fetches if i.owner not in captured]
        if missing:
            raise StructuralMismatchError(f"forward pass produced no tensor for {missing}")
        return [captured[i.owner] for i in fetches]


def collect_distributions(
    model: nn.Module,
    dataloader: Iterable[Any],
    cfg: CalibConfig,
    shapes: Optional[Mapping[str, Sequence[Optional[int]]]] = None,
) -> QuantizationContext:
    cfg.validate()
    plan = ModulePlan(cfg.input_name, cfg.targets, shapes=shapes)
    engine = TorchHookEngine(model, device=cfg.device, layout=cfg.layout)
    overwatch.info(f"[Config] targets={cfg.targets or '(input only)'} decay={cfg.decay} layout={cfg.layout}")
    calibrator = Calibrator(
        decay=cfg.decay,
        outlier_threshold=cfg.outlier_threshold,
        max_batches=cfg.max_batches,
        progress=cfg.progress,
    )
    return calibrator.calibrate(dataloader, engine, plan)


__all__ = ["ModulePlan", "TorchHookEngine", "collect_distributions"]
