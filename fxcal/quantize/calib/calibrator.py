# fxcal/quantize/calib/calibrator.py
# -*- coding: utf-8 -*-
"""
Range calibration over a representative dataset.

The calibrator is deliberately ignorant of how the graph is executed. It talks
to three collaborators:

    dataset   any iterable of batches, consumed once, in order
    engine    ExecutionEngine: converts a batch to the input tensor and runs
              one forward pass for a list of requested outputs
    plan      PlanContext: ordered outputs, which of them are fed by the
              input, and optional declared shapes

The engine answers positionally, so the order of `plan.outputs` is captured
once at the start of a run and used for every batch.

Result: QuantizationContext {outputs, distributions, plan}, where
distributions maps OutputIdentity -> Range (EMA-smoothed across batches).
"""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

import torch
from tqdm import tqdm

from fxcal.overwatch import initialize_overwatch

from ..errors import StructuralMismatchError
from .observers import DEFAULT_DECAY, DEFAULT_OUTLIER_THRESHOLD, Range, RangeTracker

overwatch = initialize_overwatch(__name__)


# ---- Public types ----------------------------------------------------------------

@dataclass(frozen=True)
class OutputIdentity:
    """One output slot of one graph node."""
    owner: str
    index: int = 0

    @property
    def key(self) -> str:
        return f"{self.owner}:{self.index}"

    @classmethod
    def from_key(cls, key: str) -> "OutputIdentity":
        owner, sep, index = key.rpartition(":")
        if not sep or not owner:
            return cls(key, 0)
        try:
            return cls(owner, int(index))
        except ValueError:
            raise ValueError(f"bad output key {key!r}: expected '<owner>:<index>'") from None

    def __str__(self) -> str:
        return self.key


DistributionTable = Dict[OutputIdentity, Range]
Shape = Optional[Sequence[Optional[int]]]


@runtime_checkable
class PlanContext(Protocol):
    @property
    def outputs(self) -> Sequence[OutputIdentity]: ...

    def is_fed(self, ident: OutputIdentity) -> bool: ...

    def output_shape(self, ident: OutputIdentity) -> Shape: ...


@runtime_checkable
class ExecutionEngine(Protocol):
    def to_input(self, batch: Any) -> Any: ...

    def run(self, inp: Any, fetches: Sequence[OutputIdentity]) -> Sequence[Any]: ...


@dataclass
class QuantizationContext:
    outputs: List[OutputIdentity]
    distributions: DistributionTable = field(default_factory=dict)
    plan: Any = None

    def range_of(self, ident: OutputIdentity) -> Optional[Range]:
        return self.distributions.get(ident)

    def unseen(self) -> List[OutputIdentity]:
        return [o for o in self.outputs if o not in self.distributions]


# ---- Helpers ---------------------------------------------------------------------

def _numel(tensor: Any) -> int:
    if torch.is_tensor(tensor):
        return int(tensor.numel())
    size = getattr(tensor, "size", None)
    if isinstance(size, int):
        return size
    return len(tensor)


def _leading_dim(tensor: Any) -> Optional[int]:
    shape = getattr(tensor, "shape", None)
    if shape is None or len(shape) == 0:
        return None
    return int(shape[0])


def _expected_numel(shape: Shape, batch: Optional[int]) -> Optional[int]:
    """
    Element count implied by a declared shape. A leading None/-1 is the batch
    dimension and resolves to `batch`; unknown dims elsewhere disable the check.
    """
    if shape is None:
        return None
    dims = list(shape)
    if dims and (dims[0] is None or dims[0] < 0):
        if batch is None:
            return None
        dims[0] = batch
    if any(d is None or d < 0 for d in dims):
        return None
    return int(math.prod(dims))


# ---- Calibrator ------------------------------------------------------------------

class Calibrator:
    """
    Sequential range calibrator. One batch is fully observed before the next
    one is requested; the distribution table belongs to a single run.
    """

    def __init__(
        self,
        *,
        decay: float = DEFAULT_DECAY,
        outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
        max_batches: Optional[int] = None,
        progress: bool = False,
    ) -> None:
        self.decay = float(decay)
        self.tracker = RangeTracker(outlier_threshold)
        self.max_batches = max_batches
        self.progress = progress

    def _split_outputs(self, plan: PlanContext) -> Tuple[List[OutputIdentity], List[OutputIdentity]]:
        outputs = list(plan.outputs)
        fetches = [o for o in outputs if not plan.is_fed(o)]
        return outputs, fetches

    def _assemble(
        self,
        fed: Sequence[bool],
        inp: Any,
        computed: Sequence[Any],
    ) -> List[Any]:
        expected = len(fed) - sum(fed)
        if len(computed) != expected:
            raise StructuralMismatchError(
                f"engine returned {len(computed)} tensors, plan expects {expected} computed outputs"
            )
        it = iter(computed)
        return [inp if is_fed else next(it) for is_fed in fed]

    def record(
        self,
        context: QuantizationContext,
        tensors: Sequence[Any],
        batch: Optional[int] = None,
    ) -> None:
        """Observe one batch worth of tensors, position i -> context.outputs[i]."""
        plan = context.plan
        for ident, tensor in zip(context.outputs, tensors):
            if plan is not None:
                want = _expected_numel(plan.output_shape(ident), batch)
                got = _numel(tensor)
                if want is not None and want != got:
                    raise StructuralMismatchError(
                        f"output '{ident}' has {got} elements, plan declares {want}"
                    )
            new_range = self.tracker.observe(tensor)
            if new_range.is_empty:
                overwatch.debug(f"'{ident}' had no in-range values; keeping prior estimate", ctx_level=1)
                continue
            prior = context.distributions.get(ident)
            if prior is None:
                context.distributions[ident] = new_range
            else:
                context.distributions[ident] = self.tracker.merge(prior, new_range, self.decay)

    def calibrate(
        self,
        dataset: Iterable[Any],
        engine: ExecutionEngine,
        plan: PlanContext,
    ) -> QuantizationContext:
        outputs, fetches = self._split_outputs(plan)
        fed = [plan.is_fed(o) for o in outputs]
        context = QuantizationContext(outputs=outputs, plan=plan)
        overwatch.info(
            f"Calibrating {len(outputs)} outputs ({len(outputs) - len(fetches)} fed, {len(fetches)} computed)"
        )

        if self.max_batches is not None:
            dataset = itertools.islice(dataset, self.max_batches)

        num_batches = 0
        with overwatch.scoped("Range calibration"):
            for batch in tqdm(dataset, desc="calibrate", disable=not self.progress, leave=False):
                inp = engine.to_input(batch)
                computed = engine.run(inp, fetches)
                tensors = self._assemble(fed, inp, computed)
                self.record(context, tensors, batch=_leading_dim(inp))
                num_batches += 1
                overwatch.debug(f"batch {num_batches}: {len(context.distributions)} ranges tracked", ctx_level=1)

        if num_batches == 0:
            overwatch.warning("Dataset yielded no batches; distribution table is empty")
        unseen = context.unseen()
        if unseen and num_batches:
            overwatch.warning(f"{len(unseen)} outputs have no range: {[str(o) for o in unseen[:10]]}")
        overwatch.info(f"Calibrated {len(context.distributions)}/{len(outputs)} outputs over {num_batches} batches")
        return context


def calibrate(
    dataset: Iterable[Any],
    engine: ExecutionEngine,
    plan: PlanContext,
    *,
    decay: float = DEFAULT_DECAY,
    max_batches: Optional[int] = None,
) -> QuantizationContext:
    """Functional shortcut for Calibrator(...).calibrate(...)."""
    return Calibrator(decay=decay, max_batches=max_batches).calibrate(dataset, engine, plan)


__all__ = [
    "OutputIdentity",
    "DistributionTable",
    "PlanContext",
    "ExecutionEngine",
    "QuantizationContext",
    "Calibrator",
    "calibrate",
]
