"""Torch hook engine + module plan end to end."""

import pytest
import torch
from torch import nn

from fxcal.conf.calib import CalibConfig
from fxcal.pipeline.calib_collect import ModulePlan, TorchHookEngine, collect_distributions
from fxcal.quantize.calib import OutputIdentity, Range
from fxcal.quantize.errors import ConfigurationError, StructuralMismatchError


def _model() -> nn.Module:
    lin = nn.Linear(2, 2, bias=False)
    with torch.no_grad():
        lin.weight.copy_(torch.tensor([[1.0, 0.0], [0.0, -1.0]]))
    return nn.Sequential(lin, nn.ReLU())


def test_plan_orders_input_first() -> None:
    plan = ModulePlan("input", ["1", "0"])
    assert plan.outputs == [OutputIdentity("input"), OutputIdentity("1"), OutputIdentity("0")]
    assert plan.is_fed(OutputIdentity("input"))
    assert not plan.is_fed(OutputIdentity("0"))


def test_plan_rejects_input_name_collision() -> None:
    with pytest.raises(ConfigurationError):
        ModulePlan("0", ["0"])


def test_engine_returns_hooked_outputs_in_request_order() -> None:
    engine = TorchHookEngine(_model())
    x = engine.to_input((torch.tensor([[1.0, 2.0]]), torch.tensor([0])))
    relu, lin = engine.run(x, [OutputIdentity("1"), OutputIdentity("0")])
    assert torch.equal(lin, torch.tensor([[1.0, -2.0]]))
    assert torch.equal(relu, torch.tensor([[1.0, 0.0]]))


def test_engine_unknown_module_is_structural_error() -> None:
    engine = TorchHookEngine(_model())
    with pytest.raises(StructuralMismatchError, match="nope"):
        engine.run(torch.zeros(1, 2), [OutputIdentity("nope")])


def test_engine_nhwc_layout() -> None:
    engine = TorchHookEngine(nn.Identity(), layout="nhwc")
    x = engine.to_input(torch.zeros(2, 3, 4, 5))
    assert x.shape == (2, 4, 5, 3)


def test_collect_distributions_over_dataloader() -> None:
    batches = [torch.tensor([[1.0, 2.0]]), torch.tensor([[1.0, 2.0]])]
    cfg = CalibConfig(targets=["0", "1"])
    ctx = collect_distributions(_model(), batches, cfg, shapes={"0": [None, 2]})

    assert [o.key for o in ctx.outputs] == ["input:0", "0:0", "1:0"]
    assert ctx.distributions[OutputIdentity("input")].min == pytest.approx(1.0)
    assert ctx.distributions[OutputIdentity("0")].min == pytest.approx(-2.0)
    assert ctx.distributions[OutputIdentity("1")].max == pytest.approx(1.0)
    assert isinstance(ctx.distributions[OutputIdentity("1")], Range)
