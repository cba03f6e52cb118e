"""Distribution artifacts and parameter derivation."""

import json
from pathlib import Path

import pytest

from fxcal.pipeline.calib_params import derive_params, summarize_table
from fxcal.pipeline.calib_schema import validate_distribution_payload
from fxcal.quantize.calib import OutputIdentity, QuantizationContext, Range, range_to_affine
from fxcal.quantize.calib_io import load_context, read_params_table, save_context, write_params_table
from fxcal.quantize.errors import ConfigurationError


def _ctx() -> QuantizationContext:
    a, b, c = OutputIdentity("input"), OutputIdentity("conv", 1), OutputIdentity("never")
    return QuantizationContext(outputs=[a, b, c], distributions={a: Range(0.0, 1.0), b: Range(-2.0, 6.0)})


@pytest.mark.parametrize("name", ["dist.json", "dist.pt"])
def test_save_load_preserves_table(tmp_path: Path, name: str) -> None:
    ctx = _ctx()
    path = tmp_path / "out" / name
    save_context(str(path), ctx, meta={"note": "unit"})
    loaded = load_context(str(path))
    assert loaded.outputs == ctx.outputs
    assert loaded.distributions == ctx.distributions
    assert loaded.unseen() == [OutputIdentity("never")]


def test_validate_rejects_inverted_range() -> None:
    payload = {"outputs": ["a:0"], "distributions": {"a:0": {"min": 2.0, "max": 1.0}}}
    with pytest.raises(ValueError, match="min=2.0 > max=1.0"):
        validate_distribution_payload(payload)


def test_validate_rejects_unlisted_and_missing(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not listed"):
        validate_distribution_payload({"outputs": [], "distributions": {"a:0": {"min": 0, "max": 1}}})
    with pytest.raises(ValueError, match="missing keys"):
        validate_distribution_payload({"outputs": ["a:0"]})
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"outputs": ["a:0"], "distributions": {"a:0": {"min": "x", "max": 1}}}))
    with pytest.raises(ValueError, match="must be number"):
        load_context(str(path))


def test_range_to_affine_unsigned_8bit() -> None:
    scale, bias = range_to_affine(Range(-2.0, 6.0), 8)
    assert scale == pytest.approx(255.0 / 8.0)
    assert bias == round(-2.0 * 255.0 / 8.0)


def test_range_to_affine_rejects_empty() -> None:
    with pytest.raises(ConfigurationError):
        range_to_affine(Range.empty(), 8)


def test_derive_params_reports_unseen(tmp_path: Path) -> None:
    table = derive_params(_ctx(), bits=8, max_bits=16, max_shift=20)
    assert table["unseen"] == ["never:0"]
    entry = table["entries"]["conv:1"]
    assert entry["shift"] <= 20
    assert abs(entry["mul"]) < 2**15
    assert entry["mul"] * 2.0 ** -entry["shift"] == pytest.approx(1.0 / entry["scale"])

    path = tmp_path / "params.json"
    write_params_table(str(path), table)
    assert read_params_table(str(path))["entries"].keys() == table["entries"].keys()

    text = summarize_table(table)
    assert "conv:1" in text and "never:0: (unseen)" in text
