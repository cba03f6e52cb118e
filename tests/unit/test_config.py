"""CalibConfig loading and validation."""

from pathlib import Path

import pytest

from fxcal.conf.calib import CalibConfig
from fxcal.quantize.errors import ConfigurationError


def test_defaults_match_calibration_constants() -> None:
    cfg = CalibConfig()
    assert cfg.decay == 0.01
    assert cfg.outlier_threshold == 100.0
    assert cfg.validate() is cfg


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FXCAL_DECAY", "0.05")
    monkeypatch.setenv("FXCAL_MAX_SHIFT", "15")
    monkeypatch.setenv("FXCAL_TARGETS", "features.0, classifier")
    monkeypatch.setenv("FXCAL_LAYOUT", "nhwc")
    monkeypatch.setenv("FXCAL_MAX_BITS", "not-a-number")
    cfg = CalibConfig.from_env()
    assert cfg.decay == 0.05
    assert cfg.max_shift == 15
    assert cfg.targets == ["features.0", "classifier"]
    assert cfg.layout == "nhwc"
    assert cfg.max_bits == 16


def test_json_round_trip(tmp_path: Path) -> None:
    cfg = CalibConfig(targets=["a", "b"], max_batches=4)
    path = tmp_path / "nested" / "cfg.json"
    cfg.save_json(str(path))
    assert CalibConfig.load_json(str(path)) == cfg


def test_merge_ignores_unknown_keys_and_splits_targets() -> None:
    cfg = CalibConfig().merge({"targets": "x,y", "bogus": 1})
    assert cfg.targets == ["x", "y"]
    assert not hasattr(cfg, "bogus")


@pytest.mark.parametrize(
    "field,value",
    [("decay", 0.0), ("max_bits", 0), ("max_shift", -1), ("weights_bits", 0), ("layout", "chw")],
)
def test_validate_rejects(field: str, value) -> None:
    with pytest.raises(ConfigurationError, match=field):
        CalibConfig(**{field: value}).validate()
