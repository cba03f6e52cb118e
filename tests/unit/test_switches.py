"""fxcal-params configuration resolution."""

import json
from pathlib import Path

import pytest

from fxcal.conf.calib import CalibConfig
from fxcal.quantize.calib import OutputIdentity, QuantizationContext, Range
from fxcal.quantize.calib_io import save_context
from fxcal.switches import quant_params


def _write_stats(path: Path) -> None:
    ident = OutputIdentity("conv")
    save_context(str(path), QuantizationContext(outputs=[ident], distributions={ident: Range(-2.0, 6.0)}))


def test_params_follow_env_and_default_to_params_out(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    stats, out = tmp_path / "dist.json", tmp_path / "params" / "table.json"
    _write_stats(stats)
    monkeypatch.setenv("FXCAL_STATS_OUT", str(stats))
    monkeypatch.setenv("FXCAL_PARAMS_OUT", str(out))
    monkeypatch.setenv("FXCAL_MAX_BITS", "8")
    monkeypatch.setenv("FXCAL_MAX_SHIFT", "12")

    quant_params.main([])

    table = json.loads(out.read_text(encoding="utf-8"))
    assert table["meta"] == {"bits": 8, "max_bits": 8, "max_shift": 12}
    entry = table["entries"]["conv:0"]
    assert entry["shift"] <= 12
    assert abs(entry["mul"]) < 2**7


def test_cli_flags_override_config_file(tmp_path: Path) -> None:
    stats, cfg_path, out = tmp_path / "dist.json", tmp_path / "cfg.json", tmp_path / "cli.json"
    _write_stats(stats)
    CalibConfig(stats_out=str(stats), weights_bits=4, max_shift=10,
                params_out=str(tmp_path / "unused.json")).save_json(str(cfg_path))

    quant_params.main(["--config", str(cfg_path), "--max-shift", "6", "--save-table", str(out)])

    table = json.loads(out.read_text(encoding="utf-8"))
    assert table["meta"] == {"bits": 4, "max_bits": 16, "max_shift": 6}
    assert not (tmp_path / "unused.json").exists()


def test_missing_stats_exits_with_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FXCAL_STATS_OUT", str(tmp_path / "absent.json"))
    with pytest.raises(SystemExit) as exc:
        quant_params.main(["--no-save"])
    assert exc.value.code == 1
