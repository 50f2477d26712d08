import numpy as np
import pytest
import yaml
from pydantic import ValidationError

from voxelseg.core.types import Connectivity, PeakOrder
from voxelseg.settings import Settings, WatershedCfg


def _write(tmp_path, payload):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(payload))
    return path


def test_defaults():
    cfg = WatershedCfg()
    assert cfg.peak_tolerance == 1.0
    assert cfg.mark_watershed_line is False
    assert cfg.inside_is_positive is True
    assert cfg.connectivity is Connectivity.face
    assert cfg.peak_order is PeakOrder.value
    assert cfg.workers == 1


def test_from_yaml(tmp_path):
    mask_path = tmp_path / "mask.npy"
    np.save(mask_path, np.zeros((2, 2), dtype=bool))
    path = _write(
        tmp_path,
        {
            "data": {"input_path": str(mask_path)},
            "grid": {"spacing": [2.0, 0.5]},
            "watershed": {"peak_tolerance": 0.25, "connectivity": "full"},
            "runtime": {"log_level": "DEBUG"},
        },
    )
    cfg = Settings.from_yaml(path)
    assert cfg.data.input_path == mask_path
    assert cfg.grid.spacing == [2.0, 0.5]
    assert cfg.watershed.peak_tolerance == 0.25
    assert cfg.watershed.connectivity is Connectivity.full
    assert cfg.output.new_array_name == "BinaryWatershedLabeled"


def test_missing_input_rejected(tmp_path):
    path = _write(tmp_path, {"data": {"input_path": str(tmp_path / "nope.npy")}})
    with pytest.raises(ValidationError):
        Settings.from_yaml(path)


@pytest.mark.parametrize(
    "watershed",
    [{"peak_tolerance": -1.0}, {"connectivity": "diagonal"}, {"workers": 0}],
)
def test_invalid_watershed_values(watershed):
    with pytest.raises(ValidationError):
        WatershedCfg(**watershed)


def test_invalid_spacing(tmp_path):
    mask_path = tmp_path / "mask.npy"
    np.save(mask_path, np.zeros((2, 2), dtype=bool))
    for spacing in ([1.0], [1.0, -1.0]):
        path = _write(tmp_path, {"data": {"input_path": str(mask_path)}, "grid": {"spacing": spacing}})
        with pytest.raises(ValidationError):
            Settings.from_yaml(path)
