from __future__ import annotations
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, PositiveInt, field_validator

from .core.types import Connectivity, PeakOrder


# ---------------------
# Input data
# ---------------------
class DataCfg(BaseModel):
    input_path: Path
    array_key: Optional[str] = None  # array name inside an .npz
    output_dir: Optional[Path] = None

    @field_validator("input_path")
    @classmethod
    def input_exists(cls, v: Path) -> Path:
        if not v.exists():
            raise ValueError(f"mask file not found: {v}")
        return v


class GridCfg(BaseModel):
    spacing: Optional[List[float]] = None  # slowest axis first; unit spacing if omitted

    @field_validator("spacing")
    @classmethod
    def spacing_positive(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is None:
            return v
        if len(v) not in (2, 3):
            raise ValueError(f"spacing needs 2 or 3 entries, got {len(v)}")
        if any(s <= 0 for s in v):
            raise ValueError(f"spacing must be positive, got {v}")
        return v


# ---------------------
# Segmentation settings
# ---------------------
class WatershedCfg(BaseModel):
    peak_tolerance: float = Field(1.0, ge=0)
    mark_watershed_line: bool = False
    inside_is_positive: bool = True
    connectivity: Connectivity = Connectivity.face
    strict_on_plateau: bool = True
    peak_order: PeakOrder = PeakOrder.value
    workers: PositiveInt = 1


# ---------------------
# Output settings
# ---------------------
class OutputCfg(BaseModel):
    save_as_new_array: bool = True
    new_array_name: str = Field("BinaryWatershedLabeled", min_length=1)
    write_centroids: bool = True
    save_debug_npz: bool = False


# ---------------------
# Runtime settings
# ---------------------
class RuntimeCfg(BaseModel):
    log_level: str = "INFO"


# ---------------------
# Root settings object
# ---------------------
class Settings(BaseModel):
    data: DataCfg
    grid: GridCfg = GridCfg()
    watershed: WatershedCfg = WatershedCfg()
    output: OutputCfg = OutputCfg()
    runtime: RuntimeCfg = RuntimeCfg()

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls(**data)
