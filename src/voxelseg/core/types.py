from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

import numpy as np

from ..core.debug import DebugStore

Spacing = Tuple[float, ...]  # per axis, slowest first: (dz, dy, dx) or (dy, dx)
Coord = Tuple[int, ...]


class Connectivity(str, Enum):
    face = "face"
    full = "full"


class PeakOrder(str, Enum):
    value = "value"  # suppression-scan discovery order
    index = "index"  # ascending linear index


@dataclass(frozen=True)
class Peak:
    coord: Coord
    value: float


@dataclass
class SegmentResult:
    labels: np.ndarray
    peaks: List[Peak]
    distance: np.ndarray
    degenerate: bool
    artifacts: Dict[str, Any] = field(default_factory=dict)
    debug: DebugStore = field(default_factory=DebugStore)

    @property
    def n_labels(self) -> int:
        return int(self.labels.max(initial=0))
