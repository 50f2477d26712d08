import logging
from typing import Optional

import numpy as np

from ..core.debug import DebugStore
from ..core.errors import InvalidInput, VoxelSegError
from ..core.types import Connectivity, PeakOrder, SegmentResult
from ..seg.segmenter import segment, validate_mask
from ..settings import WatershedCfg
from ..store import ArrayStore

log = logging.getLogger("voxelseg")

# error codes reported through ``error_code``
MISSING_ARRAY = -3001
INVALID_ARRAY = -3002
ARRAY_EXISTS = -3003
INVALID_PARAMETER = -3004
STAGE_FAILED = -5
DATA_CHECK_FAILED = -11000
UNEXPECTED = -1


class BinaryWatershedLabeled:
    """Labels the grains of a boolean cell array and stores them as a ``uint32`` array."""

    human_label = "Binary Watershed Labeled"

    def __init__(
        self,
        store: ArrayStore,
        selected_array: str,
        *,
        peak_tolerance: float = 1.0,
        new_array_name: str = "BinaryWatershedLabeled",
        save_as_new_array: bool = True,
        mark_watershed_line: bool = False,
        inside_is_positive: bool = True,
        connectivity: Connectivity = Connectivity.face,
        strict_on_plateau: bool = True,
        peak_order: PeakOrder = PeakOrder.value,
        workers: int = 1,
    ):
        self.store = store
        self.selected_array = selected_array
        self.peak_tolerance = peak_tolerance
        self.new_array_name = new_array_name
        self.save_as_new_array = save_as_new_array
        self.mark_watershed_line = mark_watershed_line
        self.inside_is_positive = inside_is_positive
        self.connectivity = connectivity
        self.strict_on_plateau = strict_on_plateau
        self.peak_order = peak_order
        self.workers = workers

        self.error_code = 0
        self.error_message = ""
        self.error_stage: Optional[str] = None
        self.result: Optional[SegmentResult] = None

    @classmethod
    def from_config(cls, store: ArrayStore, selected_array: str, cfg: WatershedCfg, **kwargs) -> "BinaryWatershedLabeled":
        return cls(
            store,
            selected_array,
            peak_tolerance=cfg.peak_tolerance,
            mark_watershed_line=cfg.mark_watershed_line,
            inside_is_positive=cfg.inside_is_positive,
            connectivity=cfg.connectivity,
            strict_on_plateau=cfg.strict_on_plateau,
            peak_order=cfg.peak_order,
            workers=cfg.workers,
            **kwargs,
        )

    @property
    def output_array_name(self) -> str:
        return self.new_array_name if self.save_as_new_array else self.selected_array

    def _fail(self, code: int, message: str, stage: Optional[str] = None) -> bool:
        self.error_code = code
        self.error_message = message
        self.error_stage = stage
        log.error("%s: %s (code %d)", self.human_label, message, code)
        return False

    def data_check(self) -> bool:
        self.error_code = 0
        self.error_message = ""
        self.error_stage = None

        if self.selected_array not in self.store:
            return self._fail(MISSING_ARRAY, f"array '{self.selected_array}' not found in store")
        try:
            validate_mask(self.store.get(self.selected_array), self.store.spacing)
        except InvalidInput as e:
            return self._fail(INVALID_ARRAY, e.message)

        try:
            tolerance = float(self.peak_tolerance)
        except (TypeError, ValueError):
            return self._fail(INVALID_PARAMETER, f"peak tolerance is not a number: {self.peak_tolerance!r}")
        if not np.isfinite(tolerance) or tolerance < 0:
            return self._fail(INVALID_PARAMETER, f"peak tolerance must be >= 0, got {tolerance}")
        if self.save_as_new_array:
            if not self.new_array_name:
                return self._fail(INVALID_PARAMETER, "new array name is empty")
            if self.new_array_name in self.store:
                return self._fail(ARRAY_EXISTS, f"array '{self.new_array_name}' already exists")
        return True

    def execute(self, dbg: Optional[DebugStore] = None) -> Optional[SegmentResult]:
        if not self.data_check():
            self.error_code = DATA_CHECK_FAILED
            self.error_message = f"data check did not pass during execute: {self.error_message}"
            return None

        try:
            res = segment(
                self.store.get(self.selected_array),
                self.store.spacing,
                self.peak_tolerance,
                mark_watershed_line=self.mark_watershed_line,
                inside_is_positive=self.inside_is_positive,
                connectivity=self.connectivity,
                strict_on_plateau=self.strict_on_plateau,
                peak_order=self.peak_order,
                workers=self.workers,
                dbg=dbg,
            )
        except VoxelSegError as e:
            self._fail(STAGE_FAILED, e.message, e.stage)
            return None
        except Exception as e:
            log.exception("%s: unexpected failure", self.human_label)
            self._fail(UNEXPECTED, f"{type(e).__name__}: {e}")
            return None

        if self.save_as_new_array:
            self.store.add(self.new_array_name, res.labels)
        else:
            self.store.replace(self.selected_array, res.labels)
        self.result = res
        log.info("%s: wrote %d labels to '%s'", self.human_label, res.n_labels, self.output_array_name)
        return res
