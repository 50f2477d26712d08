import logging
import math
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

import numpy as np

from ..core.debug import DebugStore
from ..core.errors import InvalidInput, VoxelSegError
from ..core.grid import GridLike, as_grid
from ..core.types import Connectivity, PeakOrder, SegmentResult
from .distance import distance_transform, validate_mask
from .maxima import find_local_maxima, markers_from_peaks
from .watershed import marker_watershed

log = logging.getLogger("voxelseg")

__all__ = ["segment", "validate_mask"]


@contextmanager
def _stage(name: str) -> Iterator[None]:
    try:
        yield
    except VoxelSegError as e:
        if e.stage is None:
            e.stage = name
        log.error("segmentation failed in stage '%s': %s", e.stage, e.message)
        raise


def segment(
    mask: GridLike,
    spacing: Optional[Sequence[float]] = None,
    tolerance: float = 1.0,
    *,
    mark_watershed_line: bool = False,
    inside_is_positive: bool = True,
    connectivity: Connectivity = Connectivity.face,
    strict_on_plateau: bool = True,
    peak_order: PeakOrder = PeakOrder.value,
    workers: int = 1,
    dbg: Optional[DebugStore] = None,
) -> SegmentResult:
    """
    Split a binary mask into labeled grains:
      1) signed distance map of the mask
      2) peaks of the distance map (one per grain) as markers 1..N
      3) watershed of the inverted distance map from those markers
      4) labels outside the mask reset to 0

    ``inside_is_positive`` only sets the sign of the returned distance map;
    peaks are always taken on the mask interior.
    """
    dbg = dbg if dbg is not None else DebugStore()

    # --- 0) Validate everything before doing any work ---
    with _stage("validate"):
        grid = validate_mask(mask, spacing)
        tolerance = float(tolerance)
        if not math.isfinite(tolerance) or tolerance < 0:
            raise InvalidInput(f"peak tolerance must be a finite value >= 0, got {tolerance}")
        if int(workers) < 1:
            raise InvalidInput(f"workers must be >= 1, got {workers}")
        try:
            connectivity = Connectivity(connectivity)
            peak_order = PeakOrder(peak_order)
        except ValueError as e:
            raise InvalidInput(str(e)) from e
        grid = as_grid(grid, connectivity=connectivity)
    bw = grid.data

    # --- 1) Distance map ---
    with _stage("distance_transform"):
        distance = distance_transform(grid, inside_is_positive=True, workers=workers)
    interior = distance.data
    dbg.add("distance", interior)

    # --- 2) Peaks -> markers ---
    with _stage("local_maxima"):
        peaks = find_local_maxima(
            distance,
            tolerance,
            strict_on_plateau=strict_on_plateau,
            mask=grid,
            connectivity=connectivity,
            order=peak_order,
        )
    with _stage("markers"):
        markers = markers_from_peaks(
            peaks,
            grid.extents,
            spacing=grid.spacing,
            merge_plateaus=not strict_on_plateau,
            connectivity=connectivity,
        )
    dbg.add("markers", markers.data)

    # --- 3) Flood the inverted distance map inside the mask ---
    elevation = float(interior.max()) - interior
    dbg.add("elevation", elevation)
    with _stage("watershed"):
        raw = marker_watershed(
            grid.like(elevation),
            markers,
            mask=grid,
            connectivity=connectivity,
            mark_watershed_line=mark_watershed_line,
        )
    dbg.add("raw_labels", raw.data)

    # --- 4) Mask back to the foreground ---
    with _stage("mask"):
        labels = np.array(raw.data, copy=True)
        labels[~bw] = 0

    signed = interior if inside_is_positive else -interior
    log.info(
        "segmented %s mask: %d foreground voxels, %d peaks (tolerance %.3g)%s",
        "x".join(str(n) for n in bw.shape),
        int(np.count_nonzero(bw)),
        len(peaks),
        tolerance,
        " [single-class mask]" if distance.degenerate else "",
    )
    return SegmentResult(
        labels=labels,
        peaks=peaks,
        distance=signed,
        degenerate=distance.degenerate,
        artifacts={
            "n_peaks": len(peaks),
            "n_labels": int(markers.data.max(initial=0)),
            "tolerance": tolerance,
            "sentinel": distance.sentinel,
        },
        debug=dbg,
    )
