import logging
import math
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy import ndimage as ndi

from ..core.errors import InvalidInput
from ..core.grid import GridLike, VoxelGrid, as_grid, structure_element
from ..core.types import Connectivity, Peak, PeakOrder
from .distance import DistanceField, validate_mask

log = logging.getLogger("voxelseg")

LABEL_DTYPE = np.uint32


def _field_grid(field: Union[DistanceField, GridLike], connectivity: Optional[Connectivity]) -> VoxelGrid:
    if isinstance(field, DistanceField):
        field = field.grid
    grid = as_grid(field, connectivity=connectivity)
    if grid.dtype == np.bool_:
        raise InvalidInput("scalar field expected, got a boolean grid")
    if np.issubdtype(grid.dtype, np.floating) and not np.all(np.isfinite(grid.data)):
        raise InvalidInput("scalar field contains NaN or infinite values")
    return grid


def _plateau(st: memoryview, vals: memoryview, offsets: List[int], start: int) -> List[int]:
    level = vals[start]
    seen = {start}
    stack = [start]
    while stack:
        i = stack.pop()
        for off in offsets:
            j = i + off
            if j not in seen and st[j] and vals[j] == level:
                seen.add(j)
                stack.append(j)
    return sorted(seen)


def find_local_maxima(
    field: Union[DistanceField, GridLike],
    tolerance: float = 1.0,
    *,
    strict_on_plateau: bool = True,
    mask: Optional[GridLike] = None,
    connectivity: Optional[Connectivity] = None,
    order: PeakOrder = PeakOrder.value,
) -> List[Peak]:
    """
    Local maxima of ``field`` that stand out from any higher terrain by more than ``tolerance``.

    Candidates (voxels >= all neighbors) are visited from the highest value down,
    ties by ascending linear index. Each unclaimed candidate floods the voxels
    reachable without dropping below ``value - tolerance``. If that flood meets a
    higher voxel or the flood of an earlier candidate, the candidate is merged
    into it; otherwise it is kept. Either way the flooded voxels are claimed.

    Only voxels inside ``mask`` take part; without a mask, the voxels with a
    positive value do. With ``strict_on_plateau`` one voxel (the lowest linear
    index) represents a plateau, otherwise every voxel of a kept plateau is
    returned.
    """
    tolerance = float(tolerance)
    if not math.isfinite(tolerance) or tolerance < 0:
        raise InvalidInput(f"tolerance must be a finite value >= 0, got {tolerance}")
    grid = _field_grid(field, connectivity)
    order = PeakOrder(order)

    values = grid.data.astype(np.float64)
    if mask is not None:
        mask_grid = validate_mask(mask)
        if mask_grid.extents != grid.extents:
            raise InvalidInput(f"mask extents {mask_grid.extents} do not match field extents {grid.extents}")
        region = mask_grid.data
    else:
        region = values > 0
    if not region.any():
        log.debug("local maxima: empty region, no peaks")
        return []

    masked = np.where(region, values, -np.inf)
    neighborhood_max = ndi.maximum_filter(
        masked, footprint=structure_element(grid.ndim, grid.connectivity), mode="constant", cval=-np.inf
    )
    candidates = np.flatnonzero(region & (masked >= neighborhood_max))
    candidates = candidates[np.lexsort((candidates, -values.ravel()[candidates]))]

    # padded buffers: the border is outside the region, so neighbor offsets never leave the grid
    in_region = grid.pad_flat(region.astype(np.uint8))
    vals_flat = grid.pad_flat(values)
    claimed = np.zeros(vals_flat.size, dtype=np.uint8)
    stamp = np.full(vals_flat.size, -1, dtype=np.int64)
    st, vals, cl, sp = memoryview(in_region), memoryview(vals_flat), memoryview(claimed), memoryview(stamp)
    offsets = grid.padded_offsets()

    kept: List[int] = []
    for flood_id, c in enumerate(grid.to_padded_index(candidates).tolist()):
        if cl[c]:
            continue
        top = vals[c]
        floor = top - tolerance
        sp[c] = flood_id
        flooded = [c]
        stack = [c]
        distinct = True
        while stack and distinct:
            i = stack.pop()
            for off in offsets:
                j = i + off
                if not st[j] or sp[j] == flood_id or vals[j] < floor:
                    continue
                if cl[j] or vals[j] > top:
                    distinct = False
                    break
                sp[j] = flood_id
                flooded.append(j)
                stack.append(j)
        claimed[flooded] = 1
        if not distinct:
            continue
        if strict_on_plateau:
            kept.append(c)
        else:
            kept.extend(_plateau(st, vals, offsets, c))

    if order is PeakOrder.index:
        kept.sort()
    flat = values.ravel()
    indices = grid.from_padded_index(np.asarray(kept, dtype=np.intp)).tolist()
    peaks = [Peak(coord=grid.coord_of(i), value=float(flat[i])) for i in indices]
    log.debug("local maxima: %d candidates -> %d peaks (tolerance %.3g)", len(candidates), len(peaks), tolerance)
    return peaks


def markers_from_peaks(
    peaks: Sequence[Peak],
    extents: Sequence[int],
    spacing: Optional[Sequence[float]] = None,
    *,
    merge_plateaus: bool = False,
    connectivity: Connectivity = Connectivity.face,
) -> VoxelGrid:
    """
    Zero grid with label ``i + 1`` written at ``peaks[i]``.

    With ``merge_plateaus``, connected peak voxels (the voxels of one plateau)
    share a label; labels are numbered in order of each group's first peak.
    """
    if len(peaks) >= np.iinfo(LABEL_DTYPE).max:
        raise InvalidInput(f"too many peaks for {np.dtype(LABEL_DTYPE).name} labels: {len(peaks)}")
    markers = VoxelGrid.zeros(extents, dtype=LABEL_DTYPE, spacing=spacing, connectivity=connectivity)
    for label, peak in enumerate(peaks, start=1):
        markers.set(peak.coord, label)
    if not merge_plateaus or not peaks:
        return markers

    groups, _ = ndi.label(markers.data > 0, structure=structure_element(markers.ndim, markers.connectivity))
    relabel = {}
    merged = np.zeros(markers.extents, dtype=LABEL_DTYPE)
    for peak in peaks:
        group = int(groups[peak.coord])
        merged[peak.coord] = relabel.setdefault(group, len(relabel) + 1)
    return markers.like(merged)
