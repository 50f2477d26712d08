import heapq
import itertools
import logging
from typing import Optional

import numpy as np

from ..core.errors import InvalidInput
from ..core.grid import GridLike, VoxelGrid, as_grid
from ..core.types import Connectivity
from .distance import validate_mask
from .maxima import LABEL_DTYPE

log = logging.getLogger("voxelseg")


def _check_inputs(elevation: VoxelGrid, markers: VoxelGrid, line_label: int) -> None:
    if elevation.dtype == np.bool_:
        raise InvalidInput("elevation must be a scalar field, got a boolean grid")
    if np.issubdtype(elevation.dtype, np.floating) and not np.all(np.isfinite(elevation.data)):
        raise InvalidInput("elevation contains NaN or infinite values")
    if markers.extents != elevation.extents:
        raise InvalidInput(f"marker extents {markers.extents} do not match elevation extents {elevation.extents}")
    if not np.issubdtype(markers.dtype, np.integer):
        raise InvalidInput(f"markers must hold integer labels, got {markers.dtype}")
    if markers.data.min() < 0 or int(markers.data.max()) > np.iinfo(LABEL_DTYPE).max:
        raise InvalidInput(f"marker labels must fit in {np.dtype(LABEL_DTYPE).name}")
    if not 0 <= int(line_label) <= np.iinfo(LABEL_DTYPE).max:
        raise InvalidInput(f"line_label {line_label} does not fit in {np.dtype(LABEL_DTYPE).name}")


# per-voxel flood state in the padded buffer
_FREE, _QUEUED, _LABELED, _LINE, _BLOCKED = 0, 1, 2, 3, 4


def marker_watershed(
    elevation: GridLike,
    markers: GridLike,
    *,
    mask: Optional[GridLike] = None,
    connectivity: Optional[Connectivity] = None,
    mark_watershed_line: bool = False,
    line_label: int = 0,
) -> VoxelGrid:
    """
    Flood ``elevation`` from the non-zero ``markers`` in order of increasing elevation.

    The queue holds ``(elevation, insertion order, index, label)``. A voxel is
    queued at most once, by the first flood that reaches it, and is labeled
    when popped; its free neighbors are then queued at their own elevation.
    Equal elevations are served first in, first out.

    With ``mark_watershed_line``, a voxel whose already flooded neighbors carry
    a different label gets ``line_label`` and does not propagate. Voxels outside
    ``mask`` or unreachable from any marker stay 0.
    """
    elev_grid = as_grid(elevation, connectivity=connectivity)
    marker_grid = as_grid(markers)
    _check_inputs(elev_grid, marker_grid, line_label)

    allowed = np.ones(elev_grid.extents, dtype=bool)
    if mask is not None:
        mask_grid = validate_mask(mask)
        if mask_grid.extents != elev_grid.extents:
            raise InvalidInput(f"mask extents {mask_grid.extents} do not match elevation extents {elev_grid.extents}")
        allowed = mask_grid.data

    seeds = marker_grid.data.astype(LABEL_DTYPE)
    state = elev_grid.pad_flat(np.where(allowed, _FREE, _BLOCKED).astype(np.uint8), fill=_BLOCKED)
    seed_flat = elev_grid.pad_flat(seeds)
    seed_flat[state == _BLOCKED] = 0  # markers outside the mask never flood
    state[seed_flat > 0] = _QUEUED
    elev_flat = elev_grid.pad_flat(elev_grid.data.astype(np.float64))
    labels_flat = np.zeros(elev_flat.size, dtype=LABEL_DTYPE)

    # plain-scalar views for the flood loop
    st = memoryview(state)
    ev = memoryview(elev_flat)
    out = memoryview(labels_flat)
    is_seed = memoryview(seed_flat)
    offsets = elev_grid.padded_offsets()
    line_label = int(line_label)

    counter = itertools.count()
    heap = [(ev[i], next(counter), i, int(seed_flat[i])) for i in np.flatnonzero(seed_flat).tolist()]
    heapq.heapify(heap)
    n_seeds = len(heap)
    pop, push = heapq.heappop, heapq.heappush

    while heap:
        _, _, i, lab = pop(heap)
        if mark_watershed_line and not is_seed[i]:
            contested = False
            for off in offsets:
                j = i + off
                if st[j] == _LABELED and out[j] != lab:
                    contested = True
                    break
            if contested:
                st[i] = _LINE
                out[i] = line_label
                continue
        st[i] = _LABELED
        out[i] = lab
        for off in offsets:
            j = i + off
            if st[j] == _FREE:
                st[j] = _QUEUED
                push(heap, (ev[j], next(counter), j, lab))

    flooded = int(np.count_nonzero((state == _LABELED) | (state == _LINE)))
    log.debug(
        "watershed: %d seeds, %d/%d voxels flooded, %d on watershed lines",
        n_seeds,
        flooded,
        elev_grid.size,
        int(np.count_nonzero(state == _LINE)),
    )
    return elev_grid.like(np.ascontiguousarray(elev_grid.unpad_flat(labels_flat)))
