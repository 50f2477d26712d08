import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..core.errors import InvalidInput
from ..core.grid import GridLike, VoxelGrid, as_grid

log = logging.getLogger("voxelseg")

DIST_DTYPE = np.float64


@dataclass
class DistanceField:
    grid: VoxelGrid
    inside_is_positive: bool
    degenerate: bool = False  # one class absent; affected voxels hold +/- sentinel
    sentinel: float = math.inf

    @property
    def data(self) -> np.ndarray:
        return self.grid.data

    @property
    def extents(self):
        return self.grid.extents

    @property
    def spacing(self):
        return self.grid.spacing


def validate_mask(mask: GridLike, spacing: Optional[Sequence[float]] = None) -> VoxelGrid:
    """Wrap ``mask`` as a boolean grid, rejecting non-binary or non-integer data."""
    grid = as_grid(mask, spacing=spacing)
    arr = grid.data
    if arr.dtype != np.bool_:
        if not np.issubdtype(arr.dtype, np.integer):
            raise InvalidInput(f"mask must be boolean or integer, got {arr.dtype}")
        if np.any((arr != 0) & (arr != 1)):
            raise InvalidInput("mask is not binary: values other than 0 and 1 present")
        grid = grid.like(arr.astype(bool))
    return grid


def _lower_envelope(f: np.ndarray, step: float) -> np.ndarray:
    """Squared distance transform of every row of ``f`` (inf where a row has no feature)."""
    n_lines, n = f.shape
    x = np.arange(n) * step
    h = f + x * x
    # per row: stack of sites whose parabola is minimal somewhere, with the left edge of that interval
    sites = np.zeros((n_lines, n), dtype=np.intp)
    starts = np.full((n_lines, n + 1), np.inf)
    top = np.full(n_lines, -1, dtype=np.intp)

    for q in range(n):
        rows = np.flatnonzero(np.isfinite(f[:, q]))
        if rows.size == 0:
            continue
        s = np.full(rows.size, -np.inf)
        live = np.arange(rows.size)
        while live.size:
            r = rows[live]
            k = top[r]
            nonempty = k >= 0
            live, r, k = live[nonempty], r[nonempty], k[nonempty]
            p = sites[r, k]
            s_live = (h[r, q] - h[r, p]) / (2.0 * (x[q] - x[p]))
            s[live] = s_live
            hidden = s_live <= starts[r, k]
            s[live[hidden]] = -np.inf
            top[r[hidden]] -= 1
            live = live[hidden]
        top[rows] += 1
        sites[rows, top[rows]] = q
        starts[rows, top[rows]] = s

    out = np.full((n_lines, n), np.inf)
    rows = np.flatnonzero(top >= 0)
    if rows.size == 0:
        return out
    last = top[rows]
    k = np.zeros(rows.size, dtype=np.intp)
    for q in range(n):
        live = np.arange(rows.size)
        while live.size:
            kk = k[live]
            ahead = (kk < last[live]) & (starts[rows[live], kk + 1] < x[q])
            live = live[ahead]
            k[live] += 1
        p = sites[rows, k]
        d = (q - p) * step
        out[rows, q] = f[rows, p] + d * d
    return out


def _transform_lines(src: np.ndarray, dst: np.ndarray, lo: int, hi: int, step: float) -> None:
    dst[lo:hi] = _lower_envelope(src[lo:hi], step)


def _transform_axis(f: np.ndarray, axis: int, step: float, workers: int) -> np.ndarray:
    n = f.shape[axis]
    if n == 1:
        return f
    moved = np.moveaxis(f, axis, -1)
    shape = moved.shape
    src = np.ascontiguousarray(moved).reshape(-1, n)
    dst = np.empty_like(src)
    n_lines = src.shape[0]

    if workers <= 1 or n_lines < 2:
        _transform_lines(src, dst, 0, n_lines, step)
    else:
        # contiguous chunks of scan lines; each worker writes only its own rows
        bounds = np.linspace(0, n_lines, min(workers, n_lines) + 1).astype(int)
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futs = [ex.submit(_transform_lines, src, dst, int(lo), int(hi), step) for lo, hi in zip(bounds[:-1], bounds[1:])]
            for fut in futs:
                fut.result()

    return np.moveaxis(dst.reshape(shape), -1, axis)


def squared_distance_to(features: np.ndarray, spacing: Sequence[float], workers: int = 1) -> np.ndarray:
    """Squared Euclidean distance from every voxel to the nearest ``True`` voxel (inf if there is none)."""
    f = np.where(features, 0.0, math.inf).astype(DIST_DTYPE)
    for axis, step in enumerate(spacing):
        f = _transform_axis(f, axis, float(step), workers)
    return np.ascontiguousarray(f)


def distance_transform(
    mask: GridLike,
    spacing: Optional[Sequence[float]] = None,
    *,
    inside_is_positive: bool = True,
    workers: int = 1,
) -> DistanceField:
    """
    Signed exact Euclidean distance map of a binary mask.

    Every voxel gets the distance from its center to the nearest voxel center of
    the opposite class. Mask voxels are positive and background voxels negative
    when ``inside_is_positive``; the signs swap otherwise. If one class is
    absent, the other class gets the grid's physical diagonal plus one.
    """
    grid = validate_mask(mask, spacing)
    workers = int(workers)
    if workers < 1:
        raise InvalidInput(f"workers must be >= 1, got {workers}")

    bw = grid.data
    n_fg = int(np.count_nonzero(bw))
    n_bg = bw.size - n_fg
    sentinel = grid.physical_diagonal() + 1.0
    degenerate = n_fg == 0 or n_bg == 0

    dist = np.zeros(bw.shape, dtype=DIST_DTYPE)
    if n_fg:
        d_in = np.sqrt(squared_distance_to(~bw, grid.spacing, workers)) if n_bg else np.full(bw.shape, sentinel)
        dist[bw] = d_in[bw]
    if n_bg:
        d_out = np.sqrt(squared_distance_to(bw, grid.spacing, workers)) if n_fg else np.full(bw.shape, sentinel)
        dist[~bw] = -d_out[~bw]
    if not inside_is_positive:
        dist = -dist

    if degenerate:
        log.debug("distance transform: single-class mask (%d fg / %d bg), sentinel %.3f", n_fg, n_bg, sentinel)
    log.debug("distance transform: extents %s, spacing %s, max %.3f", bw.shape, grid.spacing, float(dist.max()))

    return DistanceField(
        grid=VoxelGrid(dist, spacing=grid.spacing, origin=grid.origin, connectivity=grid.connectivity),
        inside_is_positive=inside_is_positive,
        degenerate=degenerate,
        sentinel=sentinel,
    )
