"""
Dense 2-D / 3-D voxel grid with spacing metadata.

Axes are listed slowest first (``z, y, x``) and the buffer is C-ordered, so the
last axis varies fastest and linear indices follow ``np.ravel_multi_index``.
"""
from functools import lru_cache
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from scipy import ndimage as ndi

from .errors import InvalidInput, OutOfBounds
from .types import Connectivity, Coord, Spacing


@lru_cache(maxsize=None)
def neighbor_offsets(ndim: int, connectivity: Connectivity = Connectivity.face) -> Tuple[Coord, ...]:
    """Unit offsets of the neighborhood, in lexicographic order, center excluded."""
    rank = 1 if Connectivity(connectivity) is Connectivity.face else ndim
    structure = ndi.generate_binary_structure(ndim, rank)
    center = np.ones(ndim, dtype=int)
    return tuple(tuple(int(v) for v in (p - center)) for p in np.argwhere(structure) if np.any(p != center))


def structure_element(ndim: int, connectivity: Connectivity = Connectivity.face) -> np.ndarray:
    rank = 1 if Connectivity(connectivity) is Connectivity.face else ndim
    return ndi.generate_binary_structure(ndim, rank)


def _check_spacing(spacing: Optional[Sequence[float]], ndim: int) -> Spacing:
    if spacing is None:
        return (1.0,) * ndim
    sp = tuple(float(s) for s in spacing)
    if len(sp) != ndim:
        raise InvalidInput(f"spacing has {len(sp)} entries, grid has {ndim} axes")
    if not all(np.isfinite(s) and s > 0 for s in sp):
        raise InvalidInput(f"spacing must be finite and positive, got {sp}")
    return sp


class VoxelGrid:
    def __init__(
        self,
        data: npt.ArrayLike,
        spacing: Optional[Sequence[float]] = None,
        origin: Optional[Sequence[float]] = None,
        connectivity: Connectivity = Connectivity.face,
    ):
        arr = np.ascontiguousarray(data)
        if arr.ndim not in (2, 3):
            raise InvalidInput(f"grid must be 2-D or 3-D, got {arr.ndim}-D")
        if arr.size == 0:
            raise InvalidInput(f"grid has zero extent: {arr.shape}")
        if not (arr.dtype == np.bool_ or np.issubdtype(arr.dtype, np.number)):
            raise InvalidInput(f"unsupported element type {arr.dtype}")
        self._data = arr
        self.spacing: Spacing = _check_spacing(spacing, arr.ndim)
        self.origin: Tuple[float, ...] = tuple(float(o) for o in origin) if origin is not None else (0.0,) * arr.ndim
        if len(self.origin) != arr.ndim:
            raise InvalidInput(f"origin has {len(self.origin)} entries, grid has {arr.ndim} axes")
        self.connectivity = Connectivity(connectivity)
        self._offsets = neighbor_offsets(arr.ndim, self.connectivity)
        self._strides = tuple(int(s) for s in np.cumprod((1,) + arr.shape[:0:-1])[::-1])

    @classmethod
    def zeros(cls, extents: Sequence[int], dtype=np.float64, spacing=None, origin=None, connectivity=Connectivity.face):
        extents = tuple(int(n) for n in extents)
        if any(n <= 0 for n in extents):
            raise InvalidInput(f"grid has zero extent: {extents}")
        return cls(np.zeros(extents, dtype=dtype), spacing=spacing, origin=origin, connectivity=connectivity)

    def like(self, data: npt.ArrayLike) -> "VoxelGrid":
        """New grid with this geometry and ``data`` as buffer."""
        arr = np.asarray(data)
        if arr.shape != self.extents:
            raise InvalidInput(f"buffer shape {arr.shape} does not match grid extents {self.extents}")
        return VoxelGrid(arr, spacing=self.spacing, origin=self.origin, connectivity=self.connectivity)

    def copy(self) -> "VoxelGrid":
        return self.like(self._data.copy())

    # --- geometry ---
    @property
    def data(self) -> np.ndarray:
        view = self._data.view()
        view.flags.writeable = False
        return view

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def extents(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def size(self) -> int:
        return self._data.size

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def physical_diagonal(self) -> float:
        return float(np.sqrt(sum((n * s) ** 2 for n, s in zip(self.extents, self.spacing))))

    def __array__(self, dtype=None, copy=None):
        return np.asarray(self.data, dtype=dtype)

    def __repr__(self) -> str:
        return f"VoxelGrid(extents={self.extents}, dtype={self.dtype}, spacing={self.spacing})"

    # --- addressing ---
    def contains(self, coord: Sequence[int]) -> bool:
        return len(coord) == self.ndim and all(0 <= c < n for c, n in zip(coord, self.extents))

    def _check_coord(self, coord: Sequence[int]) -> Coord:
        coord = tuple(int(c) for c in coord)
        if not self.contains(coord):
            raise OutOfBounds(f"coordinate {coord} outside grid extents {self.extents}")
        return coord

    def _check_index(self, index: int) -> int:
        index = int(index)
        if not 0 <= index < self.size:
            raise OutOfBounds(f"linear index {index} outside [0, {self.size})")
        return index

    def index_of(self, coord: Sequence[int]) -> int:
        coord = self._check_coord(coord)
        return sum(c * s for c, s in zip(coord, self._strides))

    def coord_of(self, index: int) -> Coord:
        rem = self._check_index(index)
        out = []
        for s in self._strides:
            q, rem = divmod(rem, s)
            out.append(q)
        return tuple(out)

    def get(self, coord: Sequence[int]):
        return self._data[self._check_coord(coord)]

    def set(self, coord: Sequence[int], value) -> None:
        self._data[self._check_coord(coord)] = value

    def get_index(self, index: int):
        return self._data.flat[self._check_index(index)]

    def set_index(self, index: int, value) -> None:
        self._data.flat[self._check_index(index)] = value

    # --- neighborhood ---
    def neighbors(self, coord: Sequence[int]) -> Iterator[Coord]:
        """In-bounds coordinates at unit offset from ``coord`` under the grid's connectivity."""
        coord = self._check_coord(coord)
        shape = self.extents
        for off in self._offsets:
            nb = tuple(c + o for c, o in zip(coord, off))
            if all(0 <= c < n for c, n in zip(nb, shape)):
                yield nb

    def neighbor_indices(self, index: int) -> Iterator[int]:
        coord = self.coord_of(index)
        shape = self.extents
        strides = self._strides
        for off in self._offsets:
            nb_index = index
            for c, o, n, s in zip(coord, off, shape, strides):
                if not 0 <= c + o < n:
                    break
                nb_index += o * s
            else:
                yield nb_index

    # --- padded flat buffers for flood loops ---
    @property
    def padded_extents(self) -> Tuple[int, ...]:
        return tuple(n + 2 for n in self.extents)

    def pad_flat(self, data: npt.ArrayLike, fill=0) -> np.ndarray:
        """``data`` shaped like the grid, surrounded by one voxel of ``fill`` and raveled."""
        arr = np.asarray(data).reshape(self.extents)
        return np.pad(arr, 1, mode="constant", constant_values=fill).ravel()

    def unpad_flat(self, flat: np.ndarray) -> np.ndarray:
        return flat.reshape(self.padded_extents)[(slice(1, -1),) * self.ndim]

    def padded_offsets(self) -> List[int]:
        """Linear offsets of the neighborhood in the padded buffer, lexicographic order."""
        strides = np.cumprod((1,) + self.padded_extents[:0:-1])[::-1]
        return [int(np.dot(off, strides)) for off in self._offsets]

    def to_padded_index(self, index: npt.ArrayLike) -> np.ndarray:
        coords = np.unravel_index(np.asarray(index, dtype=np.intp), self.extents)
        return np.ravel_multi_index(tuple(c + 1 for c in coords), self.padded_extents)

    def from_padded_index(self, index: npt.ArrayLike) -> np.ndarray:
        coords = np.unravel_index(np.asarray(index, dtype=np.intp), self.padded_extents)
        return np.ravel_multi_index(tuple(c - 1 for c in coords), self.extents)


GridLike = Union[VoxelGrid, npt.ArrayLike]


def as_grid(
    data: GridLike,
    spacing: Optional[Sequence[float]] = None,
    connectivity: Optional[Connectivity] = None,
) -> VoxelGrid:
    """Wrap an array (or re-wrap a grid) without copying when possible."""
    if isinstance(data, VoxelGrid):
        if spacing is None and connectivity is None:
            return data
        return VoxelGrid(
            data._data,
            spacing=spacing if spacing is not None else data.spacing,
            origin=data.origin,
            connectivity=connectivity if connectivity is not None else data.connectivity,
        )
    return VoxelGrid(data, spacing=spacing, connectivity=connectivity or Connectivity.face)
