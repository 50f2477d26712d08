"""
Named arrays sharing one grid geometry.

Stands in for the host application's attribute-array container: the filter
reads its input mask from here and writes the label array back.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .core.errors import InvalidInput

log = logging.getLogger("voxelseg")


class ArrayStore:
    def __init__(
        self,
        extents: Sequence[int],
        spacing: Optional[Sequence[float]] = None,
        origin: Optional[Sequence[float]] = None,
    ):
        self.extents: Tuple[int, ...] = tuple(int(n) for n in extents)
        self.spacing: Tuple[float, ...] = tuple(float(s) for s in spacing) if spacing is not None else (1.0,) * len(self.extents)
        self.origin: Tuple[float, ...] = tuple(float(o) for o in origin) if origin is not None else (0.0,) * len(self.extents)
        self._arrays: Dict[str, np.ndarray] = {}

    @classmethod
    def from_array(cls, name: str, arr: np.ndarray, spacing=None, origin=None) -> "ArrayStore":
        store = cls(arr.shape, spacing=spacing, origin=origin)
        store.add(name, arr)
        return store

    def __contains__(self, name: str) -> bool:
        return name in self._arrays

    def names(self) -> List[str]:
        return list(self._arrays)

    def get(self, name: str) -> np.ndarray:
        try:
            return self._arrays[name]
        except KeyError:
            raise KeyError(f"no array named '{name}' in store (have: {', '.join(self._arrays) or 'none'})") from None

    def _check_shape(self, name: str, arr: np.ndarray) -> None:
        if arr.shape != self.extents:
            raise InvalidInput(f"array '{name}' has shape {arr.shape}, store extents are {self.extents}")

    def add(self, name: str, arr: np.ndarray) -> None:
        if name in self._arrays:
            raise KeyError(f"array '{name}' already exists")
        arr = np.asarray(arr)
        self._check_shape(name, arr)
        self._arrays[name] = arr
        log.debug("store: added '%s' %s %s", name, arr.shape, arr.dtype)

    def replace(self, name: str, arr: np.ndarray) -> None:
        """Overwrite ``name``'s storage in place; the element type becomes ``arr``'s."""
        old = self.get(name)
        arr = np.asarray(arr)
        self._check_shape(name, arr)
        if old.dtype == arr.dtype and old.flags.writeable:
            old[...] = arr
        else:
            self._arrays[name] = arr.copy()
        log.debug("store: replaced '%s' (%s -> %s)", name, old.dtype, arr.dtype)

    def remove(self, name: str) -> np.ndarray:
        return self._arrays.pop(name)
