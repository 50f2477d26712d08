from pathlib import Path
from typing import Optional

import numpy as np
from skimage import io as skio

from ..core.errors import InvalidInput


def _read_array(path: Path, key: Optional[str]) -> np.ndarray:
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix == ".npz":
        with np.load(path) as f:
            if key is not None:
                if key not in f.files:
                    raise InvalidInput(f"{path.name} has no array '{key}' (have: {', '.join(f.files)})")
                return f[key]
            if len(f.files) != 1:
                raise InvalidInput(f"{path.name} holds {len(f.files)} arrays; pick one with array_key")
            return f[f.files[0]]
    if suffix in (".tif", ".tiff"):
        return skio.imread(str(path))
    raise InvalidInput(f"unsupported mask file type: {path.suffix}")


def load_mask(path: Path, key: Optional[str] = None) -> np.ndarray:
    """Read a binary mask; values must be a subset of {0, 1} or of {0, 255}."""
    path = Path(path)
    arr = np.asarray(_read_array(path, key))
    if arr.dtype == np.bool_:
        return arr
    values = np.unique(arr)
    found = set(values.tolist())
    if not (found <= {0, 1} or found <= {0, 255}):
        raise InvalidInput(f"{path.name} is not a binary mask (values include {values[:8].tolist()})")
    return arr > 0


def save_labels(path: Path, labels: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".npz":
        np.savez_compressed(path, labels=labels)
    else:
        np.save(path, labels)
    return path
