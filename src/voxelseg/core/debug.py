from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np


class DebugStore:
    """Keeps pipeline intermediates; arrays above ``large_threshold_mb`` are spilled to ``persist_dir``."""

    def __init__(self, persist_dir: Optional[Path] = None, large_threshold_mb: int = 64):
        self._persist_dir = Path(persist_dir) if persist_dir is not None else None
        self._large_threshold_mb = large_threshold_mb
        self._index: Dict[str, Dict[str, Any]] = {}
        self._scalars: Dict[str, Any] = {}
        if self._persist_dir is not None:
            self._persist_dir.mkdir(parents=True, exist_ok=True)

    def add(self, name: str, value: Any) -> None:
        if isinstance(value, np.ndarray):
            nbytes = int(value.nbytes)
            if self._persist_dir is not None and nbytes >= self._large_threshold_mb * 1024**2:
                path = self._save_array(name, value)
                self._index[name] = {"kind": "ndarray", "path": str(path), "shape": value.shape, "dtype": str(value.dtype)}
            else:
                self._index[name] = {"kind": "ndarray_inline", "array": value}
        else:
            self._scalars[name] = value

    def get(self, name: str):
        meta = self._index.get(name)
        if meta is None:
            return self._scalars.get(name)
        if meta["kind"] == "ndarray_inline":
            return meta["array"]
        with np.load(meta["path"]) as f:
            return f["arr_0"]

    def __contains__(self, name: str) -> bool:
        return name in self._index or name in self._scalars

    def items(self) -> Iterator[Tuple[str, Any]]:
        for name in list(self._index) + list(self._scalars):
            yield name, self.get(name)

    def meta(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self._scalars)
        for name, m in self._index.items():
            if m["kind"] == "ndarray":
                out[name] = {k: v for k, v in m.items() if k != "kind"}
            else:
                arr = m["array"]
                out[name] = {"shape": arr.shape, "dtype": str(arr.dtype)}
        return out

    def save_npz(self, path: Path) -> Path:
        # scalars are stored as 0-d arrays
        payload = {k: (v if isinstance(v, np.ndarray) else np.array(v)) for k, v in self.items()}
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(path, **payload)
        return path

    def _save_array(self, name: str, arr: np.ndarray) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in name)
        path = self._persist_dir / f"{safe}.npz"
        np.savez_compressed(path, arr)
        return path
