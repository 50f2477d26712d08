import logging
from pathlib import Path
from typing import Optional

from ..core.debug import DebugStore
from ..core.errors import VoxelSegError
from ..core.types import SegmentResult
from ..feat.centroids import centroids_from_labels
from ..filters.binary_watershed import BinaryWatershedLabeled
from ..io.volume import load_mask, save_labels
from ..settings import Settings
from ..store import ArrayStore

log = logging.getLogger("voxelseg")

MASK_ARRAY = "Mask"


class PipelineError(VoxelSegError):
    kind = "PipelineError"

    def __init__(self, message: str, *, stage: Optional[str] = None, code: int = 0):
        super().__init__(message, stage=stage)
        self.code = code


def ensure_output_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def process_volume(cfg: Settings, out_dir: Optional[Path] = None) -> SegmentResult:
    in_path = cfg.data.input_path
    out_dir = ensure_output_dir(Path(out_dir or cfg.data.output_dir or in_path.with_suffix("")))
    name = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in in_path.stem)

    mask = load_mask(in_path, cfg.data.array_key)
    spacing = cfg.grid.spacing
    if spacing is not None and len(spacing) != mask.ndim:
        raise PipelineError(f"spacing {spacing} does not match {mask.ndim}-D mask", stage="validate")
    store = ArrayStore.from_array(MASK_ARRAY, mask, spacing=spacing)

    filt = BinaryWatershedLabeled.from_config(
        store,
        MASK_ARRAY,
        cfg.watershed,
        new_array_name=cfg.output.new_array_name,
        save_as_new_array=cfg.output.save_as_new_array,
    )
    res = filt.execute(dbg=DebugStore())
    if res is None:
        raise PipelineError(filt.error_message, stage=filt.error_stage, code=filt.error_code)

    labels = store.get(filt.output_array_name)
    labels_path = save_labels(out_dir / f"{name}_labels.npy", labels)
    log.info("%s: %s | %d labels | saved -> %s", name, "x".join(map(str, labels.shape)), res.n_labels, labels_path)

    if cfg.output.write_centroids:
        df = centroids_from_labels(labels, store.spacing)
        csv_path = out_dir / f"{name}_centroids.csv"
        df.to_csv(csv_path, index=False)
        res.artifacts["centroids_csv"] = csv_path
        log.info("Saved centroids -> %s", csv_path)

    if cfg.output.save_debug_npz:
        npz = res.debug.save_npz(out_dir / f"{name}_debug.npz")
        res.artifacts["debug_npz"] = npz
        log.info("Saved debug intermediates -> %s", npz)

    res.artifacts["labels_path"] = labels_path
    return res
