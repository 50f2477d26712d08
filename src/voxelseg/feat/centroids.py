from typing import Sequence

import numpy as np
import pandas as pd
from skimage.measure import regionprops

from ..core.errors import InvalidInput

AXES = {2: ("y", "x"), 3: ("z", "y", "x")}


def centroids_from_labels(labels: np.ndarray, spacing: Sequence[float]) -> pd.DataFrame:
    axes = AXES.get(labels.ndim)
    if axes is None:
        raise InvalidInput(f"labels must be 2-D or 3-D, got {labels.ndim}-D")
    if len(spacing) != labels.ndim:
        raise InvalidInput(f"spacing has {len(spacing)} entries, labels have {labels.ndim} axes")

    columns = ["label"] + [f"{a}_vox" for a in axes] + [f"{a}_um" for a in axes] + ["volume_vox"]
    rows = []
    for p in regionprops(labels.astype(np.int64, copy=False)):
        row = {"label": int(p.label)}
        for a, c in zip(axes, p.centroid):
            row[f"{a}_vox"] = float(c)
        for a, c, s in zip(axes, p.centroid, spacing):
            row[f"{a}_um"] = float(c * s)
        row["volume_vox"] = int(p.area)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)
