import numpy as np
import pytest


@pytest.fixture
def two_blocks():
    # 5x5x1: two 2x2 blocks split by one background column
    mask = np.zeros((1, 5, 5), dtype=bool)
    mask[0, 1:3, 0:2] = True
    mask[0, 1:3, 3:5] = True
    return mask


@pytest.fixture
def touching_discs():
    yy, xx = np.mgrid[:40, :60]
    a = (yy - 20) ** 2 + (xx - 20) ** 2 <= 12**2
    b = (yy - 20) ** 2 + (xx - 38) ** 2 <= 12**2
    return a | b


@pytest.fixture
def random_mask():
    rng = np.random.default_rng(7)
    mask = rng.random((6, 7, 8)) > 0.45
    assert mask.any() and not mask.all()
    return mask
