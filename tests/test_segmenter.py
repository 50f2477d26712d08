import numpy as np
import pytest

from voxelseg import segment
from voxelseg.core.debug import DebugStore
from voxelseg.core.errors import InvalidInput
from voxelseg.core.types import Connectivity


def test_two_blocks_end_to_end(two_blocks):
    res = segment(two_blocks, tolerance=0.5)
    expected = np.zeros((1, 5, 5), dtype=np.uint32)
    expected[0, 1:3, 0:2] = 1
    expected[0, 1:3, 3:5] = 2
    np.testing.assert_array_equal(res.labels, expected)
    assert res.labels.dtype == np.uint32
    assert [p.coord for p in res.peaks] == [(0, 1, 0), (0, 1, 3)]
    assert [p.value for p in res.peaks] == pytest.approx([1.0, 1.0])
    assert res.n_labels == 2
    assert not res.degenerate


def test_two_blocks_full_connectivity(two_blocks):
    res = segment(two_blocks, tolerance=0.5, connectivity=Connectivity.full)
    assert set(np.unique(res.labels)) == {0, 1, 2}


def test_touching_discs_split(touching_discs):
    res = segment(touching_discs, tolerance=1.0)
    labels = res.labels
    assert res.n_labels == 2
    assert labels[20, 20] != labels[20, 38]
    assert labels[20, 20] > 0 and labels[20, 38] > 0
    np.testing.assert_array_equal(labels > 0, touching_discs)


def test_watershed_line_inside_mask(touching_discs):
    res = segment(touching_discs, tolerance=1.0, mark_watershed_line=True)
    assert set(np.unique(res.labels)) == {0, 1, 2}
    assert np.count_nonzero(touching_discs & (res.labels == 0)) > 0


def test_all_false_mask_succeeds():
    res = segment(np.zeros((4, 4, 4), dtype=bool))
    assert res.peaks == []
    assert res.degenerate
    np.testing.assert_array_equal(res.labels, 0)


def test_all_true_mask_is_one_label():
    res = segment(np.ones((3, 4), dtype=bool))
    assert res.degenerate
    assert [p.coord for p in res.peaks] == [(0, 0)]
    np.testing.assert_array_equal(res.labels, 1)


def test_repeat_runs_are_identical(touching_discs):
    a = segment(touching_discs, spacing=(1.0, 0.8), tolerance=0.7)
    b = segment(touching_discs, spacing=(1.0, 0.8), tolerance=0.7, workers=4)
    np.testing.assert_array_equal(a.labels, b.labels)
    assert a.peaks == b.peaks


def test_inside_is_positive_only_flips_distance(two_blocks):
    pos = segment(two_blocks, tolerance=0.5, inside_is_positive=True)
    neg = segment(two_blocks, tolerance=0.5, inside_is_positive=False)
    np.testing.assert_array_equal(pos.labels, neg.labels)
    np.testing.assert_array_equal(neg.distance, -pos.distance)
    assert np.all(neg.distance[two_blocks] < 0)


def test_debug_intermediates(two_blocks):
    dbg = DebugStore()
    res = segment(two_blocks, tolerance=0.5, dbg=dbg)
    assert res.debug is dbg
    for key in ("distance", "markers", "elevation", "raw_labels"):
        assert key in dbg
    assert dbg.get("elevation").min() == 0.0
    assert np.count_nonzero(dbg.get("markers")) == 2


@pytest.mark.parametrize(
    "mask, kwargs",
    [
        (np.zeros((0, 4), dtype=bool), {}),
        (np.ones((3, 3), dtype=np.float64), {}),
        (np.ones((3, 3), dtype=bool), {"tolerance": -1.0}),
        (np.ones((3, 3), dtype=bool), {"workers": 0}),
        (np.ones((3, 3), dtype=bool), {"connectivity": "diagonal"}),
        (np.ones((3, 3), dtype=bool), {"spacing": (1.0, 1.0, 1.0)}),
    ],
)
def test_invalid_input_reported_from_validate_stage(mask, kwargs):
    with pytest.raises(InvalidInput) as exc:
        segment(mask, **kwargs)
    assert exc.value.stage == "validate"
    assert "validate" in str(exc.value)


def test_non_strict_plateaus_keep_one_label_per_grain(two_blocks):
    strict = segment(two_blocks, tolerance=0.5)
    loose = segment(two_blocks, tolerance=0.5, strict_on_plateau=False)
    assert len(loose.peaks) == 8
    assert loose.n_labels == 2
    np.testing.assert_array_equal(loose.labels, strict.labels)
