import numpy as np
import pytest

from voxelseg.core.errors import InvalidInput
from voxelseg.core.grid import VoxelGrid
from voxelseg.seg.watershed import marker_watershed

VALLEY = np.array([[0.0, 1.0, 2.0, 3.0, 2.0, 1.0, 0.0]])


def _markers(shape, **labels):
    m = np.zeros(shape, dtype=np.uint32)
    for key, label in labels.items():
        m.flat[int(key[1:])] = label
    return m


def test_single_marker_floods_everything():
    rng = np.random.default_rng(0)
    elevation = rng.random((4, 5, 3))
    markers = np.zeros(elevation.shape, dtype=np.uint32)
    markers[2, 2, 1] = 7
    out = marker_watershed(elevation, markers)
    assert isinstance(out, VoxelGrid)
    assert out.dtype == np.uint32
    np.testing.assert_array_equal(out.data, 7)


def test_no_markers_gives_zeros():
    out = marker_watershed(np.zeros((3, 3)), np.zeros((3, 3), dtype=np.uint32))
    np.testing.assert_array_equal(out.data, 0)


def test_two_markers_split_at_ridge():
    out = marker_watershed(VALLEY, _markers(VALLEY.shape, i0=1, i6=2))
    # the ridge voxel goes to the flood queued first
    np.testing.assert_array_equal(out.data, [[1, 1, 1, 1, 2, 2, 2]])


def test_watershed_line_marks_contested_voxel():
    out = marker_watershed(VALLEY, _markers(VALLEY.shape, i0=1, i6=2), mark_watershed_line=True)
    np.testing.assert_array_equal(out.data, [[1, 1, 1, 0, 2, 2, 2]])


def test_custom_line_label():
    out = marker_watershed(VALLEY, _markers(VALLEY.shape, i0=1, i6=2), mark_watershed_line=True, line_label=99)
    np.testing.assert_array_equal(out.data, [[1, 1, 1, 99, 2, 2, 2]])


def test_equal_elevations_are_fifo():
    flat = np.zeros((1, 5))
    out = marker_watershed(flat, _markers(flat.shape, i0=1, i4=2))
    np.testing.assert_array_equal(out.data, [[1, 1, 1, 2, 2]])


def test_lowest_path_wins():
    # label 2 is farther from the bottom-right corner but reaches it through a low channel
    elevation = np.array(
        [
            [0.0, 0.0, 0.0, 0.0],
            [9.0, 9.0, 9.0, 0.0],
            [5.0, 5.0, 5.0, 0.0],
        ]
    )
    markers = np.zeros(elevation.shape, dtype=np.uint32)
    markers[0, 0] = 2
    markers[2, 0] = 1
    out = marker_watershed(elevation, markers).data
    assert out[2, 3] == 2
    assert out[2, 1] == 1


def test_mask_leaves_unreachable_voxels_unlabeled():
    elevation = np.zeros((3, 5))
    mask = np.ones((3, 5), dtype=bool)
    mask[:, 2] = False
    markers = np.zeros((3, 5), dtype=np.uint32)
    markers[1, 0] = 4
    out = marker_watershed(elevation, markers, mask=mask).data
    assert np.all(out[:, :2] == 4)
    assert np.all(out[:, 2:] == 0)


def test_seed_outside_mask_is_ignored():
    markers = np.zeros((2, 2), dtype=np.uint32)
    markers[0, 0] = 1
    mask = np.array([[0, 1], [1, 1]], dtype=bool)
    out = marker_watershed(np.zeros((2, 2)), markers, mask=mask)
    np.testing.assert_array_equal(out.data, 0)


def test_marker_voxels_keep_their_label():
    elevation = np.array([[0.0, 5.0, 0.0]])
    markers = np.array([[1, 2, 0]], dtype=np.uint32)
    np.testing.assert_array_equal(marker_watershed(elevation, markers).data, [[1, 2, 2]])


def test_invalid_inputs():
    with pytest.raises(InvalidInput):
        marker_watershed(np.zeros((2, 2)), np.zeros((2, 3), dtype=np.uint32))
    with pytest.raises(InvalidInput):
        marker_watershed(np.zeros((2, 2)), np.zeros((2, 2)))
    with pytest.raises(InvalidInput):
        marker_watershed(np.zeros((2, 2)), np.array([[0, -1], [0, 0]]))
    with pytest.raises(InvalidInput):
        marker_watershed(np.array([[0.0, np.nan]]), np.zeros((1, 2), dtype=np.uint32))
    with pytest.raises(InvalidInput):
        marker_watershed(np.zeros((2, 2)), np.zeros((2, 2), dtype=np.uint32), mask=np.ones((3, 3), dtype=bool))


def test_matches_skimage_on_untied_elevation():
    segmentation = pytest.importorskip("skimage.segmentation")
    rng = np.random.default_rng(3)
    elevation = rng.random((8, 20, 20))
    markers = np.zeros(elevation.shape, dtype=np.uint32)
    for label, idx in enumerate(rng.choice(elevation.size, size=6, replace=False), start=1):
        markers.flat[idx] = label
    ours = marker_watershed(elevation, markers).data
    ref = segmentation.watershed(elevation, markers)
    np.testing.assert_array_equal(ours, ref)


def test_markers_on_border_voxels():
    elevation = np.array([[0.0, 1.0, 2.0], [1.0, 2.0, 3.0]])
    markers = np.array([[0, 0, 0], [0, 0, 5]], dtype=np.uint32)
    np.testing.assert_array_equal(marker_watershed(elevation, markers).data, 5)
