import math

import numpy as np
from shapely.geometry import Point, Polygon

from wipepath.extrusion import ExtrusionPath, PathVertex
from wipepath.seam import (
    longer_than,
    loop_is_hole,
    sample_path_point_at_distance_from_end,
    sample_path_point_at_distance_from_start,
    wipe_hide_seam,
)


SQUARE = Polygon([(0, 0), (10, 0), (10, 10), (0, 10)])


def ell():
    return [ExtrusionPath.from_points([(0, 0), (10, 0), (10, 10)])]


def hook():
    """Line, quarter arc around the origin, line."""
    return [
        ExtrusionPath.from_points([(20, 0), (10, 0)]),
        ExtrusionPath([PathVertex.line((10, 0)), PathVertex.arc((0, 10), 10.0, True)]),
        ExtrusionPath.from_points([(0, 10), (0, 20)]),
    ]


def square_contour():
    # CCW square loop of perimeter 40, clipped by 1 mm at the seam
    return [ExtrusionPath.from_points([(1, 0), (10, 0), (10, 10), (0, 10), (0, 0)])]


def square_hole():
    # Same square printed clockwise
    return [ExtrusionPath.from_points([(0, 1), (0, 10), (10, 10), (10, 0), (0, 0)])]


def test_longer_than():
    assert longer_than(ell(), 19.9)
    assert not longer_than(ell(), 20.0)
    assert longer_than(hook(), 20 + 5 * math.pi - 0.01)


def test_sample_from_start_on_lines():
    assert np.allclose(sample_path_point_at_distance_from_start(ell(), 0.0), [0, 0])
    assert np.allclose(sample_path_point_at_distance_from_start(ell(), 5.0), [5, 0])
    assert np.allclose(sample_path_point_at_distance_from_start(ell(), 15.0), [10, 5])
    assert np.allclose(sample_path_point_at_distance_from_start(ell(), 20.0), [10, 10])


def test_sample_from_end_on_lines():
    assert np.allclose(sample_path_point_at_distance_from_end(ell(), 0.0), [10, 10])
    assert np.allclose(sample_path_point_at_distance_from_end(ell(), 5.0), [10, 5])
    assert np.allclose(sample_path_point_at_distance_from_end(ell(), 15.0), [5, 0])


def test_sample_beyond_length_is_not_found():
    assert sample_path_point_at_distance_from_start(ell(), 20.5) is None
    assert sample_path_point_at_distance_from_end(ell(), 20.5) is None
    assert sample_path_point_at_distance_from_start(ell(), -1.0) is None
    assert sample_path_point_at_distance_from_end(ell(), -1.0) is None


def test_sample_on_arc():
    # 2.5 mm into a radius 10 arc is a quarter radian
    p = sample_path_point_at_distance_from_start(hook(), 12.5)
    assert np.allclose(p, [10 * math.cos(0.25), 10 * math.sin(0.25)])


def test_sample_from_start_and_end_agree():
    paths = hook()
    total = 20 + 5 * math.pi
    for d in (0.0, 3.0, 10.0, 12.5, 20.0, 25.0, total):
        a = sample_path_point_at_distance_from_start(paths, d)
        b = sample_path_point_at_distance_from_end(paths, total - d)
        assert a is not None and b is not None
        assert np.allclose(a, b, atol=1e-6)


def test_hide_seam_on_square_contour():
    p = wipe_hide_seam(square_contour(), is_hole=False, wipe_length=2.0)
    # A third of the 90 degree corner, 2 mm away from the seam corner
    assert np.allclose(p, [2 * math.cos(math.pi / 6), 2 * math.sin(math.pi / 6)])
    assert SQUARE.contains(Point(p[0], p[1]))


def test_hide_seam_split_loop_gives_same_point():
    paths = [
        ExtrusionPath.from_points([(1, 0), (10, 0), (10, 10)]),
        ExtrusionPath.from_points([(10, 10), (0, 10), (0, 0)]),
    ]
    p = wipe_hide_seam(paths, is_hole=False, wipe_length=2.0)
    assert np.allclose(p, [math.sqrt(3), 1.0])


def test_hide_seam_on_hole_turns_right():
    p = wipe_hide_seam(square_hole(), is_hole=True, wipe_length=2.0)
    assert np.allclose(p, [1.0, math.sqrt(3)])


def test_hide_seam_rejects_short_loops():
    loop = [ExtrusionPath.from_points([(0, 0), (2.5, 0), (2.5, 2.5)])]
    # Exactly 2.5 wipe lengths is not enough
    assert wipe_hide_seam(loop, is_hole=False, wipe_length=2.0) is None
    assert wipe_hide_seam(square_contour(), is_hole=False, wipe_length=20.0) is None


def test_hide_seam_on_closed_loop_follows_outgoing_edge():
    closed = [ExtrusionPath.from_points([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)])]
    p = wipe_hide_seam(closed, is_hole=False, wipe_length=2.0)
    # 30 degrees off the outgoing edge along X
    assert np.allclose(p, [math.sqrt(3), 1.0])


def test_hide_seam_empty_input():
    assert wipe_hide_seam([], is_hole=False, wipe_length=2.0) is None


def test_loop_is_hole():
    assert not loop_is_hole(square_contour())
    assert loop_is_hole(square_hole())


def test_hide_seam_on_closed_hole():
    closed = [ExtrusionPath.from_points([(0, 0), (0, 10), (10, 10), (10, 0), (0, 0)])]
    p = wipe_hide_seam(closed, is_hole=True, wipe_length=2.0)
    assert np.allclose(p, [1.0, math.sqrt(3)])
