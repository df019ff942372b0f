"""Seam hiding helpers.

After a loop is printed the nozzle sits at the seam. Instead of leaving
straight along the loop, it moves a short distance into the loop, a third
of the way between the outgoing and the incoming edge directions.
"""

import logging
import math
from typing import Optional

import numpy as np
from shapely.geometry import LinearRing

from .extrusion import ExtrusionPath, segment_length
from .geometry import (
    SCALED_EPSILON,
    GeometryError,
    angle_ccw,
    arc_angle,
    arc_center,
    coincides,
    normalized,
    rotate,
    rotate_about,
)


logger = logging.getLogger(__name__)

# Loops not longer than this many wipe lengths get no hiding move.
MIN_LOOP_WIPE_RATIO = 2.5


def longer_than(paths: list[ExtrusionPath], length: float) -> bool:
    """Check if the paths together are longer than length."""
    for path in paths:
        for prev, vertex in zip(path.vertices, path.vertices[1:]):
            length -= segment_length(prev, vertex)
            if length < 0:
                return True
    return length < 0


def sample_path_point_at_distance_from_start(
    paths: list[ExtrusionPath],
    distance: float,
) -> Optional[np.ndarray]:
    """Point at the given arc-length distance from the start of the paths.

    Returns None when distance is negative or beyond the total length.
    """
    if distance < 0:
        return None

    last_point = None
    for path in paths:
        for prev, vertex in zip(path.vertices, path.vertices[1:]):
            if vertex.linear:
                v = vertex.point - prev.point
                length = float(np.hypot(v[0], v[1]))
                if length > distance:
                    return prev.point + v * (distance / length)
            else:
                angle = arc_angle(prev.point, vertex.point, vertex.radius)
                length = abs(vertex.radius) * angle
                if length > distance:
                    center = arc_center(prev.point, vertex.point, vertex.radius, vertex.ccw)
                    sweep = angle if vertex.ccw else -angle
                    return rotate_about(prev.point, sweep * (distance / length), center)
            distance -= length
            last_point = vertex.point

    # Exactly the total length ends on the last point.
    if last_point is not None and distance <= SCALED_EPSILON:
        return last_point.copy()
    return None


def sample_path_point_at_distance_from_end(
    paths: list[ExtrusionPath],
    distance: float,
) -> Optional[np.ndarray]:
    """Point at the given arc-length distance back from the end of the paths."""
    if distance < 0:
        return None
    return sample_path_point_at_distance_from_start(
        [path.reversed() for path in reversed(paths)], distance
    )


def loop_is_hole(paths: list[ExtrusionPath]) -> bool:
    """Clockwise loops are holes."""
    coords: list[tuple[float, float]] = []
    for path in paths:
        for vertex in path.vertices:
            if coords and coincides(np.array(coords[-1]), vertex.point):
                continue
            coords.append((float(vertex.point[0]), float(vertex.point[1])))
    if len(coords) < 3:
        raise GeometryError("A loop needs at least 3 distinct points")
    return not LinearRing(coords).is_ccw


def wipe_hide_seam(
    paths: list[ExtrusionPath],
    is_hole: bool,
    wipe_length: float,
) -> Optional[np.ndarray]:
    """Target of a short inward move hiding the seam of a printed loop.

    Args:
        paths: The loop's paths in print order; the loop may be clipped,
            so its end need not meet its start
        is_hole: True for clockwise (hole) loops
        wipe_length: Length of the hiding move

    Returns:
        The point to move to, or None if the loop is too short or too
        irregular to pick a direction.
    """
    if not paths:
        return None
    if paths[0].size() < 2 or paths[-1].size() < 2:
        logger.warning("Cannot hide seam of a loop with a degenerate path")
        return None

    try:
        return _hide_seam_point(paths, is_hole, wipe_length)
    except GeometryError as e:
        logger.warning("Cannot hide seam: %s", e)
        return None


def _hide_seam_point(
    paths: list[ExtrusionPath],
    is_hole: bool,
    wipe_length: float,
) -> Optional[np.ndarray]:
    # Short loops give no reliable direction and the move may not fit inside.
    if not longer_than(paths, MIN_LOOP_WIPE_RATIO * wipe_length):
        return None

    p_current = paths[-1].last_point
    p_next = paths[0].first_point

    # Is the seam gap large enough already?
    gap = wipe_length - float(np.hypot(*(p_next - p_current)))
    if gap > 0 and sample_path_point_at_distance_from_start(paths, gap) is None:
        logger.warning("Loop shorter than its length check, no seam hiding")
        return None

    if coincides(p_next, p_current):
        # Closed loop, follow the outgoing edge instead.
        p_next = sample_path_point_at_distance_from_start(paths, wipe_length)
        if p_next is None:
            logger.warning("Loop shorter than its length check, no seam hiding")
            return None

    p_prev = sample_path_point_at_distance_from_end(paths, wipe_length)
    if p_prev is None:
        logger.warning("Loop shorter than its length check, no seam hiding")
        return None

    # Angle between the outgoing and incoming edge. Contours turn left,
    # holes right; make it monotonic before taking a third of it.
    angle_inside = angle_ccw(p_next - p_current, p_prev - p_current)
    if is_hole:
        if angle_inside > 0:
            angle_inside -= 2.0 * math.pi
    else:
        if angle_inside < 0:
            angle_inside += 2.0 * math.pi

    v_rotated = rotate(normalized(p_next - p_current), angle_inside / 3.0)
    return p_current + v_rotated * wipe_length
