"""Planar geometry primitives: vectors and circular arcs."""

import math

import numpy as np


# Tolerance for budget comparisons (mm of filament).
EPSILON = 1e-4
# Two points closer than this are the same point (mm).
SCALED_EPSILON = 1e-4


class GeometryError(ValueError):
    """Malformed geometry that cannot be processed."""


def as_point(p) -> np.ndarray:
    """Convert any (x, y) sequence to a float array."""
    return np.asarray(p, dtype=float)[:2].copy()


def coincides(a: np.ndarray, b: np.ndarray, eps: float = SCALED_EPSILON) -> bool:
    """Check if two points are equal within tolerance."""
    return bool(abs(a[0] - b[0]) < eps and abs(a[1] - b[1]) < eps)


def normalized(v: np.ndarray) -> np.ndarray:
    n = float(np.hypot(v[0], v[1]))
    if n == 0:
        raise GeometryError("Cannot normalize a zero-length vector")
    return v / n


def rotate(v: np.ndarray, angle: float) -> np.ndarray:
    """Rotate vector counter-clockwise by angle (radians)."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([c * v[0] - s * v[1], s * v[0] + c * v[1]])


def rotate_about(p: np.ndarray, angle: float, center: np.ndarray) -> np.ndarray:
    """Rotate point counter-clockwise around center."""
    return center + rotate(p - center, angle)


def angle_ccw(v1: np.ndarray, v2: np.ndarray) -> float:
    """Signed angle from v1 to v2, in (-pi, pi], positive counter-clockwise."""
    cross = v1[0] * v2[1] - v1[1] * v2[0]
    dot = v1[0] * v2[0] + v1[1] * v2[1]
    return math.atan2(cross, dot)


def arc_center(
    start: np.ndarray,
    end: np.ndarray,
    radius: float,
    ccw: bool,
) -> np.ndarray:
    """Center of the circular arc from start to end.

    A positive radius selects the shorter arc, a negative radius the
    longer one. The winding picks the side of the chord.
    """
    if radius == 0:
        raise GeometryError("Arc radius must be non-zero")
    v = end - start
    q2 = float(v[0] * v[0] + v[1] * v[1])
    if q2 == 0:
        raise GeometryError("Arc end points coincide")
    t2 = radius * radius / q2 - 0.25
    # Nearly antipodal end points may push t2 slightly negative.
    t = math.sqrt(t2) if t2 > 0 else 0.0
    mid = 0.5 * (start + end)
    vp = np.array([-v[1] * t, v[0] * t])
    return mid + vp if (radius > 0) == ccw else mid - vp


def arc_angle(start: np.ndarray, end: np.ndarray, radius: float) -> float:
    """Sweep angle of the arc (always positive, radians)."""
    if radius == 0:
        raise GeometryError("Arc radius must be non-zero")
    d = float(np.hypot(end[0] - start[0], end[1] - start[1]))
    r = abs(radius)
    # Rounding may leave the chord slightly longer than the diameter.
    a = math.pi if d >= 2 * r else 2 * math.asin(d / (2 * r))
    return a if radius > 0 else 2 * math.pi - a


def arc_length(start: np.ndarray, end: np.ndarray, radius: float) -> float:
    return abs(radius) * arc_angle(start, end, radius)


def distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.hypot(b[0] - a[0], b[1] - a[1]))
