"""Extrusion paths made of linear and circular-arc segments."""

from dataclasses import dataclass, replace
from enum import Enum

import numpy as np

from .geometry import (
    GeometryError,
    arc_length,
    as_point,
    distance,
)


class ExtrusionRole(Enum):
    """What an extrusion path prints."""
    PERIMETER = "perimeter"
    EXTERNAL_PERIMETER = "external_perimeter"
    OVERHANG_PERIMETER = "overhang_perimeter"
    INTERNAL_INFILL = "internal_infill"
    SOLID_INFILL = "solid_infill"
    TOP_SOLID_INFILL = "top_solid_infill"
    BRIDGE_INFILL = "bridge_infill"
    INTERNAL_BRIDGE_INFILL = "internal_bridge_infill"
    GAP_FILL = "gap_fill"
    SKIRT = "skirt"
    SUPPORT_MATERIAL = "support_material"

    @property
    def is_bridge(self) -> bool:
        """Printed in mid-air; never reused for wiping."""
        return self in (
            ExtrusionRole.BRIDGE_INFILL,
            ExtrusionRole.INTERNAL_BRIDGE_INFILL,
            ExtrusionRole.OVERHANG_PERIMETER,
        )


class SegmentKind(Enum):
    LINEAR = "linear"
    ARC = "arc"


@dataclass
class PathVertex:
    """A path point tagged with the segment that ends at it.

    For arcs a positive radius is the short way around (<= 180 deg),
    a negative radius the long way. The first vertex of a path is linear.
    """
    point: np.ndarray
    kind: SegmentKind = SegmentKind.LINEAR
    radius: float = 0.0
    ccw: bool = False

    @classmethod
    def line(cls, point) -> "PathVertex":
        return cls(point=as_point(point))

    @classmethod
    def arc(cls, point, radius: float, ccw: bool) -> "PathVertex":
        return cls(point=as_point(point), kind=SegmentKind.ARC, radius=float(radius), ccw=ccw)

    @property
    def linear(self) -> bool:
        # A zero radius arc is degenerate and drawn as a line.
        return self.kind == SegmentKind.LINEAR or self.radius == 0

    def copy(self) -> "PathVertex":
        return replace(self, point=self.point.copy())


def segment_length(prev: PathVertex, vertex: PathVertex) -> float:
    """Length of the segment from prev to vertex."""
    if vertex.linear:
        return distance(prev.point, vertex.point)
    return arc_length(prev.point, vertex.point, vertex.radius)


def estimate_path_length(vertices: list[PathVertex]) -> float:
    return sum(
        segment_length(prev, vertex)
        for prev, vertex in zip(vertices, vertices[1:])
    )


def reverse_arc_path(vertices: list[PathVertex]) -> list[PathVertex]:
    """Return the path traversed the other way.

    Segment tags move to the new end vertex of each segment and arc
    windings flip.
    """
    if len(vertices) < 2:
        return [v.copy() for v in vertices]
    out = [PathVertex.line(vertices[-1].point)]
    for i in range(len(vertices) - 1, 0, -1):
        seg = vertices[i]
        target = vertices[i - 1].point
        if seg.kind == SegmentKind.ARC:
            out.append(PathVertex.arc(target, seg.radius, not seg.ccw))
        else:
            out.append(PathVertex.line(target))
    return out


@dataclass
class ExtrusionPath:
    """One extruded feature with its role."""
    vertices: list[PathVertex]
    role: ExtrusionRole = ExtrusionRole.PERIMETER

    def __post_init__(self):
        if len(self.vertices) < 2:
            raise GeometryError(
                f"Extrusion path needs at least 2 vertices, got {len(self.vertices)}"
            )

    @classmethod
    def from_points(cls, points, role: ExtrusionRole = ExtrusionRole.PERIMETER) -> "ExtrusionPath":
        """Build a polyline path from (x, y) points."""
        return cls([PathVertex.line(p) for p in points], role=role)

    @property
    def first_point(self) -> np.ndarray:
        return self.vertices[0].point

    @property
    def last_point(self) -> np.ndarray:
        return self.vertices[-1].point

    @property
    def is_bridge(self) -> bool:
        return self.role.is_bridge

    def size(self) -> int:
        return len(self.vertices)

    def as_arc_path(self) -> list[PathVertex]:
        """Copy of the vertex list, safe to modify."""
        return [v.copy() for v in self.vertices]

    def reversed(self) -> "ExtrusionPath":
        return ExtrusionPath(reverse_arc_path(self.vertices), role=self.role)

    def length(self) -> float:
        return estimate_path_length(self.vertices)
