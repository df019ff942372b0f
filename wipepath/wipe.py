"""Wipe moves: retrace the tail of the last extrusion while retracting.

The generator hands the just printed paths to Wipe.set_path() and later,
when it needs to retract, calls Wipe.wipe(). The wipe walks the cached
path from the current nozzle position, quantizing every move, and stops
as soon as the retraction budget is spent. The cached path is always
dropped afterwards.
"""

import logging
from dataclasses import dataclass, replace

import numpy as np

from .config import PrintConfig
from .extrusion import (
    ExtrusionPath,
    PathVertex,
    estimate_path_length,
    reverse_arc_path,
)
from .gcode import GCodeTag, GCodeWriter
from .geometry import (
    EPSILON,
    GeometryError,
    arc_angle,
    arc_center,
    coincides,
    distance,
    rotate_about,
)
from .tools import Extruder


logger = logging.getLogger(__name__)

WIPE_RETRACT_COMMENT = "wipe and retract"


@dataclass(frozen=True)
class WipeContext:
    """Fixed inputs of one wipe walk."""
    writer: GCodeWriter
    xy_to_e: float  # mm of filament per mm of travel
    lift_per_mm: float  # Z rise per mm of travel, 0 = no lift
    final_z: float  # Z never goes above this
    use_firmware_retract: bool
    min_segment: float  # shorter linear moves are skipped


@dataclass(frozen=True, eq=False)
class WipeProgress:
    """Running state of one wipe walk."""
    remaining: float  # retraction budget left, mm of filament
    z: float
    point: np.ndarray  # last reached point, quantized
    lines: tuple[str, ...] = ()
    done: bool = False

    @property
    def emitted(self) -> bool:
        return bool(self.lines)


def _same_point(a: np.ndarray, b: np.ndarray) -> bool:
    return bool(a[0] == b[0] and a[1] == b[1])


def _emit(
    ctx: WipeContext,
    progress: WipeProgress,
    p_quantized: np.ndarray,
    dE: float,
    segment_length: float,
    ij: np.ndarray | None = None,
    ccw: bool = False,
) -> WipeProgress:
    """Write one linear (ij is None) or arc move consuming dE."""
    writer = ctx.writer
    e = 0.0 if ctx.use_firmware_retract else -dE
    z = progress.z
    if ctx.lift_per_mm == 0:
        if ij is None:
            line = writer.extrude_to_xy(p_quantized, e, WIPE_RETRACT_COMMENT)
        else:
            line = writer.extrude_arc_to_xy(p_quantized, ij, ccw, e, WIPE_RETRACT_COMMENT)
    else:
        z = min(ctx.final_z, z + segment_length * ctx.lift_per_mm)
        p3d = np.array([p_quantized[0], p_quantized[1], z])
        if ij is None:
            line = writer.extrude_to_xyz(p3d, e, WIPE_RETRACT_COMMENT)
        else:
            line = writer.extrude_arc_to_xyz(p3d, ij, ccw, e, WIPE_RETRACT_COMMENT)
    return replace(
        progress,
        remaining=progress.remaining - dE,
        z=z,
        point=p_quantized,
        lines=progress.lines + (line,),
    )


def _finish_collapsed(ctx: WipeContext, progress: WipeProgress) -> WipeProgress:
    """The last move is too short to emit; end the wipe here."""
    if not ctx.use_firmware_retract:
        # Push the missing retraction through with the next move.
        ctx.writer.add_de_delayed(-progress.remaining)
    logger.debug("Wipe ended on a collapsed move, %.5f mm deferred", progress.remaining)
    return replace(progress, remaining=0.0, done=True)


def _wipe_linear(ctx: WipeContext, progress: WipeProgress, p: np.ndarray) -> WipeProgress:
    writer = ctx.writer
    prev_quantized = progress.point
    p_quantized = writer.quantize(p)
    if _same_point(p_quantized, prev_quantized):
        return progress
    segment_length = distance(prev_quantized, p_quantized)
    if segment_length < ctx.min_segment:
        return progress

    # Quantize E as it is extruded as a whole segment.
    dE = writer.quantize_e(ctx.xy_to_e * segment_length)
    done = False
    if dE > progress.remaining - EPSILON:
        if dE > progress.remaining + EPSILON:
            # Shorten the segment.
            p_quantized = writer.quantize(
                prev_quantized + (p - prev_quantized) * (progress.remaining / dE)
            )
            if _same_point(p_quantized, prev_quantized):
                return _finish_collapsed(ctx, progress)
            segment_length = distance(prev_quantized, p_quantized)
        dE = progress.remaining
        done = True

    return replace(_emit(ctx, progress, p_quantized, dE, segment_length), done=done)


def _wipe_arc(
    ctx: WipeContext,
    progress: WipeProgress,
    p: np.ndarray,
    radius: float,
    ccw: bool,
) -> WipeProgress:
    writer = ctx.writer
    prev_quantized = progress.point
    p_quantized = writer.quantize(p)
    if _same_point(p_quantized, prev_quantized):
        return progress
    if radius == 0:
        return _wipe_linear(ctx, progress, p)

    # The radius is never quantized, only the end points and IJ.
    center = arc_center(prev_quantized, p_quantized, radius, ccw)
    angle = arc_angle(prev_quantized, p_quantized, radius)
    segment_length = angle * abs(radius)
    dE = writer.quantize_e(ctx.xy_to_e * segment_length)
    done = False
    if dE > progress.remaining - EPSILON:
        if dE > progress.remaining + EPSILON:
            # Shorten the arc, starting over from the unquantized end point.
            center = arc_center(prev_quantized, p, radius, ccw)
            angle = arc_angle(prev_quantized, p, radius)
            fraction = progress.remaining / (ctx.xy_to_e * angle * abs(radius))
            p_quantized = writer.quantize(
                rotate_about(prev_quantized, (angle if ccw else -angle) * fraction, center)
            )
            if _same_point(p_quantized, prev_quantized):
                return _finish_collapsed(ctx, progress)
            segment_length = angle * abs(radius) * fraction
        dE = progress.remaining
        done = True

    ij = writer.quantize(center - prev_quantized)
    if not np.any(ij):
        # Degenerate after quantization, go straight.
        return _wipe_linear(ctx, progress, p)
    return replace(
        _emit(ctx, progress, p_quantized, dE, segment_length, ij=ij, ccw=ccw),
        done=done,
    )


class Wipe:
    """Wipe path cache and emitter of one generation session.

    Holds at most one candidate path; set_path() replaces it and wipe()
    consumes it.
    """

    def __init__(self):
        self.enabled: bool = False
        self.max_length: float = 0.0  # mm of XY travel worth caching
        self.path: list[PathVertex] = []
        self.offset = np.zeros(2)  # XY shift applied when replaying the path

    def enable(self, max_length: float) -> None:
        self.enabled = True
        self.max_length = max_length

    def disable(self) -> None:
        self.enabled = False
        self.max_length = 0.0

    def is_enabled(self) -> bool:
        return self.enabled

    def reset_path(self) -> None:
        self.path = []

    def has_path(self) -> bool:
        return bool(self.path)

    def set_offset(self, offset) -> None:
        self.offset = np.asarray(offset, dtype=float)[:2].copy()

    @staticmethod
    def calc_xy_to_e_ratio(retract_speed: float, travel_speed: float) -> float:
        """Filament retracted per mm of wipe travel."""
        if travel_speed <= 0:
            return 0.0
        return 0.5 * retract_speed / travel_speed

    @staticmethod
    def min_segment_length(config: PrintConfig) -> float:
        """Shortest linear wipe move the firmware can still resolve."""
        precision = max(10 ** -config.gcode_precision_xyz * 1.5, EPSILON * 10)
        if config.resolution > 0:
            precision = max(precision, config.resolution)
        return precision

    def init(self, config: PrintConfig, extruder_ids: list[int]) -> None:
        """Enable wiping and size the path cache for the extruders in use.

        Paths longer than the longest retraction can consume are never
        needed, so the cache keeps no more than that.
        """
        self.reset_path()

        wipe_xy = 0.0
        multimaterial = len(extruder_ids) > 1
        for extruder_id in extruder_ids:
            if not config.get_at("wipe", extruder_id):
                continue
            xy_to_e = self.calc_xy_to_e_ratio(
                config.get_at("retract_speed", extruder_id), config.travel_speed
            )
            if xy_to_e <= 0:
                logger.warning("Extruder %d has no usable retract speed, not wiping", extruder_id)
                continue
            wipe_xy = max(wipe_xy, config.get_at("retract_length", extruder_id) / xy_to_e)
            if multimaterial:
                wipe_xy = max(
                    wipe_xy,
                    config.get_at("retract_length_toolchange", extruder_id) / xy_to_e,
                )

        if wipe_xy <= 0:
            logger.debug("Wipe disabled, no extruder needs it")
            self.disable()
        else:
            logger.debug("Wipe enabled, caching up to %.3f mm", wipe_xy)
            self.enable(wipe_xy)

    def set_path(self, paths: list[ExtrusionPath], reverse: bool = False) -> None:
        """Cache the tail of the paths just printed as the next wipe path.

        Args:
            paths: Contiguous paths of one feature, in print order
            reverse: Walk the paths from the last one backwards
        """
        self.reset_path()
        if not self.enabled or not paths:
            return
        try:
            self.path = self._accumulate(paths, reverse)
        except GeometryError as e:
            logger.warning("Not caching wipe path: %s", e)
            self.reset_path()

    def _accumulate(self, paths: list[ExtrusionPath], reverse: bool) -> list[PathVertex]:
        ordered = list(paths[::-1]) if reverse else list(paths)

        def oriented(source: ExtrusionPath) -> list[PathVertex]:
            if source.size() < 2:
                raise GeometryError(f"{source.role.value} path has {source.size()} vertices")
            return reverse_arc_path(source.vertices) if reverse else source.as_arc_path()

        path: list[PathVertex] = []
        _append_distinct(path, oriented(ordered[0]))
        length = estimate_path_length(path)

        for source in ordered[1:]:
            if length >= self.max_length:
                break
            if source.is_bridge:
                # Do not wipe over bridges.
                break
            if source.size() < 2:
                logger.warning("Wipe path stops at a %d vertex path", source.size())
                break
            vertices = oriented(source)
            if not coincides(path[-1].point, vertices[0].point):
                # Should not happen with a contiguous multi-path.
                logger.warning(
                    "Wipe path interrupted at (%.4f, %.4f)", path[-1].point[0], path[-1].point[1]
                )
                break
            length += estimate_path_length(vertices)
            _append_distinct(path, vertices[1:])

        return path if len(path) >= 2 else []

    @staticmethod
    def calc_wipe_speed(writer: GCodeWriter) -> tuple[float, bool]:
        """Wipe feed rate in mm/s, and whether it was set explicitly."""
        if writer.tool_is_extruder() and writer.tool.wipe_speed > 0:
            return writer.tool.wipe_speed, True
        return writer.config.travel_speed * 0.8, False

    def wipe(self, writer: GCodeWriter, toolchange: bool = False) -> str:
        """Emit the wipe move for the cached path and drop the path.

        Retracts at most the retraction still to go; whatever the path is
        too short for is left to a plain retraction by the caller.
        """
        progress = None
        if writer.tool_is_extruder():
            retract_length = writer.retract_to_go(writer.retract_length_for(toolchange))
            if retract_length > 0 and self.has_path():
                progress = self._walk(writer, writer.tool, retract_length)

        # Never wipe twice over the same path.
        self.reset_path()

        if progress is None or not progress.emitted:
            return ""

        config = writer.config
        speed, explicit = self.calc_wipe_speed(writer)
        comment = ""
        if config.gcode_comments:
            comment = "wipe_speed" if explicit else "travel_speed * 0.8"
        return (
            GCodeTag.WIPE_START.line()
            + writer.set_speed_mm_s(speed, comment, ";_WIPE" if config.cooling_markers else "")
            + "".join(progress.lines)
            + GCodeTag.WIPE_END.line()
        )

    def _walk(
        self,
        writer: GCodeWriter,
        extruder: Extruder,
        retract_length: float,
    ) -> WipeProgress | None:
        config = writer.config
        lift = extruder.lift
        xy_to_e = self.calc_xy_to_e_ratio(extruder.retract_speed, config.travel_speed)
        if xy_to_e <= 0:
            logger.warning("Extruder %d has no usable retract speed, not wiping", extruder.id)
            return None
        initial_z = float(writer.position[2])
        ctx = WipeContext(
            writer=writer,
            xy_to_e=xy_to_e,
            lift_per_mm=xy_to_e * lift / retract_length,
            final_z=initial_z + lift,
            use_firmware_retract=config.use_firmware_retraction,
            min_segment=self.min_segment_length(config),
        )

        # Start from the current position, it may be off the path start
        # when the loop was clipped.
        progress = WipeProgress(
            remaining=retract_length,
            z=initial_z,
            point=writer.quantize(writer.position[:2]),
        )
        for vertex in self.path:
            p = vertex.point + self.offset
            if vertex.linear:
                progress = _wipe_linear(ctx, progress, p)
            else:
                progress = _wipe_arc(ctx, progress, p, vertex.radius, vertex.ccw)
            if progress.done:
                break

        writer.set_position(progress.point)
        if ctx.lift_per_mm != 0:
            # Keep the extra Z so the next move does not start in mid-air.
            writer.set_lift(float(writer.position[2]) - initial_z)

        logger.debug(
            "Wipe emitted %d moves, %.5f of %.5f mm retraction left",
            len(progress.lines), progress.remaining, retract_length,
        )
        return progress


def _append_distinct(path: list[PathVertex], vertices: list[PathVertex]) -> None:
    """Append vertices, skipping any that repeat the current tail."""
    for vertex in vertices:
        if path and coincides(path[-1].point, vertex.point):
            continue
        path.append(vertex)


def retract_and_wipe(writer: GCodeWriter, wipe: Wipe, toolchange: bool = False) -> str:
    """Wipe if the active extruder wants it, then retract the rest in place."""
    if not writer.tool_is_extruder():
        wipe.reset_path()
        return ""
    gcode = ""
    if writer.tool.wipe:
        gcode += wipe.wipe(writer, toolchange)
    else:
        wipe.reset_path()
    gcode += writer.retract(toolchange)
    return gcode
