"""G-code generation and machine state for FFF printers."""

from enum import Enum
from typing import Optional

import numpy as np

from .config import PrintConfig, RegionConfig
from .tools import Extruder, Tool


class GCodeTag(Enum):
    """Reserved comment tags read by the G-code processor."""
    WIPE_START = "WIPE_START"
    WIPE_END = "WIPE_END"

    def line(self) -> str:
        return f";{self.value}\n"


class GCodeWriter:
    """Emits motion commands and tracks where the machine is.

    Every emitting method returns its G-code text and updates the
    position and the active extruder's E ledger.
    """

    def __init__(self, config: Optional[PrintConfig] = None, region_config: Optional[RegionConfig] = None):
        self.config = config or PrintConfig()
        self.region_config = region_config
        self.tool: Optional[Tool] = None
        self.position = np.zeros(3)
        # Extra Z still to be removed by the next move
        self.lifted: float = 0.0
        # E correction folded into the next extrusion
        self.de_delayed: float = 0.0

    def set_tool(self, tool: Tool) -> None:
        self.tool = tool

    def tool_is_extruder(self) -> bool:
        return isinstance(self.tool, Extruder)

    def get_position(self) -> np.ndarray:
        return self.position.copy()

    def set_position(self, point) -> None:
        """Set XY (and Z when given) without emitting anything."""
        point = np.asarray(point, dtype=float)
        self.position[:len(point)] = point

    # -- Quantization

    def quantize(self, point) -> np.ndarray:
        """Round a point to the emitted XYZ resolution."""
        return np.round(np.asarray(point, dtype=float), self.config.gcode_precision_xyz) + 0.0

    def quantize_e(self, e: float) -> float:
        return round(e, self.config.gcode_precision_e) + 0.0

    # -- Formatting

    def _format(self, value: float, precision: int) -> str:
        text = f"{value:.{precision}f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return "0" if text in ("-0", "") else text

    def _format_coord(self, value: float) -> str:
        return self._format(value, self.config.gcode_precision_xyz)

    def _format_e(self, value: float) -> str:
        return self._format(value, self.config.gcode_precision_e)

    def _format_speed(self, mm_s: float) -> str:
        return self._format(mm_s * 60.0, 3)

    def _comment(self, comment: str) -> str:
        if comment and self.config.gcode_comments:
            return f" ; {comment}"
        return ""

    def _e_word(self, dE: float) -> str:
        """Apply dE (plus any delayed correction) and format the E word."""
        dE += self.de_delayed
        self.de_delayed = 0.0
        if dE == 0 or not self.tool_is_extruder():
            return ""
        self.tool.extrude(dE)
        return f" E{self._format_e(self.tool.E)}"

    # -- Motion

    def extrude_to_xy(self, point, dE: float, comment: str = "") -> str:
        self.position[:2] = point[:2]
        return (
            f"G1 X{self._format_coord(point[0])} Y{self._format_coord(point[1])}"
            f"{self._e_word(dE)}{self._comment(comment)}\n"
        )

    def extrude_to_xyz(self, point, dE: float, comment: str = "") -> str:
        self.position[:] = point[:3]
        return (
            f"G1 X{self._format_coord(point[0])} Y{self._format_coord(point[1])} "
            f"Z{self._format_coord(point[2])}{self._e_word(dE)}{self._comment(comment)}\n"
        )

    def _arc_words(self, point, ij, ccw: bool) -> tuple[str, str]:
        """Command with XY target, and the IJ center words."""
        cmd = "G3" if ccw else "G2"
        head = f"{cmd} X{self._format_coord(point[0])} Y{self._format_coord(point[1])}"
        center = f" I{self._format_coord(ij[0])} J{self._format_coord(ij[1])}"
        return head, center

    def extrude_arc_to_xy(self, point, ij, ccw: bool, dE: float, comment: str = "") -> str:
        """Arc move; ij is the center offset from the current position."""
        head, center = self._arc_words(point, ij, ccw)
        self.position[:2] = point[:2]
        return f"{head}{center}{self._e_word(dE)}{self._comment(comment)}\n"

    def extrude_arc_to_xyz(self, point, ij, ccw: bool, dE: float, comment: str = "") -> str:
        head, center = self._arc_words(point, ij, ccw)
        self.position[:] = point[:3]
        return (
            f"{head} Z{self._format_coord(point[2])}{center}"
            f"{self._e_word(dE)}{self._comment(comment)}\n"
        )

    def travel_to_xy(self, point, comment: str = "") -> str:
        self.position[:2] = point[:2]
        return (
            f"G1 X{self._format_coord(point[0])} Y{self._format_coord(point[1])} "
            f"F{self._format_speed(self.config.travel_speed)}{self._comment(comment)}\n"
        )

    def travel_to_z(self, z: float, comment: str = "") -> str:
        self.position[2] = z
        return (
            f"G1 Z{self._format_coord(z)} "
            f"F{self._format_speed(self.config.travel_speed)}{self._comment(comment)}\n"
        )

    def set_speed_mm_s(self, speed: float, comment: str = "", cooling_marker: str = "") -> str:
        line = f"G1 F{self._format_speed(speed)}"
        if comment:
            line += f" ; {comment}"
        return line + cooling_marker + "\n"

    # -- Retraction and lift

    def add_de_delayed(self, de: float) -> None:
        """Queue an E correction for the next extruding move."""
        self.de_delayed += de

    def retract_to_go(self, length: float) -> float:
        """Retraction left to do, counting a queued one as done."""
        if not self.tool_is_extruder():
            return 0.0
        return max(0.0, self.tool.retract_to_go(length) + min(0.0, self.de_delayed))

    def retract_length_for(self, toolchange: bool = False) -> float:
        """Retraction length for the next move of the active extruder."""
        extruder = self.tool
        if toolchange:
            return extruder.retract_length_toolchange
        if self.region_config is not None and self.region_config.print_retract_length >= 0:
            return self.region_config.print_retract_length
        return extruder.retract_length

    def retract(self, toolchange: bool = False) -> str:
        """In-place retraction of whatever is left to retract."""
        if not self.tool_is_extruder():
            return ""
        extruder = self.tool
        length = self.retract_length_for(toolchange)

        if self.config.use_firmware_retraction:
            if extruder.retracted >= length:
                return ""
            extruder.retracted = length
            return "G10 S1 ; retract for toolchange\n" if toolchange else "G10 ; retract\n"

        to_go = self.retract_to_go(length)
        if to_go <= 0 and self.de_delayed == 0:
            return ""
        return (
            f"G1{self._e_word(-to_go)} F{self._format_speed(extruder.retract_speed)}"
            f"{self._comment('retract')}\n"
        )

    def unretract(self) -> str:
        if not self.tool_is_extruder():
            return ""
        extruder = self.tool
        if self.config.use_firmware_retraction:
            if extruder.unretract() == 0:
                return ""
            return "G11 ; unretract\n"
        dE = extruder.unretract()
        if dE == 0 and self.de_delayed == 0:
            return ""
        return (
            f"G1{self._e_word(dE)} F{self._format_speed(extruder.retract_speed)}"
            f"{self._comment('unretract')}\n"
        )

    def set_lift(self, dz: float) -> None:
        """Record Z raised above the layer, to be removed by unlift()."""
        self.lifted = dz

    def unlift(self) -> str:
        if self.lifted <= 0:
            return ""
        z = self.position[2] - self.lifted
        self.lifted = 0.0
        return self.travel_to_z(z, "restore layer Z")
