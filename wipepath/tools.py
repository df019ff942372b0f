"""Print head tools: filament extruders and non-extruding mills."""

from dataclasses import dataclass, field
from enum import Enum

from .config import FloatOrPercent, PrintConfig


class ToolType(Enum):
    EXTRUDER = "extruder"
    MILL = "mill"


@dataclass
class Extruder:
    """Filament extruder with its retraction ledger.

    E and absolute_E follow the emitted E axis, retracted is the
    filament length currently pulled back from the nozzle.
    """
    id: int
    retract_length: float = 2.0  # mm of filament
    retract_length_toolchange: float = 10.0  # mm of filament
    retract_speed: float = 40.0  # mm/s
    wipe: bool = False
    wipe_speed: float = 0.0  # mm/s, 0 = derive from travel speed
    wipe_lift: FloatOrPercent = field(default_factory=lambda: FloatOrPercent(0.0))
    nozzle_diameter: float = 0.4  # mm
    use_relative_e_distances: bool = False
    tool_type: ToolType = field(default=ToolType.EXTRUDER)
    E: float = 0.0
    absolute_E: float = 0.0
    retracted: float = 0.0

    @classmethod
    def from_config(cls, config: PrintConfig, extruder_id: int) -> "Extruder":
        return cls(
            id=extruder_id,
            retract_length=config.get_at("retract_length", extruder_id),
            retract_length_toolchange=config.get_at("retract_length_toolchange", extruder_id),
            retract_speed=config.get_at("retract_speed", extruder_id),
            wipe=config.get_at("wipe", extruder_id),
            wipe_speed=config.get_at("wipe_speed", extruder_id),
            wipe_lift=config.get_at("wipe_lift", extruder_id),
            nozzle_diameter=config.get_at("nozzle_diameter", extruder_id),
            use_relative_e_distances=config.use_relative_e_distances,
        )

    @property
    def lift(self) -> float:
        """Absolute wipe lift height in mm."""
        return self.wipe_lift.get_abs_value(self.nozzle_diameter)

    def extrude(self, dE: float) -> float:
        """Advance the E axis; negative dE is retraction."""
        if self.use_relative_e_distances:
            self.E = 0.0
        self.E += dE
        self.absolute_E += dE
        if dE < 0:
            self.retracted -= dE
        return dE

    def retract_to_go(self, length: float) -> float:
        """Retraction still missing to reach the requested length."""
        return max(0.0, length - self.retracted)

    def unretract(self) -> float:
        """Amount to push back into the nozzle; clears the ledger."""
        dE = self.retracted
        self.retracted = 0.0
        return dE


@dataclass
class Mill:
    """Spindle tool sharing the gantry; it never extrudes."""
    id: int
    diameter: float  # mm
    tool_type: ToolType = field(default=ToolType.MILL)


# Type alias for any tool
Tool = Extruder | Mill
