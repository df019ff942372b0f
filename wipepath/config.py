"""Print configuration relevant to retraction and wiping."""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FloatOrPercent:
    """A length given either in mm or as a percentage of a base length."""
    value: float
    percent: bool = False

    def get_abs_value(self, ratio_over: float) -> float:
        return ratio_over * self.value / 100.0 if self.percent else self.value

    @classmethod
    def parse(cls, text: str) -> "FloatOrPercent":
        text = text.strip()
        if text.endswith("%"):
            return cls(float(text[:-1]), percent=True)
        return cls(float(text))

    def __str__(self) -> str:
        return f"{self.value:g}%" if self.percent else f"{self.value:g}"


@dataclass
class PrintConfig:
    """Session-wide settings.

    List options hold one value per extruder; lookups past the end of a
    list reuse its last value.
    """
    # Per extruder
    retract_length: list[float] = field(default_factory=lambda: [2.0])  # mm
    retract_length_toolchange: list[float] = field(default_factory=lambda: [10.0])  # mm
    retract_speed: list[float] = field(default_factory=lambda: [40.0])  # mm/s
    wipe: list[bool] = field(default_factory=lambda: [False])
    wipe_speed: list[float] = field(default_factory=lambda: [0.0])  # mm/s, 0 = travel_speed * 0.8
    wipe_lift: list[FloatOrPercent] = field(default_factory=lambda: [FloatOrPercent(0.0)])
    nozzle_diameter: list[float] = field(default_factory=lambda: [0.4])  # mm

    travel_speed: float = 130.0  # mm/s
    gcode_precision_xyz: int = 3  # decimals
    gcode_precision_e: int = 5  # decimals
    resolution: float = 0.0  # mm, minimum segment length; 0 = off
    use_firmware_retraction: bool = False
    use_relative_e_distances: bool = False
    gcode_comments: bool = False
    cooling_markers: bool = False

    def get_at(self, option: str, extruder_id: int) -> Any:
        values = getattr(self, option)
        if not values:
            raise ValueError(f"Option {option} has no values")
        return values[min(max(extruder_id, 0), len(values) - 1)]


@dataclass
class RegionConfig:
    """Per-region overrides."""
    print_retract_length: float = -1.0  # mm, < 0 = use the extruder setting


def _parse_bool(text: str) -> bool:
    text = text.strip().lower()
    if text in ("1", "true", "yes"):
        return True
    if text in ("0", "false", "no"):
        return False
    raise ValueError(f"Not a boolean: {text!r}")


_SCALAR_PARSERS: dict[type, Callable[[str], Any]] = {
    bool: _parse_bool,
    int: lambda s: int(s.strip()),
    float: lambda s: float(s.strip()),
}

_VECTOR_PARSERS: dict[str, Callable[[str], Any]] = {
    "retract_length": float,
    "retract_length_toolchange": float,
    "retract_speed": float,
    "wipe": _parse_bool,
    "wipe_speed": float,
    "wipe_lift": FloatOrPercent.parse,
    "nozzle_diameter": float,
}


def parse_config(text: str) -> PrintConfig:
    """Parse slicer-style `key = value` lines into a PrintConfig.

    Vectors are comma separated. Unknown keys are ignored.
    """
    config = PrintConfig()
    scalar_types = {
        f.name: type(getattr(config, f.name))
        for f in fields(config)
        if f.name not in _VECTOR_PARSERS
    }

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if "=" not in line:
            raise ValueError(f"Line {lineno}: expected 'key = value', got {raw!r}")
        key, value = (part.strip() for part in line.split("=", 1))

        try:
            if key in _VECTOR_PARSERS:
                parse = _VECTOR_PARSERS[key]
                setattr(config, key, [parse(v) for v in value.split(",")])
            elif key in scalar_types:
                setattr(config, key, _SCALAR_PARSERS[scalar_types[key]](value))
            else:
                logger.debug("Ignoring unknown option %s", key)
        except ValueError as e:
            raise ValueError(f"Line {lineno}: bad value for {key}: {e}") from e

    return config


def load_ini(path: Path) -> PrintConfig:
    """Load a PrintConfig from an ini file."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_config(f.read())
