import os
import sys

import numpy as np
import pytest

# Ensure the package directory is importable without installing
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from wipepath.config import PrintConfig
from wipepath.extrusion import ExtrusionPath
from wipepath.gcode import GCodeWriter
from wipepath.tools import Extruder
from wipepath.wipe import Wipe


def make_config(**overrides) -> PrintConfig:
    # retract_speed / travel_speed * 0.5 gives 0.03 mm of filament per mm
    values = dict(
        retract_length=[1.2],
        retract_length_toolchange=[4.0],
        retract_speed=[9.0],
        wipe=[True],
        travel_speed=150.0,
    )
    values.update(overrides)
    return PrintConfig(**values)


def make_writer(config: PrintConfig, position=(0.0, 0.0, 0.2), region_config=None) -> GCodeWriter:
    writer = GCodeWriter(config, region_config)
    writer.set_tool(Extruder.from_config(config, 0))
    writer.set_position(np.array(position, dtype=float))
    return writer


def make_wipe(paths, max_length: float = 1000.0, reverse: bool = False) -> Wipe:
    wipe = Wipe()
    wipe.enable(max_length)
    wipe.set_path(paths, reverse)
    return wipe


def move_lines(gcode: str) -> list[str]:
    """Motion lines of a wipe block, without markers and the feed rate line."""
    return [
        ln for ln in gcode.splitlines()
        if ln.startswith(("G1 X", "G2 ", "G3 "))
    ]


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def writer(config):
    return make_writer(config)


@pytest.fixture
def straight_50():
    return [ExtrusionPath.from_points([(0.0, 0.0), (50.0, 0.0)])]
