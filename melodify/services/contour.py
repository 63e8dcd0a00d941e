from __future__ import annotations

import math

from melodify.models import ContourShape
from melodify.services.music_theory import MAJOR_SCALE, MINOR_SCALE, key_base_octave
from melodify.services.seeded_random import Mulberry32

CONTOUR_FLOOR = 0
CONTOUR_CEILING = 6
# Contour height the shapes are drawn against before jitter.
SHAPE_HEIGHT = 4
FALLING_EMOTIONS = {"sad", "peaceful"}
RISING_EMOTIONS = {"hopeful", "happy"}


def choose_contour_shape(line_index: int, total_lines: int, emotion: str, rng: Mulberry32) -> ContourShape:
    if line_index == 0:
        return "ascending" if rng.next() > 0.5 else "arch"
    if line_index == total_lines - 1:
        return "descending"
    shapes = ["arch", "wave"]
    if emotion in FALLING_EMOTIONS:
        shapes.append("descending")
    if emotion in RISING_EMOTIONS:
        shapes.append("ascending")
    return rng.pick(shapes)


def _shape_values(length: int, shape: str) -> list[int]:
    if shape == "arch":
        peak = math.floor(length * 0.6)
        values = []
        for i in range(length):
            if i < peak:
                values.append(math.floor(i / peak * SHAPE_HEIGHT))
            else:
                remaining = length - peak
                values.append(math.floor(SHAPE_HEIGHT - (i - peak) / remaining * SHAPE_HEIGHT))
        return values
    span = (length - 1) or 1
    if shape == "descending":
        return [math.floor(SHAPE_HEIGHT - i / span * SHAPE_HEIGHT) for i in range(length)]
    if shape == "ascending":
        return [math.floor(i / span * SHAPE_HEIGHT) for i in range(length)]
    if shape == "wave":
        return [math.floor(math.sin(i / length * 2 * math.pi) * 2 + 2) for i in range(length)]
    raise ValueError(f"Unknown contour shape: {shape}")


def contour_values(length: int, shape: str, rng: Mulberry32) -> list[int]:
    """Scale-degree heights 0-6 for one line, with one seeded +-1 step of jitter per note."""
    return [
        max(CONTOUR_FLOOR, min(CONTOUR_CEILING, value + rng.next_int(-1, 1)))
        for value in _shape_values(length, shape)
    ]


def contour_to_pitches(contour: list[int], key: str, mode: str, stresses: list[int]) -> list[tuple[str, int]]:
    scale = MINOR_SCALE if mode == "minor" else MAJOR_SCALE
    base_octave = key_base_octave(key)
    pitches: list[tuple[str, int]] = []
    for i, value in enumerate(contour):
        stress = stresses[i] if i < len(stresses) else 0
        index = min(value, len(scale) - 1)
        # Primary stress lifts the note a degree, short of the top two.
        if stress == 1 and index < len(scale) - 2:
            index += 1
        octave = base_octave
        if value > 4:
            octave += 1
        if value < 1:
            octave -= 1
        pitches.append((scale[index], octave))
    return pitches
