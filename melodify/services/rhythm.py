from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from melodify.services.abc_notation import beats_per_measure
from melodify.services.music_theory import measure_units
from melodify.services.seeded_random import Mulberry32

ALLOWED_DURATIONS = (0.5, 1, 2, 3, 4)
# Beat indices (zero-based) that carry metric weight.
STRONG_BEATS = {"4/4": [0, 2], "3/4": [0], "6/8": [0, 3], "2/4": [0]}
BREATH_REST_DURATION = 0.5


@dataclass(frozen=True)
class NoteDuration:
    syllable_index: int
    beats: float
    is_rest: bool = False


@dataclass
class RhythmValidation:
    valid: bool
    issues: list[str] = field(default_factory=list)


def stress_to_duration(stress: int, rng: Mulberry32) -> float:
    """Eighth-note units for one syllable; stressed syllables sometimes get a dotted quarter."""
    if stress == 1:
        return 3 if rng.next() > 0.7 else 2
    if stress == 2:
        return 2
    return 0.5 if rng.next() > 0.8 else 1


def round_to_allowed_duration(value: float) -> float:
    if value < 0.75:
        return 0.5
    if value < 1.5:
        return 1
    if value < 2.5:
        return 2
    if value < 3.5:
        return 3
    return 4


def normalize_line_durations(durations: list[float], time_signature: str) -> list[float]:
    """Scale a line so its total is a whole number of measures, then snap each value."""
    total = sum(durations)
    if total == 0:
        return list(durations)
    units = measure_units(time_signature)
    target = math.ceil(total / units) * units
    factor = target / total
    return [round_to_allowed_duration(d * factor) for d in durations]


def generate_line_rhythm(stresses: list[int], time_signature: str, rng: Mulberry32) -> list[float]:
    return normalize_line_durations([stress_to_duration(s, rng) for s in stresses], time_signature)


def insert_breath_rests(
    durations: list[NoteDuration],
    breath_points: list[int],
    rest_duration: float = BREATH_REST_DURATION,
) -> list[NoteDuration]:
    """Insert a rest after each breath point index, working from the end so indices stay valid."""
    if not durations:
        return []
    result = list(durations)
    for point in sorted(set(breath_points), reverse=True):
        if point < 0 or point >= len(durations):
            continue
        result.insert(point + 1, NoteDuration(syllable_index=-1, beats=rest_duration, is_rest=True))
    return result


def fit_to_measure(
    durations: list[NoteDuration],
    beats_in_measure: float,
    *,
    pad_with_rests: bool = True,
    allow_split_notes: bool = True,
) -> list[NoteDuration]:
    """Make durations respect bar lines.

    A note crossing a bar line is split into a tied pair when splitting is
    allowed and shortened to the bar otherwise. The final measure is padded
    with a rest when requested.
    """
    if not durations:
        return []
    if beats_in_measure <= 0:
        return list(durations)

    result: list[NoteDuration] = []
    position = 0.0
    for item in durations:
        remaining = beats_in_measure - (position % beats_in_measure)
        if item.beats <= remaining:
            result.append(item)
            position += item.beats
        elif allow_split_notes:
            result.append(replace(item, beats=remaining))
            result.append(replace(item, beats=item.beats - remaining))
            position += item.beats
        else:
            result.append(replace(item, beats=remaining))
            position += remaining

    if pad_with_rests:
        leftover = beats_in_measure - (position % beats_in_measure)
        if 0 < leftover < beats_in_measure:
            result.append(NoteDuration(syllable_index=-1, beats=leftover, is_rest=True))
    return result


def total_duration(durations: list[NoteDuration]) -> float:
    return sum(d.beats for d in durations)


def validate_rhythm(durations: list[NoteDuration]) -> RhythmValidation:
    issues: list[str] = []
    for i, item in enumerate(durations):
        if item.beats <= 0:
            issues.append(f"Invalid duration at index {i}: beats must be positive")
        if not item.is_rest and item.syllable_index < 0:
            issues.append(f"Invalid syllable index at index {i}: non-rest notes must have syllable_index >= 0")
        if item.is_rest and item.syllable_index != -1:
            issues.append(f"Rest at index {i} should have syllable_index of -1")
    return RhythmValidation(valid=not issues, issues=issues)


def strong_beats(time_signature: str) -> list[int]:
    return list(STRONG_BEATS.get(time_signature, [0]))


def is_strong_beat(position: float, time_signature: str) -> bool:
    return math.floor(position % beats_per_measure(time_signature)) in strong_beats(time_signature)
