from __future__ import annotations

import logging
from dataclasses import dataclass, field

from melodify.logging_utils import log_event
from melodify.models import CadenceType, Note
from melodify.services.music_theory import (
    DOMINANT,
    LEADING_TONE,
    PITCH_ORDER,
    SCALE_DEGREE_TABLES,
    SUBDOMINANT,
    SUBMEDIANT,
    SUPERTONIC,
    TONIC,
    ScaleDegree,
    is_minor_key,
)

logger = logging.getLogger(__name__)

CADENCE_TYPES = ("perfect", "half", "deceptive", "plagal")
DEFAULT_CADENCE = "perfect"

# (scale degree, duration) triples: approach, middle, final.
CADENCE_DEGREES: dict[str, tuple[tuple[int, float], ...]] = {
    "perfect": ((LEADING_TONE, 1), (DOMINANT, 2), (TONIC, 4)),
    "half": ((SUPERTONIC, 1), (LEADING_TONE, 1), (DOMINANT, 4)),
    "deceptive": ((LEADING_TONE, 1), (DOMINANT, 2), (SUBMEDIANT, 4)),
    "plagal": ((SUBMEDIANT, 1), (SUBDOMINANT, 2), (TONIC, 4)),
}
SHORT_CADENCE_DEGREES: dict[str, tuple[tuple[int, float], ...]] = {
    "perfect": ((DOMINANT, 2), (TONIC, 4)),
    "half": ((SUBDOMINANT, 2), (DOMINANT, 4)),
    "deceptive": ((DOMINANT, 2), (SUBMEDIANT, 4)),
    "plagal": ((SUBDOMINANT, 2), (TONIC, 4)),
}
RESOLUTION_DEGREE = {"perfect": TONIC, "plagal": TONIC, "half": DOMINANT, "deceptive": SUBMEDIANT}
RESOLUTION_NAME = {TONIC: "tonic", DOMINANT: "dominant", SUBMEDIANT: "submediant"}
MIN_RESOLUTION_DURATION = 2
EMOTION_CADENCES = {
    "conclusive": "perfect",
    "suspenseful": "half",
    "surprising": "deceptive",
    "peaceful": "plagal",
}


@dataclass(frozen=True)
class LinePosition:
    line_index: int
    total_lines: int
    is_stanza_end: bool
    is_last_stanza: bool = False


@dataclass
class CadenceValidation:
    valid: bool
    issues: list[str] = field(default_factory=list)


def _degrees_for_key(key: str) -> tuple[ScaleDegree, ...]:
    if key in SCALE_DEGREE_TABLES:
        return SCALE_DEGREE_TABLES[key]
    return SCALE_DEGREE_TABLES["Am" if is_minor_key(key) else "C"]


def get_scale_degree(key: str, degree: int) -> ScaleDegree:
    return _degrees_for_key(key)[degree % 7]


def _note(degree: ScaleDegree, duration: float, base_octave: int) -> Note:
    return Note(pitch=degree.pitch, octave=base_octave + degree.octave, duration=duration)


def _resolve_type(cadence_type: str) -> str:
    if cadence_type in CADENCE_TYPES:
        return cadence_type
    log_event(logger, "cadence_type_unknown", level=logging.DEBUG, cadence_type=cadence_type, fallback=DEFAULT_CADENCE)
    return DEFAULT_CADENCE


def generate_cadence(cadence_type: str, key: str, base_octave: int = 0) -> list[Note]:
    """Three-note cadence (approach, middle, final) built from the key's scale-degree table."""
    steps = CADENCE_DEGREES[_resolve_type(cadence_type)]
    return [_note(get_scale_degree(key, degree), duration, base_octave) for degree, duration in steps]


def generate_short_cadence(cadence_type: str, key: str, base_octave: int = 0) -> list[Note]:
    steps = SHORT_CADENCE_DEGREES[_resolve_type(cadence_type)]
    return [_note(get_scale_degree(key, degree), duration, base_octave) for degree, duration in steps]


def validate_cadence(cadence: list[Note], cadence_type: str, key: str) -> CadenceValidation:
    if not cadence:
        return CadenceValidation(valid=False, issues=["Cadence is empty"])

    issues: list[str] = []
    final = cadence[-1]
    required = RESOLUTION_DEGREE.get(cadence_type)
    if required is not None:
        expected = get_scale_degree(key, required).pitch
        if final.pitch.upper() != expected:
            issues.append(
                f"{cadence_type.capitalize()} cadence should end on {RESOLUTION_NAME[required]} ({expected}), but ends on {final.pitch}"
            )
    if final.duration < MIN_RESOLUTION_DURATION:
        issues.append("Final cadence note should have longer duration for proper resolution")
    return CadenceValidation(valid=not issues, issues=issues)


def determine_line_ending_cadence(position: LinePosition) -> CadenceType:
    if position.is_stanza_end:
        return "perfect"
    total = position.total_lines
    if total >= 4 and position.line_index == total - 2:
        return "deceptive"
    ratio = (position.line_index + 1) / total if total else 0
    if total >= 4 and 0.5 <= ratio < 0.75 and position.line_index % 2 == 1:
        return "plagal"
    return "half"


def _ascending_interval(from_pitch: str, to_pitch: str) -> int:
    if from_pitch.upper() not in PITCH_ORDER or to_pitch.upper() not in PITCH_ORDER:
        return 0
    return (PITCH_ORDER.index(to_pitch.upper()) - PITCH_ORDER.index(from_pitch.upper())) % 7


def _transition_note(previous: Note, target: Note, key: str) -> Note | None:
    if previous.is_rest or _ascending_interval(previous.pitch, target.pitch) < 3:
        return None
    start = PITCH_ORDER.index(previous.pitch.upper())
    end = PITCH_ORDER.index(target.pitch.upper())
    if end > start:
        middle = (start + end) // 2
    else:
        middle = ((start + end + 7) // 2) % 7
    pitch = PITCH_ORDER[middle]
    if not any(d.pitch == pitch for d in _degrees_for_key(key)):
        return None
    return Note(pitch=pitch, octave=previous.octave, duration=1)


def apply_phrase_closure(notes: list[Note], cadence_type: str, key: str = "C") -> list[Note]:
    """Append a cadence to a phrase, bridging wide approaches with one passing note."""
    if not notes:
        return generate_cadence(cadence_type, key)
    last = notes[-1]
    cadence = generate_cadence(cadence_type, key, base_octave=last.octave)
    result = list(notes)
    bridge = _transition_note(last, cadence[0], key)
    if bridge is not None:
        result.append(bridge)
    result.extend(cadence)
    return result


def get_cadence_to_target(target_pitch: str, key: str, base_octave: int = 0) -> list[Note]:
    degrees = _degrees_for_key(key)
    target = Note(pitch=target_pitch.upper(), octave=base_octave, duration=4)
    index = next((i for i, d in enumerate(degrees) if d.pitch == target.pitch), None)
    if index is None:
        return [target]
    if index == TONIC:
        approach = degrees[DOMINANT]
    elif index == DOMINANT:
        approach = degrees[SUBDOMINANT]
    else:
        approach = degrees[(index - 1) % 7]
    return [_note(approach, 2, base_octave), target]


def suggest_cadence_for_emotion(emotion: str) -> CadenceType:
    return EMOTION_CADENCES.get(emotion, DEFAULT_CADENCE)
