from __future__ import annotations

from dataclasses import dataclass

PITCH_ORDER = ["C", "D", "E", "F", "G", "A", "B"]

PITCH_TO_SEMITONE = {
    "C": 0,
    "D": 2,
    "E": 4,
    "F": 5,
    "G": 7,
    "A": 9,
    "B": 11,
}
# Accidentals fold down to the natural below; the melody line is diatonic.
SEMITONE_TO_PITCH = {
    0: "C",
    1: "C",
    2: "D",
    3: "D",
    4: "E",
    5: "F",
    6: "F",
    7: "G",
    8: "G",
    9: "A",
    10: "A",
    11: "B",
}

MAJOR_SCALE = ["C", "D", "E", "F", "G", "A", "B"]
MINOR_SCALE = ["A", "B", "C", "D", "E", "F", "G"]

# Eighth-note units per measure.
MEASURE_UNITS = {"4/4": 8, "3/4": 6, "6/8": 6, "2/4": 4}
DEFAULT_MEASURE_UNITS = 8

MAJOR_KEYS = ("C", "G", "D", "F")
MINOR_KEYS = ("Am", "Em", "Dm")
SUPPORTED_KEYS = MAJOR_KEYS + MINOR_KEYS


@dataclass(frozen=True)
class ScaleDegree:
    pitch: str
    octave: int


# Degrees 0-6 (I..vii in major, i..VII in natural minor) with octave offsets
# relative to the tonic's octave.
SCALE_DEGREE_TABLES: dict[str, tuple[ScaleDegree, ...]] = {
    "C": tuple(ScaleDegree(p, 0) for p in "CDEFGAB"),
    "G": (
        ScaleDegree("G", 0),
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
        ScaleDegree("D", 1),
        ScaleDegree("E", 1),
        ScaleDegree("F", 1),
    ),
    "D": (
        ScaleDegree("D", 0),
        ScaleDegree("E", 0),
        ScaleDegree("F", 0),
        ScaleDegree("G", 0),
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
    ),
    "F": (
        ScaleDegree("F", 0),
        ScaleDegree("G", 0),
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
        ScaleDegree("D", 1),
        ScaleDegree("E", 1),
    ),
    "Am": (
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
        ScaleDegree("D", 1),
        ScaleDegree("E", 1),
        ScaleDegree("F", 1),
        ScaleDegree("G", 1),
    ),
    "Em": (
        ScaleDegree("E", 0),
        ScaleDegree("F", 0),
        ScaleDegree("G", 0),
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
        ScaleDegree("D", 1),
    ),
    "Dm": (
        ScaleDegree("D", 0),
        ScaleDegree("E", 0),
        ScaleDegree("F", 0),
        ScaleDegree("G", 0),
        ScaleDegree("A", 0),
        ScaleDegree("B", 0),
        ScaleDegree("C", 1),
    ),
}

TONIC = 0
SUPERTONIC = 1
MEDIANT = 2
SUBDOMINANT = 3
DOMINANT = 4
SUBMEDIANT = 5
LEADING_TONE = 6


def is_minor_key(key: str) -> bool:
    return key.strip().endswith("m")


def parse_key(key: str | None, mode: str | None = None) -> str:
    """Resolve a key name to one of the supported keys, falling back by mode."""
    cleaned = (key or "").strip()
    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]
    if cleaned in SUPPORTED_KEYS:
        return cleaned
    return "Am" if (mode or "").strip().lower() == "minor" else "C"


def key_base_octave(key: str) -> int:
    return -1 if key == "Am" else 0


def measure_units(time_signature: str) -> int:
    return MEASURE_UNITS.get(time_signature, DEFAULT_MEASURE_UNITS)


def pitch_to_semitone(pitch: str) -> int:
    return PITCH_TO_SEMITONE[pitch.upper()]


def semitone_to_pitch(semitone: int) -> str:
    return SEMITONE_TO_PITCH[semitone % 12]


def absolute_semitone(pitch: str, octave: int) -> int:
    return octave * 12 + pitch_to_semitone(pitch)


def from_absolute_semitone(value: int) -> tuple[str, int]:
    octave, semitone = divmod(value, 12)
    return semitone_to_pitch(semitone), octave
