from __future__ import annotations

from fractions import Fraction

from melodify.models import VALID_KEYS, VALID_TIME_SIGNATURES, Melody, MelodyParams, Note

NATURAL_PITCHES = ("C", "D", "E", "F", "G", "A", "B")
REST_PITCHES = ("z", "Z")
EMPTY_MEASURE = "z8"
DEFAULT_LENGTH_DENOMINATORS = {"1/8": 8, "1/4": 4, "1/16": 16}
BEATS_PER_MEASURE = {"4/4": 4, "3/4": 3, "6/8": 6, "2/4": 2}
MAX_FRACTION_DENOMINATOR = 100


class NotationError(ValueError):
    pass


def generate_header(params: MelodyParams) -> str:
    if params.tempo <= 0:
        raise NotationError(f"Invalid tempo: {params.tempo}. Tempo must be positive.")
    if params.time_signature not in VALID_TIME_SIGNATURES:
        raise NotationError(f"Unsupported time signature: {params.time_signature}.")
    if params.key not in VALID_KEYS:
        raise NotationError(f"Unsupported key: {params.key}.")
    return "\n".join(
        [
            "X:1",
            f"T:{params.title}",
            f"M:{params.time_signature}",
            f"L:{params.default_note_length}",
            f"Q:1/4={params.tempo}",
            f"K:{params.key}",
        ]
    )


def pitch_to_abc(pitch: str, octave: int) -> str:
    """Encode a pitch letter and octave offset; octave 0 is the uppercase middle register.

    Octaves -1 and -2 take one comma per octave. Below that the comma count is
    one less than the octave magnitude, so -2 and -3 both encode as two commas.
    """
    if pitch in REST_PITCHES:
        return "z"
    letter = pitch.upper()
    if letter not in NATURAL_PITCHES:
        raise NotationError(f"Invalid pitch: {pitch}. Must be one of {', '.join(NATURAL_PITCHES)} or 'z' for rest.")
    if octave == 0:
        return letter
    if octave > 0:
        return letter.lower() + "'" * (octave - 1)
    if octave >= -2:
        return letter + "," * abs(octave)
    # Below -2 the comma count trails the octave by one.
    return letter + "," * (abs(octave) - 1)


def duration_to_abc(duration: float, default_length: str = "1/8") -> str:
    """Suffix for a duration expressed in multiples of the default note length."""
    if duration <= 0:
        raise NotationError(f"Invalid duration: {duration}. Duration must be positive.")
    if duration == 1:
        return ""
    if duration < 1:
        reciprocal = 1 / duration
        if abs(reciprocal - round(reciprocal)) < 1e-9:
            return f"/{round(reciprocal)}"
    elif float(duration).is_integer():
        return str(int(duration))
    if duration == 1.5:
        return "3/2"
    fraction = Fraction(duration).limit_denominator(MAX_FRACTION_DENOMINATOR)
    if fraction.denominator == 1:
        return str(fraction.numerator)
    return f"{fraction.numerator}/{fraction.denominator}"


def build_measure(notes: list[Note], default_length: str = "1/8") -> str:
    if not notes:
        return EMPTY_MEASURE
    return " ".join(f"{pitch_to_abc(n.pitch, n.octave)}{duration_to_abc(n.duration, default_length)}" for n in notes)


def add_lyrics(abc: str, lyrics: list[list[str]]) -> str:
    """Insert a ``w:`` line, one ``|``-separated group per measure, after the music line."""
    if not lyrics or not any(syllable for measure in lyrics for syllable in measure):
        return abc
    lyric_line = "w: " + " | ".join(" ".join(measure) for measure in lyrics)
    out: list[str] = []
    for line in abc.split("\n"):
        out.append(line)
        if line.startswith("|"):
            out.append(lyric_line)
    return "\n".join(out)


def build_abc_string(melody: Melody) -> str:
    header = generate_header(melody.params)
    measures = [build_measure(m, melody.params.default_note_length) for m in melody.measures]
    music_line = "|" + "|".join(measures) + "|]" if measures else ""
    return add_lyrics(f"{header}\n{music_line}", melody.lyrics)


def beats_per_measure(time_signature: str) -> int:
    if time_signature in BEATS_PER_MEASURE:
        return BEATS_PER_MEASURE[time_signature]
    top, sep, _bottom = time_signature.partition("/")
    if sep and top.strip().isdigit():
        return int(top)
    return 4


def default_length_denominator(default_length: str) -> int:
    return DEFAULT_LENGTH_DENOMINATORS.get(default_length, 8)


def measure_duration(notes: list[Note]) -> float:
    return sum(n.duration for n in notes)
