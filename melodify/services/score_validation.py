from __future__ import annotations

from dataclasses import dataclass, field

from melodify.models import VALID_KEYS, VALID_PITCHES, VALID_TIME_SIGNATURES, Melody
from melodify.services.abc_notation import measure_duration
from melodify.services.music_theory import measure_units


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}


def _structural_errors(melody: Melody) -> list[str]:
    errors: list[str] = []
    params = melody.params
    if not params.title:
        errors.append("Title is required")
    if params.tempo <= 0:
        errors.append("Tempo must be positive")
    if params.time_signature not in VALID_TIME_SIGNATURES:
        errors.append(f"Invalid time signature: {params.time_signature}")
    if params.key not in VALID_KEYS:
        errors.append(f"Invalid key signature: {params.key}")
    if not melody.measures:
        errors.append("At least one measure is required")

    for m_idx, measure in enumerate(melody.measures, start=1):
        for n_idx, note in enumerate(measure, start=1):
            if note.pitch.upper() not in VALID_PITCHES:
                errors.append(f"Invalid pitch '{note.pitch}' at measure {m_idx}, note {n_idx}")
            if note.duration <= 0:
                errors.append(f"Invalid duration at measure {m_idx}, note {n_idx}")

    if melody.lyrics and len(melody.lyrics) != len(melody.measures):
        errors.append(f"Lyrics count ({len(melody.lyrics)}) does not match measure count ({len(melody.measures)})")
    return errors


def _capacity_warnings(melody: Melody) -> list[str]:
    capacity = measure_units(melody.params.time_signature)
    warnings: list[str] = []
    for m_idx, measure in enumerate(melody.measures, start=1):
        total = measure_duration(measure)
        if total > capacity + 1e-6:
            warnings.append(f"Measure {m_idx} holds {total:g} units; capacity is {capacity}")
    for m_idx, (measure, lyrics) in enumerate(zip(melody.measures, melody.lyrics), start=1):
        if lyrics and len(lyrics) != len(measure):
            warnings.append(f"Measure {m_idx} has {len(measure)} notes but {len(lyrics)} lyric slots")
    return warnings


def validate_melody(melody: Melody) -> ValidationReport:
    """Structural sanity only; never raises."""
    return ValidationReport(errors=_structural_errors(melody))


def validate_melody_diagnostics(melody: Melody) -> ValidationReport:
    """Structural errors plus advisory warnings about measure capacity and lyric alignment."""
    return ValidationReport(errors=_structural_errors(melody), warnings=_capacity_warnings(melody))
