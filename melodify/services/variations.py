from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from melodify.logging_utils import log_event
from melodify.models import Melody, Note
from melodify.services.music_theory import (
    PITCH_ORDER,
    PITCH_TO_SEMITONE,
    absolute_semitone,
    from_absolute_semitone,
)
from melodify.services.seeded_random import Mulberry32, random_seed

logger = logging.getLogger(__name__)

VARIATION_TYPES = ("ornament", "simplify", "invert", "transpose")
GRACE_DURATION = 0.5
PASSING_DURATION = 1
SIMPLIFY_MIN_DURATION = 2
VARIATION_DESCRIPTIONS = {
    "ornament": "Adds passing tones, neighbor notes, and grace notes for embellishment",
    "simplify": "Reduces complexity by removing short notes and consolidating repeated pitches",
    "invert": "Mirrors the melody around a pivot point, flipping melodic direction",
    "transpose": "Shifts all pitches up or down by a specified interval",
}


@dataclass(frozen=True)
class StylePreset:
    name: str
    description: str
    time_signature: str
    tempo_range: tuple[int, int]
    interval_preferences: tuple[int, ...]
    contour_type: str


@dataclass(frozen=True)
class VariationOptions:
    ornament_probability: float = 0.3
    seed: int | None = None
    invert_pivot: str | None = None
    transpose_semitones: int = 0


@dataclass(frozen=True)
class VariationSummary:
    note_count_change: int
    tempo_change: int
    time_signature_changed: bool

    def describe(self) -> str:
        parts = [f"{self.note_count_change:+d} notes"]
        if self.tempo_change:
            parts.append(f"tempo {self.tempo_change:+d} BPM")
        if self.time_signature_changed:
            parts.append("time signature changed")
        return ", ".join(parts)


DEFAULT_VARIATION_OPTIONS = VariationOptions()

STYLE_PRESETS: dict[str, StylePreset] = {
    "folk": StylePreset(
        name="folk",
        description="Simple, stepwise motion with arch-shaped phrases. Traditional folk song style with accessible melodies.",
        time_signature="4/4",
        tempo_range=(80, 120),
        interval_preferences=(1, 2, 1, 2, 3),
        contour_type="arch",
    ),
    "classical": StylePreset(
        name="classical",
        description="Arched phrases with wider range and balanced structure. Elegant, formal melodic style.",
        time_signature="4/4",
        tempo_range=(60, 140),
        interval_preferences=(1, 2, 3, 4, 5),
        contour_type="arch",
    ),
    "pop": StylePreset(
        name="pop",
        description="Repetitive, hook-based melodies with strong rhythmic feel. Catchy and memorable.",
        time_signature="4/4",
        tempo_range=(100, 140),
        interval_preferences=(1, 1, 2, 2, 3),
        contour_type="wave",
    ),
    "hymn": StylePreset(
        name="hymn",
        description="Block chord feel, suitable for 4-part harmony. Stately, reverent melodic style.",
        time_signature="4/4",
        tempo_range=(60, 90),
        interval_preferences=(1, 2, 3, 2, 1),
        contour_type="descending",
    ),
}


def get_available_presets() -> list[StylePreset]:
    return list(STYLE_PRESETS.values())


def get_preset_by_name(name: str) -> StylePreset | None:
    return STYLE_PRESETS.get(name.strip().lower())


def is_valid_preset_name(name: str) -> bool:
    return get_preset_by_name(name) is not None


def is_valid_variation_type(variation_type: str) -> bool:
    return variation_type in VARIATION_TYPES


def get_variation_description(variation_type: str) -> str:
    return VARIATION_DESCRIPTIONS.get(variation_type, "Unknown variation type")


def _pitch_index(pitch: str) -> int:
    upper = pitch.upper()
    return PITCH_ORDER.index(upper) if upper in PITCH_ORDER else 0


def _pitch_from_index(index: int) -> str:
    return PITCH_ORDER[index % 7]


def _interval(pitch1: str, pitch2: str) -> int:
    return abs(_pitch_index(pitch2) - _pitch_index(pitch1))


def _measure_lyrics(melody: Melody, measure_index: int, note_count: int) -> list[str]:
    row = melody.lyrics[measure_index] if measure_index < len(melody.lyrics) else []
    return [row[i] if i < len(row) else "" for i in range(note_count)]


def _clamp_tempo(tempo: int, tempo_range: tuple[int, int]) -> int:
    low, high = tempo_range
    return max(low, min(high, tempo))


def _reshape_duration(duration: float, preset: StylePreset, rng: Mulberry32) -> float:
    if preset.name == "folk":
        if duration < 1.5:
            return 2
        return min(duration, 4)
    if preset.name == "classical":
        if rng.next() < 0.2:
            return duration * (2 if rng.next() > 0.5 else 0.5)
        return duration
    if preset.name == "pop":
        return min(duration, 2)
    if preset.name == "hymn":
        if duration < 2:
            return 2
        if duration < 4 and rng.next() < 0.3:
            return 4
        return duration
    return duration


def _style_measure(notes: list[Note], preset: StylePreset, rng: Mulberry32) -> list[Note]:
    widest = max(preset.interval_preferences)
    result: list[Note] = []
    for note in notes:
        if note.is_rest:
            result.append(note.model_copy())
            continue
        pitch, octave = note.pitch, note.octave
        previous = result[-1] if result else None
        if previous is not None and not previous.is_rest and _interval(previous.pitch, pitch) > widest:
            direction = 1 if _pitch_index(pitch) > _pitch_index(previous.pitch) else -1
            new_index = _pitch_index(previous.pitch) + direction * rng.pick(preset.interval_preferences)
            pitch = _pitch_from_index(new_index)
            octave = previous.octave
            if new_index >= 7:
                octave += 1
            elif new_index < 0:
                octave -= 1
        result.append(
            Note(pitch=pitch, octave=octave, duration=_reshape_duration(note.duration, preset, rng))
        )
    return result


def apply_style_preset(melody: Melody, preset: StylePreset) -> Melody:
    """Restyle a melody: clamp tempo, pull wide leaps back to preferred intervals, reshape durations.

    The generator is seeded from the melody's shape, so a given melody always
    gets the same styling.
    """
    seed = len(melody.measures) * 1000 + (len(melody.measures[0]) if melody.measures else 0)
    rng = Mulberry32(seed)
    params = melody.params.model_copy(
        update={
            "time_signature": preset.time_signature,
            "tempo": _clamp_tempo(melody.params.tempo, preset.tempo_range),
        }
    )
    styled = Melody(
        params=params,
        measures=[_style_measure(measure, preset, rng) for measure in melody.measures],
        lyrics=[list(row) for row in melody.lyrics],
    )
    log_event(logger, "style_applied", style=preset.name, seed=seed, tempo=params.tempo)
    return styled


def _ornament(melody: Melody, options: VariationOptions) -> Melody:
    probability = options.ornament_probability
    rng = Mulberry32(options.seed if options.seed is not None else random_seed())
    measures: list[list[Note]] = []
    lyrics: list[list[str]] = []

    for m_idx, measure in enumerate(melody.measures):
        row = _measure_lyrics(melody, m_idx, len(measure))
        new_notes: list[Note] = []
        new_lyrics: list[str] = []
        for i, note in enumerate(measure):
            if note.is_rest:
                new_notes.append(note.model_copy())
                new_lyrics.append(row[i])
                continue

            added_grace = False
            if i > 0 and rng.next() < probability * 0.5:
                step = 1 if rng.next() > 0.5 else -1
                new_notes.append(
                    Note(
                        pitch=_pitch_from_index(_pitch_index(note.pitch) + step),
                        octave=note.octave,
                        duration=GRACE_DURATION,
                    )
                )
                new_lyrics.append("")
                added_grace = True

            duration = max(GRACE_DURATION, note.duration - GRACE_DURATION) if added_grace else note.duration
            new_notes.append(note.model_copy(update={"duration": duration}))
            new_lyrics.append(row[i])

            following = measure[i + 1] if i + 1 < len(measure) else None
            if following is not None and not following.is_rest:
                if _interval(note.pitch, following.pitch) >= 3 and rng.next() < probability:
                    direction = 1 if _pitch_index(following.pitch) > _pitch_index(note.pitch) else -1
                    new_notes.append(
                        Note(
                            pitch=_pitch_from_index(_pitch_index(note.pitch) + direction),
                            octave=note.octave,
                            duration=PASSING_DURATION,
                        )
                    )
                    new_lyrics.append("")
        measures.append(new_notes)
        lyrics.append(new_lyrics)

    return Melody(params=melody.params.model_copy(), measures=measures, lyrics=lyrics if melody.lyrics else [])


def _simplify(melody: Melody) -> Melody:
    measures: list[list[Note]] = []
    lyrics: list[list[str]] = []

    for m_idx, measure in enumerate(melody.measures):
        row = _measure_lyrics(melody, m_idx, len(measure))
        new_notes: list[Note] = []
        new_lyrics: list[str] = []
        for i, note in enumerate(measure):
            previous = new_notes[-1] if new_notes else None
            if not note.is_rest and note.duration < 1:
                # Short notes fold into whatever precedes them; a leading one is dropped.
                if previous is not None:
                    new_notes[-1] = previous.model_copy(update={"duration": previous.duration + note.duration})
                continue
            if (
                previous is not None
                and not previous.is_rest
                and previous.pitch == note.pitch
                and previous.octave == note.octave
            ):
                new_notes[-1] = previous.model_copy(update={"duration": previous.duration + note.duration})
                if not new_lyrics[-1] and row[i]:
                    new_lyrics[-1] = row[i]
                continue
            duration = note.duration
            if not note.is_rest and duration < SIMPLIFY_MIN_DURATION:
                duration = SIMPLIFY_MIN_DURATION
            new_notes.append(note.model_copy(update={"duration": duration}))
            new_lyrics.append(row[i])
        measures.append(new_notes)
        lyrics.append(new_lyrics)

    return Melody(params=melody.params.model_copy(), measures=measures, lyrics=lyrics if melody.lyrics else [])


def _map_pitched(melody: Melody, semitone_map) -> list[list[Note]]:
    measures: list[list[Note]] = []
    for measure in melody.measures:
        new_measure: list[Note] = []
        for note in measure:
            if note.is_rest:
                new_measure.append(note.model_copy())
                continue
            pitch, octave = from_absolute_semitone(semitone_map(absolute_semitone(note.pitch, note.octave)))
            new_measure.append(Note(pitch=pitch, octave=octave, duration=note.duration))
        measures.append(new_measure)
    return measures


def _invert(melody: Melody, options: VariationOptions) -> Melody:
    if options.invert_pivot:
        pivot = PITCH_TO_SEMITONE.get(options.invert_pivot.upper(), 0)
    else:
        values = [absolute_semitone(n.pitch, n.octave) for m in melody.measures for n in m if not n.is_rest]
        if not values:
            return melody.model_copy(deep=True)
        pivot = math.floor((min(values) + max(values)) / 2)
    return melody.model_copy(deep=True, update={"measures": _map_pitched(melody, lambda s: 2 * pivot - s)})


def _transpose(melody: Melody, options: VariationOptions) -> Melody:
    shift = options.transpose_semitones
    if shift == 0:
        return melody.model_copy(deep=True)
    direction = "up" if shift > 0 else "down"
    params = melody.params.model_copy(
        update={"title": f"{melody.params.title} (transposed {direction} {abs(shift)} semitones)"}
    )
    return Melody(
        params=params,
        measures=_map_pitched(melody, lambda s: s + shift),
        lyrics=[list(row) for row in melody.lyrics],
    )


def generate_variation(
    melody: Melody,
    variation_type: str,
    options: VariationOptions = DEFAULT_VARIATION_OPTIONS,
) -> Melody:
    """Apply one named variation to a copy of the melody; unknown types return an unchanged copy."""
    if variation_type == "ornament":
        varied = _ornament(melody, options)
    elif variation_type == "simplify":
        varied = _simplify(melody)
    elif variation_type == "invert":
        varied = _invert(melody, options)
    elif variation_type == "transpose":
        varied = _transpose(melody, options)
    else:
        log_event(logger, "variation_type_unknown", level=logging.DEBUG, variation_type=variation_type)
        return melody.model_copy(deep=True)

    log_event(
        logger,
        "variation_generated",
        variation_type=variation_type,
        note_count_change=summarize_variation(melody, varied).note_count_change,
    )
    return varied


def summarize_variation(original: Melody, varied: Melody) -> VariationSummary:
    return VariationSummary(
        note_count_change=sum(len(m) for m in varied.measures) - sum(len(m) for m in original.measures),
        tempo_change=varied.params.tempo - original.params.tempo,
        time_signature_changed=varied.params.time_signature != original.params.time_signature,
    )
