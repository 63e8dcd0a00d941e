from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from melodify.logging_utils import log_event
from melodify.models import AnalyzedLine, ContourShape, Melody, MelodyParams, Note, ParamsOverride, PoemAnalysis
from melodify.services.abc_notation import build_abc_string
from melodify.services.contour import choose_contour_shape, contour_to_pitches, contour_values
from melodify.services.lyric_mapping import line_lyrics
from melodify.services.music_theory import is_minor_key, measure_units, parse_key
from melodify.services.poem_analysis import determine_tempo
from melodify.services.rhythm import generate_line_rhythm
from melodify.services.score_validation import validate_melody
from melodify.services.seeded_random import Mulberry32, random_seed

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Melody"
DEFAULT_NOTE_LENGTH = "1/8"
BREATH_REST_DURATION = 1
STANZA_END_STRETCH = 1.5
LINE_END_STRETCH = 1.25
LINE_END_PITCHES = {"major": ["G", "B"], "minor": ["E", "G"]}
STANZA_TONIC = {"major": ("C", 0), "minor": ("A", -1)}
LEADING_PITCH = {"major": "B", "minor": "G"}
STRUCTURAL_PARAMS = ("time_signature", "key")


@dataclass(frozen=True)
class MelodyOptions:
    seed: int | None = None
    title: str | None = None
    default_note_length: str | None = None
    force_params: dict[str, Any] | None = None
    respect_breath_points: bool = True
    contour: ContourShape | None = None
    logger: logging.Logger | None = None


DEFAULT_MELODY_OPTIONS = MelodyOptions()


@dataclass
class _LinePlan:
    lyrics: list[str]
    stresses: list[int]
    is_stanza_end: bool
    is_line_end: bool = True


def _as_update(params: ParamsOverride | dict[str, Any] | None) -> dict[str, Any]:
    if params is None:
        return {}
    if isinstance(params, ParamsOverride):
        return params.as_update()
    return {k: v for k, v in params.items() if v is not None}


def determine_melody_params(analysis: PoemAnalysis, options: MelodyOptions = DEFAULT_MELODY_OPTIONS) -> MelodyParams:
    """Musical parameters from the analysis suggestions, with forced values winning except for tempo."""
    suggestions = analysis.suggestions
    params = MelodyParams(
        title=options.title or DEFAULT_TITLE,
        time_signature=suggestions.time_signature,
        default_note_length=options.default_note_length or DEFAULT_NOTE_LENGTH,
        tempo=suggestions.tempo,
        key=parse_key(suggestions.key, suggestions.mode),
    )
    forced = _as_update(options.force_params)
    if forced:
        params = params.model_copy(update=forced)
    if not forced.get("tempo"):
        params = params.model_copy(
            update={"tempo": determine_tempo(analysis.mood.arousal, analysis.mood.tempo_range)}
        )
    return params


def _plan_lines(analysis: PoemAnalysis) -> list[_LinePlan]:
    plans: list[_LinePlan] = []
    for stanza in analysis.stanza_lines():
        for i, line in enumerate(stanza):
            plans.append(_plan_line(line, is_stanza_end=i == len(stanza) - 1))
    return plans


def _plan_line(line: AnalyzedLine, is_stanza_end: bool) -> _LinePlan:
    return _LinePlan(
        lyrics=line_lyrics(line.words),
        stresses=[s.stress for w in line.words for s in w.syllables],
        is_stanza_end=is_stanza_end,
    )


def apply_line_cadence(
    notes: list[Note],
    is_line_end: bool,
    is_stanza_end: bool,
    mode: str,
    rng: Mulberry32,
) -> list[Note]:
    """Resolve a stanza's last line to the tonic; leave other lines open on a dominant-chord tone."""
    if not notes:
        return notes
    result = list(notes)
    last = result[-1]
    if is_stanza_end:
        tonic, tonic_octave = STANZA_TONIC[mode]
        result[-1] = last.model_copy(
            update={"pitch": tonic, "octave": tonic_octave, "duration": last.duration * STANZA_END_STRETCH}
        )
        if len(result) >= 2:
            result[-2] = result[-2].model_copy(update={"pitch": LEADING_PITCH[mode], "octave": 0})
    elif is_line_end:
        result[-1] = last.model_copy(
            update={"pitch": rng.pick(LINE_END_PITCHES[mode]), "duration": last.duration * LINE_END_STRETCH}
        )
    return result


def group_into_measures(
    notes: list[Note],
    lyrics: list[str],
    time_signature: str,
) -> tuple[list[list[Note]], list[list[str]]]:
    """Pack notes left to right; a note that would overflow the bar opens the next one."""
    capacity = measure_units(time_signature)
    measures: list[list[Note]] = []
    grouped_lyrics: list[list[str]] = []
    current: list[Note] = []
    current_lyrics: list[str] = []
    filled = 0.0

    for i, note in enumerate(notes):
        if current and filled + note.duration > capacity:
            measures.append(current)
            grouped_lyrics.append(current_lyrics)
            current, current_lyrics, filled = [], [], 0.0
        current.append(note)
        current_lyrics.append(lyrics[i] if i < len(lyrics) else "")
        filled += note.duration

    if current:
        measures.append(current)
        grouped_lyrics.append(current_lyrics)
    return measures, grouped_lyrics


def _empty_melody(params: MelodyParams) -> Melody:
    rest = Note(pitch="z", octave=0, duration=measure_units(params.time_signature))
    return Melody(params=params, measures=[[rest]], lyrics=[[""]])


def generate_melody(analysis: PoemAnalysis, options: MelodyOptions = DEFAULT_MELODY_OPTIONS) -> Melody:
    """Compose a melody for an analysed poem.

    Every random choice comes from one Mulberry32 generator seeded from
    ``options.seed``, so the same analysis and seed always give the same
    melody. Without a seed one is drawn here, once.
    """
    log = options.logger or logger
    seed = options.seed if options.seed is not None else random_seed()
    rng = Mulberry32(seed)
    params = determine_melody_params(analysis, options)
    mode = "minor" if is_minor_key(params.key) else "major"

    plans = _plan_lines(analysis)
    if not any(plan.stresses for plan in plans):
        log_event(log, "melody_generated", seed=seed, measure_count=1, note_count=0, empty=True)
        return _empty_melody(params)

    emotion = analysis.mood.dominant_emotions[0] if analysis.mood.dominant_emotions else "peaceful"
    all_notes: list[Note] = []
    all_lyrics: list[str] = []
    for line_index, plan in enumerate(plans):
        if not plan.stresses:
            continue
        durations = generate_line_rhythm(plan.stresses, params.time_signature, rng)
        shape = options.contour or choose_contour_shape(line_index, len(plans), emotion, rng)
        contour = contour_values(len(plan.stresses), shape, rng)
        pitches = contour_to_pitches(contour, params.key, mode, plan.stresses)
        notes = [
            Note(pitch=pitch, octave=octave, duration=durations[i] or 1)
            for i, (pitch, octave) in enumerate(pitches)
        ]
        notes = apply_line_cadence(notes, plan.is_line_end, plan.is_stanza_end, mode, rng)
        lyrics = list(plan.lyrics)

        if options.respect_breath_points and plan.is_line_end and line_index < len(plans) - 1:
            notes.append(Note(pitch="z", octave=0, duration=BREATH_REST_DURATION))
            lyrics.append("")

        all_notes.extend(notes)
        all_lyrics.extend(lyrics)
        log_event(log, "melody_line_composed", level=logging.DEBUG, line_index=line_index, shape=shape, note_count=len(notes))

    measures, grouped_lyrics = group_into_measures(all_notes, all_lyrics, params.time_signature)
    melody = Melody(params=params, measures=measures, lyrics=grouped_lyrics)

    report = validate_melody(melody)
    if not report.valid:
        log_event(log, "melody_validation_warnings", level=logging.WARNING, diagnostics=report.errors)
    log_event(
        log,
        "melody_generated",
        seed=seed,
        key=params.key,
        time_signature=params.time_signature,
        tempo=params.tempo,
        measure_count=len(measures),
        note_count=len(all_notes),
    )
    return melody


def regenerate_melody(
    analysis: PoemAnalysis,
    seed: int | None = None,
    options: MelodyOptions = DEFAULT_MELODY_OPTIONS,
) -> Melody:
    new_seed = seed if seed is not None else random_seed()
    log_event(options.logger or logger, "melody_regenerated", seed=new_seed)
    return generate_melody(analysis, replace(options, seed=new_seed))


def adjust_melody_params(melody: Melody, params: ParamsOverride | dict[str, Any]) -> Melody:
    """New melody with merged params; a new time signature or key regroups the bars."""
    update = _as_update(params)
    new_params = melody.params.model_copy(update=update)
    structural = any(name in update for name in STRUCTURAL_PARAMS)
    log_event(logger, "melody_params_adjusted", changed=sorted(update), regrouped=structural)
    if not structural:
        return melody.model_copy(deep=True, update={"params": new_params})

    notes = [note.model_copy() for measure in melody.measures for note in measure]
    lyrics = [syllable for measure in melody.lyrics for syllable in measure]
    measures, grouped_lyrics = group_into_measures(notes, lyrics, new_params.time_signature)
    if not melody.lyrics:
        grouped_lyrics = []
    return Melody(params=new_params, measures=measures, lyrics=grouped_lyrics)


def melody_to_abc(melody: Melody) -> str:
    abc = build_abc_string(melody)
    log_event(logger, "abc_generated", measure_count=len(melody.measures), length=len(abc))
    return abc
