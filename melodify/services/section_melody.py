from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Literal

from melodify.logging_utils import log_event
from melodify.models import (
    ContourShape,
    Melody,
    Note,
    PoemAnalysis,
    PreprocessedPoem,
    Section,
    SectionType,
    StructureAnalysis,
    VariationType,
)
from melodify.services.composer import (
    BREATH_REST_DURATION,
    DEFAULT_MELODY_OPTIONS,
    MelodyOptions,
    generate_melody,
    group_into_measures,
)
from melodify.services.seeded_random import random_seed
from melodify.services.structure import get_section_for_stanza
from melodify.services.variations import VariationOptions, generate_variation

logger = logging.getLogger(__name__)

MelodySource = Literal["new", "copy", "vary"]

SECTION_INTENSITY = {
    "intro": 0.4,
    "verse": 0.5,
    "chorus": 0.8,
    "bridge": 0.7,
    "refrain": 0.6,
    "outro": 0.3,
}
DEFAULT_INTENSITY = 0.5
BRIDGE_ORNAMENT_PROBABILITY = 0.4
LATE_VERSE_POSITION = 0.7


@dataclass(frozen=True)
class SectionMelodyConfig:
    verse_variation: float = 0.3
    chorus_variation: float = 0.1
    contrasting_bridges: bool = True
    seed: int | None = None


DEFAULT_SECTION_CONFIG = SectionMelodyConfig()


@dataclass(frozen=True)
class StanzaMelodyPlan:
    stanza_index: int
    section_type: SectionType
    source: MelodySource
    source_stanza_index: int | None = None
    variation_type: VariationType | None = None


@dataclass
class SectionMelody:
    stanza_index: int
    section: Section
    melody: Melody
    is_repeat: bool
    source_stanza_index: int | None = None


def get_variation_for_section(
    section_type: str,
    is_repeat: bool,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> VariationType | None:
    """Variation a repeated section gets; first occurrences are never varied."""
    if not is_repeat:
        return None
    if section_type == "chorus":
        return "ornament" if config.chorus_variation > 0 else None
    if section_type == "verse":
        return "ornament" if config.verse_variation > 0.5 else "simplify"
    if section_type == "bridge":
        return "invert" if config.contrasting_bridges else None
    return None


def get_variation_options_for_section(
    section_type: str,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> VariationOptions:
    if section_type == "chorus":
        return VariationOptions(seed=config.seed, ornament_probability=config.chorus_variation * 0.2)
    if section_type == "verse":
        return VariationOptions(seed=config.seed, ornament_probability=config.verse_variation * 0.5)
    if section_type == "bridge":
        return VariationOptions(seed=config.seed, ornament_probability=BRIDGE_ORNAMENT_PROBABILITY)
    return VariationOptions(seed=config.seed)


def apply_section_variation(
    melody: Melody,
    section_type: str,
    is_repeat: bool,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> Melody:
    variation_type = get_variation_for_section(section_type, is_repeat, config)
    if variation_type is None:
        return melody.model_copy(deep=True)
    return generate_variation(melody, variation_type, get_variation_options_for_section(section_type, config))


def create_melody_plan(
    structure: StructureAnalysis,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> list[StanzaMelodyPlan]:
    """Decide per stanza whether to compose, copy or vary.

    The first stanza of every section is composed. Later verses vary it and
    any other repeat copies it.
    """
    plan: list[StanzaMelodyPlan] = []
    for section in structure.sections:
        first = min(section.stanza_indices)
        for stanza_index in section.stanza_indices:
            if stanza_index == first:
                plan.append(StanzaMelodyPlan(stanza_index, section.type, "new"))
            elif section.type == "verse":
                variation = get_variation_for_section(section.type, True, config)
                plan.append(StanzaMelodyPlan(stanza_index, section.type, "vary", first, variation))
            else:
                plan.append(StanzaMelodyPlan(stanza_index, section.type, "copy", first))
    return sorted(plan, key=lambda entry: entry.stanza_index)


def get_suggested_contour(section_type: str, position: float) -> ContourShape:
    """Contour for a section; ``position`` is its place in the poem from 0 to 1."""
    if section_type == "verse":
        return "descending" if position > LATE_VERSE_POSITION else "arch"
    if section_type in ("chorus", "refrain"):
        return "wave"
    if section_type in ("bridge", "intro"):
        return "ascending"
    if section_type == "outro":
        return "descending"
    return "arch"


def is_repeating_section_type(section_type: str) -> bool:
    return section_type in ("chorus", "refrain")


def should_vary_on_repeat(section_type: str) -> bool:
    return section_type == "verse"


def get_section_intensity(section_type: str) -> float:
    return SECTION_INTENSITY.get(section_type, DEFAULT_INTENSITY)


def get_section_label(structure: StructureAnalysis, stanza_index: int) -> str | None:
    section = get_section_for_stanza(structure, stanza_index)
    return section.label if section else None


def stanza_analysis(analysis: PoemAnalysis, stanza_index: int) -> PoemAnalysis:
    """The analysis narrowed to one stanza, ready to compose on its own."""
    stanza = analysis.poem.stanzas[stanza_index]
    poem = PreprocessedPoem(original="\n".join(stanza), stanzas=[stanza], line_count=len(stanza), stanza_count=1)
    return analysis.model_copy(update={"poem": poem, "lines": analysis.stanza_lines()[stanza_index]})


def _refit_lyrics(melody: Melody, syllables: list[str]) -> Melody | None:
    """Put new syllables under a melody's pitched notes; None when the counts differ."""
    pitched = sum(1 for measure in melody.measures for note in measure if not note.is_rest)
    if pitched != len(syllables):
        return None
    remaining = iter(syllables)
    lyrics = [["" if note.is_rest else next(remaining) for note in measure] for measure in melody.measures]
    return melody.model_copy(deep=True, update={"lyrics": lyrics})


def _sung_syllables(melody: Melody) -> list[str]:
    return [
        syllable
        for measure, row in zip(melody.measures, melody.lyrics)
        for note, syllable in zip(measure, row)
        if not note.is_rest
    ]


def compose_section_melodies(
    analysis: PoemAnalysis,
    options: MelodyOptions = DEFAULT_MELODY_OPTIONS,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> list[SectionMelody]:
    """One melody per stanza, reusing and varying tunes across repeated sections.

    Each stanza is seeded from the base seed plus its index, and a copied or
    varied stanza reuses its source stanza's seed. A copy keeps the source
    tune only when the syllables fit it note for note.
    """
    base_seed = options.seed if options.seed is not None else random_seed()
    if config.seed is None:
        config = replace(config, seed=base_seed)
    stanza_count = len(analysis.poem.stanzas)
    composed: dict[int, Melody] = {}
    results: list[SectionMelody] = []

    for entry in create_melody_plan(analysis.structure, config):
        section = get_section_for_stanza(analysis.structure, entry.stanza_index)
        source_index = entry.source_stanza_index if entry.source_stanza_index is not None else entry.stanza_index
        position = entry.stanza_index / (stanza_count - 1) if stanza_count > 1 else 0.0
        stanza_options = replace(options, seed=base_seed + source_index)
        if entry.section_type == "bridge" and config.contrasting_bridges:
            stanza_options = replace(stanza_options, contour=get_suggested_contour("bridge", position))
        own = stanza_analysis(analysis, entry.stanza_index)

        if entry.source == "new":
            melody = generate_melody(own, stanza_options)
        elif entry.source == "copy":
            melody = _refit_lyrics(composed[source_index], _sung_syllables(generate_melody(own, stanza_options)))
            if melody is None:
                melody = generate_melody(own, stanza_options)
        else:
            melody = apply_section_variation(generate_melody(own, stanza_options), entry.section_type, True, config)

        composed[entry.stanza_index] = melody
        results.append(
            SectionMelody(
                stanza_index=entry.stanza_index,
                section=section,
                melody=melody,
                is_repeat=entry.source != "new",
                source_stanza_index=entry.source_stanza_index,
            )
        )
        log_event(
            logger,
            "section_melody_composed",
            level=logging.DEBUG,
            stanza_index=entry.stanza_index,
            section_type=entry.section_type,
            source=entry.source,
        )
    return results


def join_section_melodies(section_melodies: list[SectionMelody], breath_between: bool = True) -> Melody:
    """Stanza melodies in order, rebarred under the first one's params.

    With ``breath_between`` a breath rest separates consecutive stanzas.
    """
    ordered = sorted(section_melodies, key=lambda item: item.stanza_index)
    params = ordered[0].melody.params.model_copy()
    notes: list[Note] = []
    lyrics: list[str] = []
    for position, item in enumerate(ordered):
        if position and breath_between:
            notes.append(Note(pitch="z", octave=0, duration=BREATH_REST_DURATION))
            lyrics.append("")
        for index, measure in enumerate(item.melody.measures):
            row = item.melody.lyrics[index] if index < len(item.melody.lyrics) else []
            notes.extend(measure)
            lyrics.extend(row[i] if i < len(row) else "" for i in range(len(measure)))
    measures, grouped_lyrics = group_into_measures(notes, lyrics, params.time_signature)
    return Melody(params=params, measures=measures, lyrics=grouped_lyrics)


def generate_sectioned_melody(
    analysis: PoemAnalysis,
    options: MelodyOptions = DEFAULT_MELODY_OPTIONS,
    config: SectionMelodyConfig = DEFAULT_SECTION_CONFIG,
) -> Melody:
    """Whole-poem melody built section by section; poems without sections fall back to ``generate_melody``."""
    seed = options.seed if options.seed is not None else random_seed()
    options = replace(options, seed=seed)
    section_melodies = compose_section_melodies(analysis, options, config)
    if not section_melodies:
        return generate_melody(analysis, options)
    melody = join_section_melodies(section_melodies, options.respect_breath_points)
    log_event(
        options.logger or logger,
        "sectioned_melody_generated",
        seed=seed,
        section_count=len(analysis.structure.sections),
        measure_count=len(melody.measures),
    )
    return melody
