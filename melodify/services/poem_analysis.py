from __future__ import annotations

import logging

from melodify.logging_utils import log_event
from melodify.models import (
    AnalysisProblem,
    AnalyzedLine,
    MelodySuggestions,
    MeterResult,
    MoodProfile,
    PoemAnalysis,
)
from melodify.services.meter import analyze_multi_line_meter, detect_meter, find_deviations
from melodify.services.phonetics import PhoneticLexicon, default_lexicon, syllabify_word
from melodify.services.phrases import analyze_poem_phrases
from melodify.services.rhyme import analyze_rhymes
from melodify.services.singability import analyze_line_singability
from melodify.services.stress import FOOT_PATTERNS, to_binary_stress
from melodify.services.structure import analyze_structure
from melodify.services.text_preprocess import preprocess_poem, tokenize_words

logger = logging.getLogger(__name__)

TRIPLE_FEET = {"anapest", "dactyl"}
STRESS_DEVIATION_SHARE = 0.3
SYLLABLE_VARIANCE_SHARE = 0.4
NEUTRAL_MOOD = MoodProfile()


def analyze_line(text: str, lexicon: PhoneticLexicon | None = None) -> AnalyzedLine:
    lex = lexicon or default_lexicon()
    words = [syllabify_word(word, lex) for word in tokenize_words(text)]
    stress_pattern = "".join(str(s.stress) for w in words for s in w.syllables)
    return AnalyzedLine(
        text=text,
        words=words,
        stress_pattern=stress_pattern,
        syllable_count=len(stress_pattern),
        singability=analyze_line_singability(words, lex),
        meter=detect_meter(stress_pattern),
    )


def determine_time_signature(meter: MeterResult) -> str:
    if meter.foot_type in TRIPLE_FEET:
        return "6/8"
    if meter.foot_type == "unknown":
        return "4/4"
    return "4/4" if meter.feet_count >= 4 else "2/4"


def determine_tempo(arousal: float, tempo_range: tuple[int, int]) -> int:
    low, high = tempo_range
    return round(low + (high - low) * arousal)


def identify_problems(lines: list[AnalyzedLine], meter: MeterResult) -> list[AnalysisProblem]:
    problems: list[AnalysisProblem] = []
    foot_length = 3 if meter.foot_type in TRIPLE_FEET else 2
    expected_syllables = meter.feet_count * foot_length

    for line_index, line in enumerate(lines):
        if meter.foot_type in FOOT_PATTERNS:
            deviations = find_deviations(to_binary_stress(line.stress_pattern), meter.foot_type)
            if len(deviations) > len(line.stress_pattern) * STRESS_DEVIATION_SHARE:
                problems.extend(
                    AnalysisProblem(
                        type="stress_mismatch",
                        line_index=line_index,
                        position=d.position,
                        severity="medium",
                        message=f"Stress deviation at syllable {d.position + 1} breaks the {meter.foot_type} pattern",
                    )
                    for d in deviations
                )

        problems.extend(
            AnalysisProblem(
                type="singability",
                line_index=line_index,
                position=spot.position,
                severity=spot.severity,
                message=spot.issue,
            )
            for spot in line.singability.problem_spots
            if spot.severity != "low"
        )

        if expected_syllables > 0 and abs(line.syllable_count - expected_syllables) > expected_syllables * SYLLABLE_VARIANCE_SHARE:
            problems.append(
                AnalysisProblem(
                    type="syllable_variance",
                    line_index=line_index,
                    severity="low",
                    message=f"Line has {line.syllable_count} syllables (expected ~{expected_syllables})",
                )
            )
    return problems


def phrase_break_lines(stanza_sizes: list[int]) -> list[int]:
    """Line indices that end a musical phrase: every second line and every stanza end.

    Section changes always fall on stanza ends, so they are covered too.
    """
    breaks: list[int] = []
    line_index = 0
    for size in stanza_sizes:
        for i in range(size):
            if i == size - 1 or (i + 1) % 2 == 0:
                breaks.append(line_index)
            line_index += 1
    return breaks


def build_melody_suggestions(
    meter: MeterResult,
    mood: MoodProfile,
    stanza_sizes: list[int],
) -> MelodySuggestions:
    return MelodySuggestions(
        time_signature=determine_time_signature(meter),
        tempo=max(1, determine_tempo(mood.arousal, mood.tempo_range)),
        key="Am" if mood.mode == "minor" else "C",
        mode=mood.mode,
        phrase_breaks=phrase_break_lines(stanza_sizes),
    )


def analyze_poem(
    text: str,
    lexicon: PhoneticLexicon | None = None,
    mood: MoodProfile | None = None,
) -> PoemAnalysis:
    lex = lexicon or default_lexicon()
    mood = mood or NEUTRAL_MOOD
    poem = preprocess_poem(text)

    stanza_lines = [[analyze_line(line, lex) for line in stanza] for stanza in poem.stanzas]
    lines = [line for stanza in stanza_lines for line in stanza]
    stanza_meters = [analyze_multi_line_meter([line.stress_pattern for line in stanza]) for stanza in stanza_lines]
    meter = analyze_multi_line_meter([line.stress_pattern for line in lines])
    structure = analyze_structure(
        [list(stanza) for stanza in poem.stanzas],
        lex,
        stress_patterns=[[line.stress_pattern for line in stanza] for stanza in stanza_lines],
    )
    stanza_sizes = [len(stanza) for stanza in poem.stanzas]

    analysis = PoemAnalysis(
        poem=poem,
        lines=lines,
        stanza_meters=stanza_meters,
        meter=meter,
        phrases=analyze_poem_phrases(poem),
        structure=structure,
        rhyme=analyze_rhymes([line.text for line in lines], lex, stanza_sizes),
        mood=mood,
        suggestions=build_melody_suggestions(meter.dominant, mood, stanza_sizes),
        problems=identify_problems(lines, meter.dominant),
    )
    log_event(
        logger,
        "poem_analyzed",
        stanza_count=poem.stanza_count,
        line_count=poem.line_count,
        meter_name=meter.dominant.meter_name,
        structure_pattern=structure.structure_pattern,
        rhyme_scheme=analysis.rhyme.scheme,
        problem_count=len(analysis.problems),
    )
    return analysis
