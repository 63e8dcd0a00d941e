from __future__ import annotations

import logging
import re

from melodify.logging_utils import log_event
from melodify.models import (
    BreathPoint,
    LinePhraseAnalysis,
    Phrase,
    PhraseBoundary,
    PoemPhraseAnalysis,
    PreprocessedPoem,
    PunctuationMark,
)
from melodify.services.text_preprocess import extract_punctuation, get_all_lines, tokenize_words

logger = logging.getLogger(__name__)

BOUNDARY_PUNCTUATION = {
    ".": "strong",
    "!": "strong",
    "?": "strong",
    ";": "strong",
    "…": "strong",
    ":": "medium",
    "—": "medium",
    "–": "medium",
    ",": "weak",
    "-": "weak",
}
PUNCTUATION_BREATHABILITY = {"strong": 1.0, "medium": 0.7, "weak": 0.4}
STRENGTH_ORDER = {"weak": 0, "medium": 1, "strong": 2}

COORDINATING_CONJUNCTIONS = frozenset({"and", "but", "or", "nor", "for", "yet", "so"})
SUBORDINATING_CONJUNCTIONS = frozenset(
    {
        "although", "because", "before", "after", "while", "when", "where", "if", "unless",
        "until", "though", "since", "as", "whereas", "whenever", "wherever", "whether", "once",
    }
)
PREPOSITIONS = frozenset(
    {
        "in", "on", "at", "by", "to", "for", "with", "from", "of", "into", "onto", "upon",
        "within", "without", "through", "throughout", "across", "along", "among", "between",
        "beside", "besides", "before", "after", "above", "below", "beneath", "under", "over",
        "during", "toward", "towards", "against", "about",
    }
)
RELATIVE_PRONOUNS = frozenset({"who", "whom", "whose", "which", "that", "where", "when"})
DETERMINERS = frozenset({"a", "an", "the", "my", "your", "his", "her", "its", "our", "their"})

TARGET_PHRASE_SYLLABLES = 8
MAX_PHRASE_SYLLABLES = 12
MIN_PHRASE_SYLLABLES = 3
LINE_END_BREATHABILITY = 0.9
BREATH_POINT_THRESHOLD = 0.3

_VOWEL_GROUPS = re.compile(r"[aeiouy]+")
_TERMINAL_PUNCTUATION = re.compile(r"[.!?;:]\s*$")
_LOWERCASE_START = re.compile(r"^\s*[a-z]")


def estimate_syllables(word: str) -> int:
    w = re.sub(r"[^a-z]", "", word.lower())
    if not w:
        return 0
    count = len(_VOWEL_GROUPS.findall(w)) or 1
    if w.endswith("e") and len(w) > 2 and w[-2] not in "aeiouy" and not re.search(r"[lr]e$", w):
        count = max(1, count - 1)
    return max(1, count)


def estimate_total_syllables(words: list[str]) -> int:
    return sum(estimate_syllables(w) for w in words)


def _word_starts(line: str, words: list[str]) -> list[int]:
    """Character offset of each word, scanning left to right."""
    starts: list[int] = []
    lower = line.lower()
    cursor = 0
    for word in words:
        start = lower.find(word.lower(), cursor)
        starts.append(start)
        if start >= 0:
            cursor = start + len(word)
    return starts


def _punctuation_boundaries(line: str, words: list[str], marks: list[PunctuationMark]) -> list[PhraseBoundary]:
    boundaries: list[PhraseBoundary] = []
    for mark in marks:
        strength = BOUNDARY_PUNCTUATION.get(mark.char)
        if strength is None:
            continue
        chars_seen = 0
        for i, word in enumerate(words):
            word_start = line.find(word, chars_seen)
            word_end = word_start + len(word)
            chars_seen = word_end
            if word_start <= mark.position <= word_end + 1:
                boundaries.append(
                    PhraseBoundary(
                        position=i,
                        char_position=mark.position,
                        type="punctuation",
                        strength=strength,
                        trigger=mark.char,
                        breathability=PUNCTUATION_BREATHABILITY[strength],
                    )
                )
                break
    return boundaries


def _conjunction_boundaries(line: str, words: list[str]) -> list[PhraseBoundary]:
    boundaries: list[PhraseBoundary] = []
    for i, (word, start) in enumerate(zip(words, _word_starts(line, words))):
        if i == 0:
            continue
        lower = word.lower()
        for vocabulary, breathability in ((COORDINATING_CONJUNCTIONS, 0.6), (SUBORDINATING_CONJUNCTIONS, 0.65)):
            if lower in vocabulary:
                boundaries.append(
                    PhraseBoundary(
                        position=i - 1,
                        char_position=max(0, start - 1),
                        type="conjunction",
                        strength="medium",
                        trigger=word,
                        breathability=breathability,
                    )
                )
    return boundaries


def _semantic_boundaries(line: str, words: list[str]) -> list[PhraseBoundary]:
    boundaries: list[PhraseBoundary] = []
    for i, (word, start) in enumerate(zip(words, _word_starts(line, words))):
        lower = word.lower()
        if lower in PREPOSITIONS and i > 1 and estimate_total_syllables(words[:i]) >= MIN_PHRASE_SYLLABLES:
            boundaries.append(
                PhraseBoundary(
                    position=i - 1,
                    char_position=max(0, start - 1),
                    type="semantic",
                    strength="weak",
                    trigger=word,
                    breathability=0.35,
                )
            )
        if lower in RELATIVE_PRONOUNS and i > 0:
            boundaries.append(
                PhraseBoundary(
                    position=i - 1,
                    char_position=max(0, start - 1),
                    type="semantic",
                    strength="weak",
                    trigger=word,
                    breathability=0.4,
                )
            )
    return boundaries


def _merge_boundaries(boundaries: list[PhraseBoundary]) -> list[PhraseBoundary]:
    by_position: dict[int, PhraseBoundary] = {}
    for boundary in boundaries:
        existing = by_position.get(boundary.position)
        if existing is None or STRENGTH_ORDER[boundary.strength] > STRENGTH_ORDER[existing.strength]:
            by_position[boundary.position] = boundary
    return list(by_position.values())


def _length_split_boundaries(line: str, words: list[str], existing: list[PhraseBoundary]) -> list[PhraseBoundary]:
    taken = {b.position for b in existing}
    edges = [-1, *sorted(taken), len(words) - 1]
    starts = _word_starts(line, words)
    splits: list[PhraseBoundary] = []

    for left, right in zip(edges, edges[1:]):
        segment_start = left + 1
        segment_end = right
        if estimate_total_syllables(words[segment_start : segment_end + 1]) <= MAX_PHRASE_SYLLABLES:
            continue
        running = 0
        for j in range(segment_start, segment_end):
            running += estimate_syllables(words[j])
            if running >= TARGET_PHRASE_SYLLABLES and j not in taken and segment_end - j >= 2:
                splits.append(
                    PhraseBoundary(
                        position=j,
                        char_position=max(0, starts[j] + len(words[j])),
                        type="length_split",
                        strength="weak",
                        trigger=f"[length>{TARGET_PHRASE_SYLLABLES}]",
                        breathability=0.3,
                    )
                )
                taken.add(j)
                running = 0
    return splits


def detect_phrase_boundaries(line: str) -> list[PhraseBoundary]:
    words = tokenize_words(line)
    if not words:
        return []

    merged = _merge_boundaries(
        [
            *_punctuation_boundaries(line, words, extract_punctuation(line)),
            *_conjunction_boundaries(line, words),
            *_semantic_boundaries(line, words),
        ]
    )
    boundaries = sorted([*merged, *_length_split_boundaries(line, words, merged)], key=lambda b: b.position)

    last = len(words) - 1
    if not any(b.position == last for b in boundaries):
        boundaries.append(
            PhraseBoundary(
                position=last,
                char_position=len(line),
                type="line_break",
                strength="strong",
                trigger="[line end]",
                breathability=LINE_END_BREATHABILITY,
            )
        )
    return boundaries


def extract_phrases(words: list[str], boundaries: list[PhraseBoundary]) -> list[Phrase]:
    phrases: list[Phrase] = []
    start = 0
    for boundary in boundaries:
        end = boundary.position
        if end < start:
            continue
        phrase_words = words[start : end + 1]
        phrases.append(
            Phrase(
                text=" ".join(phrase_words),
                words=phrase_words,
                start_word=start,
                end_word=end,
                syllable_count=estimate_total_syllables(phrase_words),
                ends_at_line_break=boundary.type == "line_break",
            )
        )
        start = end + 1
    return phrases


def detect_enjambment(line: str | None, next_line: str | None) -> bool:
    """True when a line's sense runs on into the next line."""
    if not line or not next_line:
        return False
    if _TERMINAL_PUNCTUATION.search(line):
        return False
    if _LOWERCASE_START.match(next_line):
        return True
    words = tokenize_words(line)
    if not words:
        return False
    last = words[-1].lower()
    return last in PREPOSITIONS or last in COORDINATING_CONJUNCTIONS or last in DETERMINERS


def analyze_line_phrases(line: str, line_index: int = 0, next_line: str | None = None) -> LinePhraseAnalysis:
    words = tokenize_words(line or "")
    if not words:
        return LinePhraseAnalysis(text=line or "", line_index=line_index)
    boundaries = detect_phrase_boundaries(line)
    return LinePhraseAnalysis(
        text=line,
        line_index=line_index,
        boundaries=boundaries,
        phrases=extract_phrases(words, boundaries),
        combine_with_next=detect_enjambment(line, next_line),
    )


def analyze_poem_phrases(poem: PreprocessedPoem) -> PoemPhraseAnalysis:
    lines = get_all_lines(poem)
    analyses = [
        analyze_line_phrases(line, i, lines[i + 1] if i + 1 < len(lines) else None) for i, line in enumerate(lines)
    ]

    major_break_lines = [a.line_index for a in analyses if not a.combine_with_next and a.phrases]
    all_phrases = [p for a in analyses for p in a.phrases]
    average = sum(p.syllable_count for p in all_phrases) / len(all_phrases) if all_phrases else 0.0
    breath_points = [
        BreathPoint(
            line_index=a.line_index,
            word_index=b.position,
            strength=b.strength,
            breathability=b.breathability,
        )
        for a in analyses
        for b in a.boundaries
        if b.breathability >= BREATH_POINT_THRESHOLD
    ]

    log_event(
        logger,
        "phrases_analyzed",
        level=logging.DEBUG,
        line_count=len(analyses),
        major_breaks=len(major_break_lines),
        breath_points=len(breath_points),
    )
    return PoemPhraseAnalysis(
        lines=analyses,
        major_break_lines=major_break_lines,
        average_phrase_length=average,
        breath_points=breath_points,
    )


def suggest_melody_phrase_breaks(analysis: PoemPhraseAnalysis) -> list[int]:
    breaks: list[int] = []
    last_break = -3
    for line_index in analysis.major_break_lines:
        if line_index - last_break >= 2:
            breaks.append(line_index)
            last_break = line_index
    return breaks


def combine_short_phrases(phrases: list[Phrase]) -> list[Phrase]:
    """Fold phrases under three syllables into their neighbour while the pair stays within eight."""
    if len(phrases) <= 1:
        return list(phrases)
    combined: list[Phrase] = []
    pending: Phrase | None = None
    for phrase in phrases:
        if pending is not None:
            if pending.syllable_count + phrase.syllable_count <= TARGET_PHRASE_SYLLABLES:
                pending = Phrase(
                    text=f"{pending.text} {phrase.text}",
                    words=[*pending.words, *phrase.words],
                    start_word=pending.start_word,
                    end_word=phrase.end_word,
                    syllable_count=pending.syllable_count + phrase.syllable_count,
                    ends_at_line_break=phrase.ends_at_line_break,
                )
            else:
                combined.append(pending)
                pending = phrase
        elif phrase.syllable_count < MIN_PHRASE_SYLLABLES and not phrase.ends_at_line_break:
            pending = phrase
        else:
            combined.append(phrase)
    if pending is not None:
        combined.append(pending)
    return combined


def get_best_breath_points(analysis: LinePhraseAnalysis, max_points: int = 3) -> list[PhraseBoundary]:
    return sorted(analysis.boundaries, key=lambda b: b.breathability, reverse=True)[:max_points]
