from __future__ import annotations

import logging
import re
from collections import Counter

from melodify.logging_utils import log_event
from melodify.models import Refrain, RefrainOccurrence, Section, StanzaSimilarity, StructureAnalysis
from melodify.services.meter import string_similarity
from melodify.services.phonetics import PhoneticLexicon, get_stress_pattern
from melodify.services.stress import classify_foot
from melodify.services.text_preprocess import tokenize_words

logger = logging.getLogger(__name__)

CHORUS_SIMILARITY_THRESHOLD = 0.85
REFRAIN_SIMILARITY_THRESHOLD = 0.95
MIN_REFRAIN_OCCURRENCES = 2
MIN_REFRAIN_CHARS = 3
REFRAIN_STANZA_RATIO = 0.5
BRIDGE_SIMILARITY_CEILING = 0.4
BRIDGE_POSITION_RANGE = (0.4, 0.8)
TEXT_WEIGHT = 0.7
METER_WEIGHT = 0.3
FOOT_MATCH_BONUS = 0.1

_PUNCTUATION = re.compile(r"[.,!?;:'\"—–\-()\[\]{}…]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text_for_comparison(text: str) -> str:
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub("", text.lower())).strip()


def line_similarity(line1: str, line2: str) -> float:
    norm1 = normalize_text_for_comparison(line1)
    norm2 = normalize_text_for_comparison(line2)
    if not norm1 or not norm2:
        return 0.0
    if norm1 == norm2:
        return 1.0
    words1 = {w.lower() for w in tokenize_words(norm1)}
    words2 = {w.lower() for w in tokenize_words(norm2)}
    union = words1 | words2
    jaccard = len(words1 & words2) / len(union) if union else 0.0
    return 0.6 * string_similarity(norm1, norm2) + 0.4 * jaccard


def stanza_text_similarity(stanza1: list[str], stanza2: list[str]) -> float:
    if not stanza1 or not stanza2:
        return 0.0
    shorter = min(len(stanza1), len(stanza2))
    ratio = shorter / max(len(stanza1), len(stanza2))
    average = sum(line_similarity(a, b) for a, b in zip(stanza1, stanza2)) / shorter
    return average * (0.7 + 0.3 * ratio)


def stanza_foot_type(stress_patterns: list[str]) -> str:
    counts = Counter(classify_foot(p) for p in stress_patterns)
    counts.pop("unknown", None)
    if not counts:
        return "unknown"
    # Counter preserves first-seen order, so max() keeps the earliest on ties.
    return max(counts, key=lambda foot: counts[foot])


def stanza_meter_similarity(patterns1: list[str], patterns2: list[str]) -> tuple[float, bool]:
    """Average stress-pattern similarity, plus whether the stanzas share a foot type."""
    if not patterns1 or not patterns2:
        return 0.0, False
    shorter = min(len(patterns1), len(patterns2))
    similarity = sum(string_similarity(a, b) for a, b in zip(patterns1, patterns2)) / shorter
    foot1 = stanza_foot_type(patterns1)
    foot_match = foot1 != "unknown" and foot1 == stanza_foot_type(patterns2)
    if foot_match:
        similarity += FOOT_MATCH_BONUS
    return min(1.0, similarity), foot_match


def stanza_stress_patterns(stanza: list[str], lexicon: PhoneticLexicon | None = None) -> list[str]:
    return [get_stress_pattern(tokenize_words(line), lexicon) for line in stanza]


def calculate_stanza_similarity(
    stanzas: list[list[str]],
    i: int,
    j: int,
    stress_patterns: list[list[str]] | None = None,
    lexicon: PhoneticLexicon | None = None,
) -> StanzaSimilarity:
    if stress_patterns is None:
        patterns_i = stanza_stress_patterns(stanzas[i], lexicon)
        patterns_j = stanza_stress_patterns(stanzas[j], lexicon)
    else:
        patterns_i, patterns_j = stress_patterns[i], stress_patterns[j]
    text = stanza_text_similarity(stanzas[i], stanzas[j])
    meter, foot_match = stanza_meter_similarity(patterns_i, patterns_j)
    return StanzaSimilarity(
        stanza1=i,
        stanza2=j,
        overall=TEXT_WEIGHT * text + METER_WEIGHT * meter,
        text=text,
        meter=meter,
        line_count_match=len(stanzas[i]) == len(stanzas[j]),
        foot_type_match=foot_match,
    )


def build_similarity_matrix(
    stanzas: list[list[str]],
    stress_patterns: list[list[str]] | None = None,
    lexicon: PhoneticLexicon | None = None,
) -> list[StanzaSimilarity]:
    patterns = stress_patterns if stress_patterns is not None else [stanza_stress_patterns(s, lexicon) for s in stanzas]
    return [
        calculate_stanza_similarity(stanzas, i, j, patterns)
        for i in range(len(stanzas))
        for j in range(i + 1, len(stanzas))
    ]


def detect_refrains(stanzas: list[list[str]]) -> list[Refrain]:
    exact: dict[str, list[RefrainOccurrence]] = {}
    for si, stanza in enumerate(stanzas):
        for li, line in enumerate(stanza):
            normalized = normalize_text_for_comparison(line)
            if len(normalized) < MIN_REFRAIN_CHARS:
                continue
            exact.setdefault(normalized, []).append(RefrainOccurrence(stanza_index=si, line_index=li, text=line))

    refrains: list[Refrain] = []
    for normalized, occurrences in exact.items():
        stanza_indices = sorted({o.stanza_index for o in occurrences})
        if len(occurrences) >= MIN_REFRAIN_OCCURRENCES and len(stanza_indices) >= MIN_REFRAIN_OCCURRENCES:
            refrains.append(
                Refrain(
                    text=occurrences[0].text,
                    normalized=normalized,
                    occurrences=occurrences,
                    stanza_indices=stanza_indices,
                    is_exact=True,
                )
            )

    known = {r.normalized for r in refrains}
    processed: set[str] = set()
    for si, stanza in enumerate(stanzas):
        for li, line in enumerate(stanza):
            normalized = normalize_text_for_comparison(line)
            if normalized in processed or len(normalized) < MIN_REFRAIN_CHARS:
                continue
            processed.add(normalized)
            similar = [RefrainOccurrence(stanza_index=si, line_index=li, text=line)]
            for sj, other_stanza in enumerate(stanzas):
                for lj, other in enumerate(other_stanza):
                    if (sj, lj) == (si, li) or normalize_text_for_comparison(other) == normalized:
                        continue
                    if line_similarity(line, other) >= REFRAIN_SIMILARITY_THRESHOLD:
                        similar.append(RefrainOccurrence(stanza_index=sj, line_index=lj, text=other))
            stanza_indices = sorted({o.stanza_index for o in similar})
            if (
                len(similar) >= MIN_REFRAIN_OCCURRENCES
                and len(stanza_indices) >= MIN_REFRAIN_OCCURRENCES
                and normalized not in known
            ):
                refrains.append(
                    Refrain(
                        text=line,
                        normalized=normalized,
                        occurrences=similar,
                        stanza_indices=stanza_indices,
                        is_exact=False,
                    )
                )
                known.add(normalized)
    return refrains


def _chorus_groups(similarities: list[StanzaSimilarity]) -> list[tuple[list[int], float]]:
    """Chain similar pairs into groups: a pair joins the first group sharing a stanza."""
    groups: list[tuple[set[int], float]] = []
    for sim in similarities:
        if sim.overall < CHORUS_SIMILARITY_THRESHOLD:
            continue
        for idx, (members, average) in enumerate(groups):
            if sim.stanza1 in members or sim.stanza2 in members:
                groups[idx] = (members | {sim.stanza1, sim.stanza2}, (average + sim.overall) / 2)
                break
        else:
            groups.append(({sim.stanza1, sim.stanza2}, sim.overall))
    return [(sorted(members), average) for members, average in groups if len(members) >= 2]


def _refrain_line_count(stanza_index: int, stanza: list[str], refrains: list[Refrain]) -> int:
    refrain_lines = {
        (o.stanza_index, o.line_index) for r in refrains for o in r.occurrences if o.stanza_index == stanza_index
    }
    return sum(1 for li in range(len(stanza)) if (stanza_index, li) in refrain_lines)


def _average_similarity(stanza_index: int, similarities: list[StanzaSimilarity]) -> float:
    relevant = [s.overall for s in similarities if stanza_index in (s.stanza1, s.stanza2)]
    if not relevant:
        return 0.5
    return sum(relevant) / len(relevant)


def classify_sections(
    stanzas: list[list[str]],
    similarities: list[StanzaSimilarity],
    refrains: list[Refrain],
) -> list[Section]:
    if not stanzas:
        return []
    count = len(stanzas)
    assigned = [False] * count
    sections: list[Section] = []

    for members, average in _chorus_groups(similarities):
        # A stanza chained into an earlier group stays there.
        members = [idx for idx in members if not assigned[idx]]
        if not members:
            continue
        sections.append(
            Section(
                type="chorus",
                stanza_indices=members,
                label="Chorus",
                confidence=max(0.0, min(1.0, average)),
                repeat_of=members[0] if len(members) > 1 else None,
            )
        )
        for idx in members:
            assigned[idx] = True

    for i, stanza in enumerate(stanzas):
        if assigned[i]:
            continue
        ratio = _refrain_line_count(i, stanza, refrains) / len(stanza)
        if ratio > REFRAIN_STANZA_RATIO and len(stanza) >= 2:
            sections.append(Section(type="chorus", stanza_indices=[i], label="Chorus", confidence=min(1.0, ratio)))
            assigned[i] = True

    low, high = BRIDGE_POSITION_RANGE
    for i in range(count):
        if assigned[i] or count <= 2:
            continue
        average = _average_similarity(i, similarities)
        if average < BRIDGE_SIMILARITY_CEILING and low < i / count < high:
            sections.append(Section(type="bridge", stanza_indices=[i], label="Bridge", confidence=1 - average))
            assigned[i] = True

    unassigned = [i for i in range(count) if not assigned[i]]
    for i in unassigned:
        best = max(
            (
                s.overall
                for s in similarities
                if i in (s.stanza1, s.stanza2) and s.stanza1 in unassigned and s.stanza2 in unassigned
            ),
            default=0.0,
        )
        sections.append(
            Section(
                type="verse",
                stanza_indices=[i],
                label="Verse",
                confidence=max(0.0, min(1.0, best)) if best > 0 else 0.5,
            )
        )

    sections.sort(key=lambda s: s.stanza_indices[0])
    verse_number = 0
    for section in sections:
        if section.type == "verse":
            verse_number += 1
            section.label = f"Verse {verse_number}"
    return sections


def generate_structure_pattern(sections: list[Section], stanza_count: int) -> str:
    if stanza_count == 0 or not sections:
        return ""
    section_for = {idx: section for section in sections for idx in section.stanza_indices}
    letters: dict[str, str] = {}
    chorus_letter: str | None = None
    next_letter = ord("A")
    pattern: list[str] = []

    for i in range(stanza_count):
        section = section_for.get(i)
        if section is None:
            pattern.append("?")
            continue
        if section.type == "chorus":
            key = f"chorus-{section.stanza_indices[0]}"
        elif section.type == "bridge":
            key = f"bridge-{i}"
        else:
            key = f"verse-{i}"

        if key not in letters:
            if section.type == "chorus" and chorus_letter is not None:
                letters[key] = chorus_letter
            else:
                letters[key] = chr(next_letter)
                next_letter += 1
                if section.type == "chorus":
                    chorus_letter = letters[key]
        pattern.append(letters[key])
    return "".join(pattern)


def _summary(sections: list[Section], refrains: list[Refrain], verse_chorus: bool) -> str:
    counts = Counter(s.type for s in sections)
    parts: list[str] = []
    if verse_chorus:
        parts.append("Verse/chorus structure detected")
    elif counts["verse"]:
        parts.append("Verse-based structure")
    if counts["verse"]:
        parts.append(f"{counts['verse']} verse{'s' if counts['verse'] > 1 else ''}")
    if counts["chorus"]:
        parts.append(f"{counts['chorus']} chorus section{'s' if counts['chorus'] > 1 else ''}")
    if counts["bridge"]:
        parts.append(f"{counts['bridge']} bridge")
    if refrains:
        parts.append(f"{len(refrains)} refrain line{'s' if len(refrains) > 1 else ''}")
    return ", ".join(parts) or "No clear structure detected"


def analyze_structure(
    stanzas: list[list[str]],
    lexicon: PhoneticLexicon | None = None,
    stress_patterns: list[list[str]] | None = None,
) -> StructureAnalysis:
    if not stanzas:
        return StructureAnalysis(summary="No stanzas to analyze")
    if len(stanzas) == 1:
        return StructureAnalysis(
            sections=[Section(type="verse", stanza_indices=[0], label="Verse 1", confidence=1.0)],
            structure_pattern="A",
            summary="Single stanza poem",
        )

    similarities = build_similarity_matrix(stanzas, stress_patterns, lexicon)
    refrains = detect_refrains(stanzas)
    sections = classify_sections(stanzas, similarities, refrains)
    pattern = generate_structure_pattern(sections, len(stanzas))
    types = {s.type for s in sections}
    verse_chorus = "chorus" in types and "verse" in types

    log_event(
        logger,
        "structure_analyzed",
        level=logging.DEBUG,
        stanza_count=len(stanzas),
        structure_pattern=pattern,
        refrain_count=len(refrains),
    )
    return StructureAnalysis(
        sections=sections,
        refrains=refrains,
        similarities=similarities,
        has_verse_chorus_structure=verse_chorus,
        structure_pattern=pattern,
        summary=_summary(sections, refrains, verse_chorus),
    )


def get_section_for_stanza(analysis: StructureAnalysis, stanza_index: int) -> Section | None:
    return next((s for s in analysis.sections if stanza_index in s.stanza_indices), None)


def get_section_type(analysis: StructureAnalysis, stanza_index: int) -> str:
    section = get_section_for_stanza(analysis, stanza_index)
    return section.type if section else "verse"


def is_repeat_section(analysis: StructureAnalysis, stanza_index: int) -> bool:
    section = get_section_for_stanza(analysis, stanza_index)
    return section is not None and section.stanza_indices[0] != stanza_index


def is_section_transition(analysis: StructureAnalysis, stanza_index: int) -> bool:
    """True when the stanza starts a different section from the one before it."""
    if stanza_index <= 0:
        return False
    current = get_section_for_stanza(analysis, stanza_index)
    previous = get_section_for_stanza(analysis, stanza_index - 1)
    return current is not previous
