from __future__ import annotations

import logging
import re

import pronouncing

from melodify.logging_utils import log_event
from melodify.models import InternalRhyme, RhymeAnalysis, RhymeGroup, RhymeType
from melodify.services.phonetics import PhoneticLexicon, base_phoneme, default_lexicon

logger = logging.getLogger(__name__)

SLANT_SIMILARITY = 0.6
PARTIAL_VOWEL_SIMILARITY = 0.4
SAME_CLASS_CREDIT = 0.3
LENGTH_PENALTY = 0.5
RHYME_QUALITY = {"perfect": 1.0, "slant": 0.75, "assonance": 0.5, "consonance": 0.5, "none": 0.0}
RHYME_FORMS = {
    "AA": "couplet",
    "AABB": "couplets",
    "AABBCC": "couplets",
    "AABBCCDD": "couplets",
    "ABAB": "alternate",
    "ABCABC": "alternate",
    "ABBA": "enclosed",
    "ABBAABBA": "enclosed (octave)",
    "ABABCDCD": "alternate",
    "ABABCDCDEFEFGG": "Shakespearean sonnet",
    "ABBAABBACDECDE": "Petrarchan sonnet",
    "ABBAABBACDCDCD": "Petrarchan sonnet",
    "AAB": "triplet with tail",
    "ABA": "interlocking",
    "ABAAB": "limerick",
}

_TRAILING_PUNCTUATION = re.compile(r"[.,!?;:'\"()\[\]{}—–\-]+$")
_NON_WORD = re.compile(r"[^a-zA-Z']")
_WORD_TOKEN = re.compile(r"[a-zA-Z']+")


def get_rhyming_part(phonemes: list[str], lexicon: PhoneticLexicon) -> list[str]:
    """Phonemes from the last stressed vowel on; falls back to the last vowel of an unstressed word."""
    if not phonemes:
        return []
    part = pronouncing.rhyming_part(" ".join(phonemes)).split()
    if part and lexicon.is_vowel(part[0]):
        return part
    vowels = [i for i, phoneme in enumerate(phonemes) if lexicon.is_vowel(phoneme)]
    return list(phonemes[vowels[-1] :]) if vowels else []


def phonetic_similarity(part1: list[str], part2: list[str], lexicon: PhoneticLexicon) -> float:
    if not part1 or not part2:
        return 0.0
    norm1 = [base_phoneme(p) for p in part1]
    norm2 = [base_phoneme(p) for p in part2]
    longest = max(len(norm1), len(norm2))
    shortest = min(len(norm1), len(norm2))

    score = 0.0
    for a, b in zip(norm1, norm2):
        if a == b:
            score += 1.0
        elif lexicon.is_vowel(a) == lexicon.is_vowel(b):
            score += SAME_CLASS_CREDIT
    score = max(0.0, score - (longest - shortest) * LENGTH_PENALTY)
    return score / longest


def classify_rhyme(word1: str, word2: str, lexicon: PhoneticLexicon | None = None) -> RhymeType:
    lex = lexicon or default_lexicon()
    part1 = get_rhyming_part(lex.lookup_word(word1), lex)
    part2 = get_rhyming_part(lex.lookup_word(word2), lex)
    if not part1 or not part2:
        return "none"

    norm1 = [base_phoneme(p) for p in part1]
    norm2 = [base_phoneme(p) for p in part2]
    if norm1 == norm2:
        return "perfect"

    vowels1 = [p for p in norm1 if lex.is_vowel(p)]
    vowels2 = [p for p in norm2 if lex.is_vowel(p)]
    consonants1 = [p for p in norm1 if lex.is_consonant(p)]
    consonants2 = [p for p in norm2 if lex.is_consonant(p)]
    vowels_match = vowels1 == vowels2
    consonants_match = consonants1 == consonants2
    if vowels_match and not consonants_match and vowels1:
        return "assonance"
    if consonants_match and not vowels_match and consonants1:
        return "consonance"

    similarity = phonetic_similarity(part1, part2, lex)
    if similarity >= SLANT_SIMILARITY:
        return "slant"
    if similarity >= PARTIAL_VOWEL_SIMILARITY and set(vowels1) & set(vowels2):
        return "slant"
    return "none"


def words_rhyme(word1: str, word2: str, lexicon: PhoneticLexicon | None = None) -> bool:
    return classify_rhyme(word1, word2, lexicon) != "none"


def get_rhyme_quality_score(word1: str, word2: str, lexicon: PhoneticLexicon | None = None) -> float:
    return RHYME_QUALITY[classify_rhyme(word1, word2, lexicon)]


def get_last_word(line: str) -> str:
    words = _TRAILING_PUNCTUATION.sub("", line.strip()).split()
    if not words:
        return ""
    return _NON_WORD.sub("", words[-1]).lower()


def _label(index: int) -> str:
    return chr(ord("A") + index)


def detect_rhyme_scheme(lines: list[str], lexicon: PhoneticLexicon | None = None) -> str:
    """Letter per line; a line joins the first earlier group holding any word it rhymes with.

    Lines with no end word always take a fresh letter.
    """
    lex = lexicon or default_lexicon()
    groups: dict[str, list[str]] = {}
    labels: list[str] = []
    next_index = 0

    for word in (get_last_word(line) for line in lines):
        label = None
        if word:
            label = next(
                (name for name, words in groups.items() if any(words_rhyme(word, other, lex) for other in words)),
                None,
            )
        if label is None:
            label = _label(next_index)
            next_index += 1
            if word:
                groups[label] = [word]
        else:
            groups[label].append(word)
        labels.append(label)
    return "".join(labels)


def find_internal_rhymes(line: str, line_index: int = 0, lexicon: PhoneticLexicon | None = None) -> list[InternalRhyme]:
    """Rhyming word pairs inside a line; the end word only pairs with the opening word."""
    lex = lexicon or default_lexicon()
    tokens = [(m.group(0).lower(), m.start()) for m in _WORD_TOKEN.finditer(line)]
    if len(tokens) < 2:
        return []
    last = len(tokens) - 1

    found: list[InternalRhyme] = []
    for i in range(len(tokens)):
        for j in range(i + 1, len(tokens)):
            (word1, pos1), (word2, pos2) = tokens[i], tokens[j]
            if word1 == word2 or (j == last and i > 0):
                continue
            if words_rhyme(word1, word2, lex):
                found.append(InternalRhyme(line_index=line_index, positions=(pos1, pos2), words=(word1, word2)))
    return found


def rhyme_density(line: str, lexicon: PhoneticLexicon | None = None) -> float:
    lex = lexicon or default_lexicon()
    words = [m.group(0).lower() for m in _WORD_TOKEN.finditer(line)]
    if len(words) < 2:
        return 0.0
    pairs = [(a, b) for i, a in enumerate(words) for b in words[i + 1 :]]
    rhyming = sum(1 for a, b in pairs if a != b and words_rhyme(a, b, lex))
    return rhyming / len(pairs)


def identify_rhyme_form(scheme: str) -> str:
    if not scheme:
        return "none"
    if scheme in RHYME_FORMS:
        return RHYME_FORMS[scheme]
    length = len(scheme)
    if length % 2 == 0 and all(scheme[i] == scheme[i + 1] for i in range(0, length, 2)):
        return "couplets"
    if length >= 4 and scheme[: length // 2] == scheme[length // 2 :]:
        return "repeating pattern"
    # Terza rima: the middle line of each tercet opens the next one.
    if length >= 9 and length % 3 == 0 and all(scheme[i - 2] == scheme[i] for i in range(3, length, 3)):
        return "terza rima"

    ratio = len(set(scheme)) / length
    if ratio > 0.9:
        return "free verse (minimal rhyme)"
    if ratio > 0.7:
        return "loose rhyme"
    if ratio > 0.5:
        return "moderate rhyme"
    return "dense rhyme"


def _build_groups(lines: list[str], scheme: str, lexicon: PhoneticLexicon) -> list[RhymeGroup]:
    end_words = [get_last_word(line) for line in lines]
    members: dict[str, list[int]] = {}
    for index, label in enumerate(scheme):
        members.setdefault(label, []).append(index)

    groups: list[RhymeGroup] = []
    for label, indices in members.items():
        words = [end_words[i] for i in indices]
        rhyme_type: RhymeType = "none"
        if len(indices) >= 2:
            rhyme_type = classify_rhyme(words[0], words[1], lexicon)
            if rhyme_type == "none":
                rhyme_type = "slant"
        groups.append(RhymeGroup(label=label, lines=indices, rhyme_type=rhyme_type, end_words=words))
    return groups


def analyze_rhymes(
    lines: list[str],
    lexicon: PhoneticLexicon | None = None,
    stanza_sizes: list[int] | None = None,
) -> RhymeAnalysis:
    """Rhyme scheme over all lines, per-stanza schemes, rhyme groups and internal rhymes."""
    lex = lexicon or default_lexicon()
    if not lines:
        return RhymeAnalysis()

    scheme = detect_rhyme_scheme(lines, lex)
    stanza_schemes: list[str] = []
    cursor = 0
    for size in stanza_sizes or [len(lines)]:
        stanza_schemes.append(detect_rhyme_scheme(lines[cursor : cursor + size], lex))
        cursor += size

    internal = [rhyme for i, line in enumerate(lines) for rhyme in find_internal_rhymes(line, i, lex)]
    analysis = RhymeAnalysis(
        scheme=scheme,
        stanza_schemes=stanza_schemes,
        groups=_build_groups(lines, scheme, lex),
        internal_rhymes=internal,
        form=identify_rhyme_form(scheme),
    )
    log_event(
        logger,
        "rhymes_analyzed",
        level=logging.DEBUG,
        scheme=scheme,
        form=analysis.form,
        internal_rhyme_count=len(internal),
    )
    return analysis
