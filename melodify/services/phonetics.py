from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Protocol

import pronouncing

from melodify.logging_utils import log_event
from melodify.models import Syllable, SyllabifiedWord

logger = logging.getLogger(__name__)

ARPABET_VOWELS = frozenset(
    {"AA", "AE", "AH", "AO", "AW", "AY", "EH", "ER", "EY", "IH", "IY", "OW", "OY", "UH", "UW"}
)

_STRESS_DIGIT_RE = re.compile(r"[012]$")
_WORD_CLEAN_RE = re.compile(r"[^a-z']")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")


class PhoneticLexicon(Protocol):
    def lookup_word(self, word: str) -> list[str]: ...

    def is_vowel(self, phoneme: str) -> bool: ...

    def is_consonant(self, phoneme: str) -> bool: ...


def base_phoneme(phoneme: str) -> str:
    return _STRESS_DIGIT_RE.sub("", phoneme.upper())


def phoneme_stress(phoneme: str) -> int | None:
    if phoneme and phoneme[-1] in "012":
        return int(phoneme[-1])
    return None


class ArpabetLexicon:
    """ARPAbet vowel/consonant classification; subclasses supply ``lookup_word``."""

    def is_vowel(self, phoneme: str) -> bool:
        return base_phoneme(phoneme) in ARPABET_VOWELS

    def is_consonant(self, phoneme: str) -> bool:
        return bool(phoneme) and not self.is_vowel(phoneme)


class CmuLexicon(ArpabetLexicon):
    """CMU Pronouncing Dictionary lookups through ``pronouncing``."""

    def lookup_word(self, word: str) -> list[str]:
        cleaned = clean_word(word)
        if not cleaned:
            return []
        return list(_cmu_phones(cleaned))


class DictLexicon(ArpabetLexicon):
    """In-memory lexicon keyed by lowercase word, used for fixtures and overrides."""

    def __init__(self, entries: dict[str, list[str]]):
        self._entries = {clean_word(word): list(phones) for word, phones in entries.items()}

    def lookup_word(self, word: str) -> list[str]:
        return list(self._entries.get(clean_word(word), []))


@lru_cache(maxsize=4096)
def _cmu_phones(word: str) -> tuple[str, ...]:
    candidates = pronouncing.phones_for_word(word)
    if not candidates and "'" in word:
        candidates = pronouncing.phones_for_word(word.replace("'", ""))
    if not candidates:
        return ()
    return tuple(candidates[0].split())


_default_lexicon: PhoneticLexicon | None = None


def default_lexicon() -> PhoneticLexicon:
    global _default_lexicon
    if _default_lexicon is None:
        _default_lexicon = CmuLexicon()
    return _default_lexicon


def clean_word(word: str) -> str:
    return _WORD_CLEAN_RE.sub("", word.lower()).strip("'")


def estimate_syllable_count(word: str) -> int:
    w = re.sub(r"[^a-z]", "", word.lower())
    if not w:
        return 0
    count = len(_VOWEL_GROUP_RE.findall(w)) or 1
    if count > 1 and w.endswith("e") and not w.endswith("le"):
        count -= 1
    if count > 1 and w.endswith("ed") and len(w) > 3 and w[-3] not in "td":
        count -= 1
    return max(1, count)


def estimate_stress_pattern(syllable_count: int) -> str:
    if syllable_count <= 0:
        return ""
    if syllable_count == 1:
        return "1"
    if syllable_count == 2:
        return "10"
    if syllable_count == 3:
        return "100"
    return "".join("0" if i % 2 == 0 else "1" for i in range(syllable_count))


def build_syllables(phonemes: list[str], lexicon: PhoneticLexicon | None = None) -> list[Syllable]:
    """Group a phoneme sequence into syllables, one per vowel.

    A single consonant between two vowels opens the next syllable; with two or
    more, the first closes the current syllable and the rest form the next
    onset. Consonants before the first vowel and after the last stay with the
    first and last syllable respectively.
    """
    lex = lexicon or default_lexicon()
    vowel_positions = [i for i, p in enumerate(phonemes) if lex.is_vowel(p)]
    if not vowel_positions:
        return []

    starts = [0]
    for prev, nxt in zip(vowel_positions, vowel_positions[1:]):
        between = nxt - prev - 1
        starts.append(prev + 1 + (1 if between >= 2 else 0))
    ends = starts[1:] + [len(phonemes)]

    syllables: list[Syllable] = []
    for start, end, vowel_at in zip(starts, ends, vowel_positions):
        chunk = list(phonemes[start:end])
        vowel = phonemes[vowel_at]
        stress = phoneme_stress(vowel) or 0
        syllables.append(
            Syllable(
                phonemes=chunk,
                stress=stress,
                vowel_phoneme=vowel,
                is_open=end - 1 == vowel_at,
            )
        )
    return syllables


def syllabify_word(word: str, lexicon: PhoneticLexicon | None = None) -> SyllabifiedWord:
    lex = lexicon or default_lexicon()
    phonemes = lex.lookup_word(word)
    syllables = build_syllables(phonemes, lex) if phonemes else []
    if syllables:
        return SyllabifiedWord(text=word, syllables=syllables, in_lexicon=True)

    count = estimate_syllable_count(word)
    pattern = estimate_stress_pattern(count)
    log_event(logger, "lexicon_miss", level=logging.DEBUG, word=word, estimated_syllables=count)
    return SyllabifiedWord(
        text=word,
        syllables=[
            Syllable(phonemes=[], stress=int(pattern[i]), vowel_phoneme="", is_open=i == count - 1)
            for i in range(count)
        ],
        in_lexicon=False,
    )


def get_stress_pattern(words: list[str], lexicon: PhoneticLexicon | None = None) -> str:
    lex = lexicon or default_lexicon()
    return "".join(str(s.stress) for w in words for s in syllabify_word(w, lex).syllables)
