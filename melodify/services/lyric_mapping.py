from __future__ import annotations

import re

from melodify.models import SyllabifiedWord

_CHUNK_RE = re.compile(r"[^aeiouy]*[aeiouy]+(?:[^aeiouy]|$)")


def split_word_into_syllables(word: str) -> list[str]:
    w = word.lower()
    if len(w) <= 3:
        return [word]
    chunks = _CHUNK_RE.findall(w)
    if not chunks:
        return [word]
    rebuilt: list[str] = []
    cursor = 0
    for c in chunks:
        length = len(c)
        rebuilt.append(word[cursor : cursor + length])
        cursor += length
    if cursor < len(word):
        rebuilt[-1] += word[cursor:]
    return [s for s in rebuilt if s]


def syllable_texts_for_word(word: str, count: int) -> list[str]:
    """Split a word's spelling into exactly ``count`` lyric syllables.

    Spelling chunks are merged from the end when there are too many and the
    longest chunk is halved when there are too few, so the lyric text always
    lines up one-to-one with the sung notes.
    """
    if count <= 0:
        return []
    parts = split_word_into_syllables(word)
    while len(parts) > count:
        parts[-2:] = [parts[-2] + parts[-1]]
    while len(parts) < count:
        longest = max(range(len(parts)), key=lambda idx: len(parts[idx]))
        piece = parts[longest]
        if len(piece) < 2:
            parts.append("")
            continue
        mid = len(piece) // 2
        parts[longest : longest + 1] = [piece[:mid], piece[mid:]]
    return parts


def hyphenate(parts: list[str]) -> list[str]:
    """Mark word-internal syllables with a trailing hyphen for the lyric line."""
    if len(parts) <= 1:
        return list(parts)
    return [f"{part}-" for part in parts[:-1]] + [parts[-1]]


def line_lyrics(words: list[SyllabifiedWord]) -> list[str]:
    out: list[str] = []
    for word in words:
        out.extend(hyphenate(syllable_texts_for_word(word.text, len(word.syllables))))
    return out
