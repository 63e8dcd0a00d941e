from __future__ import annotations

import logging
import re

from melodify.logging_utils import log_event
from melodify.models import PreprocessedPoem, PunctuationMark, TokenizedLine

logger = logging.getLogger(__name__)

COMMON_CONTRACTIONS = frozenset(
    {
        "don't", "doesn't", "didn't", "won't", "wouldn't", "can't", "couldn't", "shouldn't",
        "isn't", "aren't", "wasn't", "weren't", "hasn't", "haven't", "hadn't", "mustn't",
        "needn't", "shan't", "mightn't", "ain't",
        "i'm", "you're", "we're", "they're", "he's", "she's", "it's", "that's", "there's",
        "here's", "what's", "who's", "where's", "how's", "let's",
        "i've", "you've", "we've", "they've", "could've", "would've", "should've", "might've",
        "i'll", "you'll", "he'll", "she'll", "we'll", "they'll", "it'll", "that'll",
        "i'd", "you'd", "he'd", "she'd", "we'd", "they'd", "it'd",
        "'tis", "'twas", "'twere", "'twill", "o'er", "e'er", "ne'er", "e'en",
        "ma'am", "y'all", "o'clock",
    }
)
CONTRACTION_PATTERN = re.compile(r"^[a-zA-Z]+'[a-zA-Z]+$")
PUNCTUATION_PATTERN = re.compile(r"[.,!?;:'\"—–\-()\[\]{}…]")

_EDGE_NON_WORD_KEEP_APOS = re.compile(r"^[^\w']+|[^\w']+$")
_EDGE_NON_WORD_KEEP_HYPHEN = re.compile(r"^[^\w-]+|[^\w-]+$")
_WORD_PIECES = re.compile(r"[\w']+")
_DROPPED_G = re.compile(r"[aeiouy]n'$", re.IGNORECASE)
_MULTI_SPACE = re.compile(r" {2,}")
_BLANK = re.compile(r"^\s*$")


def normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
    lines = [_MULTI_SPACE.sub(" ", line.rstrip()) for line in text.split("\n")]
    return "\n".join(lines).strip("\n")


def detect_stanzas(text: str) -> list[list[str]]:
    stanzas: list[list[str]] = []
    current: list[str] = []
    for line in text.split("\n"):
        if _BLANK.match(line):
            if current:
                stanzas.append(current)
                current = []
            continue
        current.append(line)
    if current:
        stanzas.append(current)
    return stanzas


def split_lines(text: str) -> list[str]:
    return [line for line in normalize_whitespace(text).split("\n") if not _BLANK.match(line)]


def _is_contraction(token: str) -> bool:
    core = _EDGE_NON_WORD_KEEP_APOS.sub("", token)
    return core.lower() in COMMON_CONTRACTIONS or bool(CONTRACTION_PATTERN.match(core))


def tokenize_words(line: str) -> list[str]:
    """Split a line into words, keeping contractions and hyphenated compounds whole."""
    words: list[str] = []
    for token in line.split():
        if _is_contraction(token):
            word = _EDGE_NON_WORD_KEEP_APOS.sub("", token)
            if word:
                words.append(word)
            continue

        if "-" in token and not token.startswith("-") and not token.endswith("-"):
            stripped = _EDGE_NON_WORD_KEEP_HYPHEN.sub("", token)
            if "-" in stripped:
                stripped = stripped.strip("-")
                if stripped:
                    words.append(stripped)
                continue

        for piece in _WORD_PIECES.findall(token):
            piece = piece.lstrip("'")
            if not _DROPPED_G.search(piece):
                piece = piece.rstrip("'")
            if piece:
                words.append(piece)
    return words


def extract_punctuation(line: str) -> list[PunctuationMark]:
    return [PunctuationMark(char=m.group(0), position=m.start()) for m in PUNCTUATION_PATTERN.finditer(line)]


def tokenize_line(line: str) -> TokenizedLine:
    return TokenizedLine(words=tokenize_words(line), punctuation=extract_punctuation(line))


def preprocess_poem(text: str) -> PreprocessedPoem:
    normalized = normalize_whitespace(text or "")
    stanzas = detect_stanzas(normalized) if normalized else []
    poem = PreprocessedPoem(
        original=text or "",
        stanzas=stanzas,
        line_count=sum(len(stanza) for stanza in stanzas),
        stanza_count=len(stanzas),
    )
    log_event(logger, "poem_preprocessed", level=logging.DEBUG, stanza_count=poem.stanza_count, line_count=poem.line_count)
    return poem


def reconstruct_text(poem: PreprocessedPoem) -> str:
    return "\n\n".join("\n".join(stanza) for stanza in poem.stanzas)


def count_words(poem: PreprocessedPoem) -> int:
    return sum(len(tokenize_words(line)) for line in get_all_lines(poem))


def get_all_lines(poem: PreprocessedPoem) -> list[str]:
    return [line for stanza in poem.stanzas for line in stanza]


def get_line(poem: PreprocessedPoem, index: int) -> str | None:
    lines = get_all_lines(poem)
    if 0 <= index < len(lines):
        return lines[index]
    return None


def get_stanza(poem: PreprocessedPoem, index: int) -> list[str] | None:
    if 0 <= index < len(poem.stanzas):
        return list(poem.stanzas[index])
    return None
