from __future__ import annotations

import logging
from dataclasses import dataclass

from melodify.logging_utils import log_event
from melodify.models import LineSoundPatterns, ProblemSpot, SingabilityScore, Syllable, SyllabifiedWord
from melodify.services.phonetics import PhoneticLexicon, base_phoneme, default_lexicon

logger = logging.getLogger(__name__)

VOWEL_OPENNESS = {
    "AA": 1.0,
    "AO": 0.9,
    "AE": 0.8,
    "OW": 0.8,
    "AY": 0.7,
    "EY": 0.7,
    "AW": 0.7,
    "OY": 0.65,
    "EH": 0.6,
    "ER": 0.5,
    "AH": 0.5,
    "IY": 0.4,
    "UW": 0.4,
    "IH": 0.3,
    "UH": 0.3,
}
DEFAULT_OPENNESS = 0.5

DIFFICULT_CLUSTERS: tuple[tuple[str, ...], ...] = (
    ("S", "T", "R"),
    ("S", "K", "R"),
    ("S", "P", "R"),
    ("S", "P", "L"),
    ("N", "G", "TH", "S"),
    ("K", "S", "T", "S"),
    ("L", "F", "TH", "S"),
    ("S", "T", "S"),
    ("S", "K", "S"),
    ("K", "S"),
    ("T", "S"),
    ("K", "T"),
    ("P", "T"),
    ("B", "D"),
    ("N", "K"),
    ("N", "G", "K"),
    ("M", "P", "T"),
    ("F", "TH"),
    ("TH", "S"),
)

CLUSTER_SUGGESTIONS = {
    "S-T-R": 'Consider "st-" or softer opening',
    "N-G-TH-S": "Very difficult cluster; consider rephrasing",
    "K-S-T-S": "Multiple sibilants; consider simpler word",
    "S-T-S": 'Sibilant cluster; consider "-st" ending word',
    "S-K-S": "Harsh combination; consider rephrasing",
    "K-T": "Consider word ending in single consonant",
    "P-T": "Consider word ending in single consonant",
    "F-TH": "Difficult fricative combo; consider simpler word",
}
VOWEL_SUGGESTIONS = {
    "IH": 'Short "i" is hard to sustain; consider open vowel',
    "UH": 'Short "u" is hard to sustain; consider open vowel',
    "IY": 'Long "ee" can be sustained but is brighter; consider "ah" or "oh"',
    "UW": 'Long "oo" can be sustained; consider if warmth is needed',
}
ISSUE_LABELS = {
    "consonant_cluster": "Consonant cluster",
    "closed_vowel": "Closed vowel",
    "awkward_transition": "Awkward transition",
}

SONORANT_CODAS = frozenset({"L", "M", "N", "NG", "R"})
OPEN_SYLLABLE_BONUS = 0.15
SONORANT_CODA_BONUS = 0.1
CLUSTER_WEIGHT = 0.3
SEVERITY_PENALTY = {"high": 0.15, "medium": 0.08, "low": 0.03}
MAX_PROBLEM_PENALTY = 0.5
SEVERITY_ORDER = {"low": 0, "medium": 1, "high": 2}
MAX_SOUND_PATTERN_IMPACT = 0.2


@dataclass
class WordProblem:
    position: int
    word: str
    issue: str
    severity: str
    suggestion: str

    def describe(self) -> str:
        return f'{ISSUE_LABELS.get(self.issue, "Issue")} in "{self.word}": {self.suggestion}'


def _is_subsequence(pattern: tuple[str, ...], target: list[str]) -> bool:
    if len(pattern) > len(target):
        return False
    idx = 0
    for item in target:
        if item == pattern[idx]:
            idx += 1
            if idx == len(pattern):
                return True
    return False


def score_vowel_openness(phonemes: list[str], lexicon: PhoneticLexicon | None = None) -> float:
    lex = lexicon or default_lexicon()
    vowels = [p for p in phonemes if lex.is_vowel(p)]
    if not vowels:
        return 0.0
    return VOWEL_OPENNESS.get(base_phoneme(vowels[0]), DEFAULT_OPENNESS)


def _consonant_runs(phonemes: list[str], lex: PhoneticLexicon) -> list[list[str]]:
    runs: list[list[str]] = []
    current: list[str] = []
    for phoneme in phonemes:
        if lex.is_consonant(phoneme):
            current.append(base_phoneme(phoneme))
            continue
        if len(current) > 1:
            runs.append(current)
        current = []
    if len(current) > 1:
        runs.append(current)
    return runs


def score_consonant_clusters(phonemes: list[str], lexicon: PhoneticLexicon | None = None) -> float:
    lex = lexicon or default_lexicon()
    runs = _consonant_runs(phonemes, lex)
    if not runs:
        return 0.0
    longest = max(len(run) for run in runs)
    if longest == 2:
        penalty = 0.2
    elif longest == 3:
        penalty = 0.5
    else:
        penalty = 0.8
    for run in runs:
        for cluster in DIFFICULT_CLUSTERS:
            if _is_subsequence(cluster, run):
                penalty += 0.1
    return min(1.0, penalty)


def score_sustainability(syllable: Syllable, lexicon: PhoneticLexicon | None = None) -> float:
    if not syllable.phonemes:
        return 0.0
    lex = lexicon or default_lexicon()
    score = score_vowel_openness(syllable.phonemes, lex)
    if syllable.is_open:
        score += OPEN_SYLLABLE_BONUS
    elif base_phoneme(syllable.phonemes[-1]) in SONORANT_CODAS:
        score += SONORANT_CODA_BONUS
    score -= CLUSTER_WEIGHT * score_consonant_clusters(syllable.phonemes, lex)
    return max(0.0, min(1.0, score))


def score_syllable(syllable: Syllable, lexicon: PhoneticLexicon | None = None) -> float:
    return score_sustainability(syllable, lexicon)


def _find_difficult_cluster(phonemes: list[str], lex: PhoneticLexicon) -> str | None:
    consonants = [base_phoneme(p) for p in phonemes if lex.is_consonant(p)]
    for cluster in DIFFICULT_CLUSTERS:
        if _is_subsequence(cluster, consonants):
            return "-".join(cluster)
    return None


def find_word_problems(word: SyllabifiedWord, start_position: int, lexicon: PhoneticLexicon | None = None) -> list[WordProblem]:
    lex = lexicon or default_lexicon()
    phonemes = [p for s in word.syllables for p in s.phonemes]
    problems: list[WordProblem] = []
    # Estimated words carry no phonemes; there is nothing to judge.
    if not phonemes:
        return problems

    cluster_penalty = score_consonant_clusters(phonemes, lex)
    if cluster_penalty >= 0.5:
        key = _find_difficult_cluster(phonemes, lex)
        if key:
            suggestion = CLUSTER_SUGGESTIONS.get(key, f'Difficult consonant cluster in "{word.text}"')
        else:
            suggestion = f'Consider simpler word instead of "{word.text}"'
        problems.append(
            WordProblem(
                position=start_position,
                word=word.text,
                issue="consonant_cluster",
                severity="high" if cluster_penalty >= 0.7 else "medium",
                suggestion=suggestion,
            )
        )

    openness = score_vowel_openness(phonemes, lex)
    if openness <= 0.35:
        vowels = [p for p in phonemes if lex.is_vowel(p)]
        base = base_phoneme(vowels[0]) if vowels else ""
        problems.append(
            WordProblem(
                position=start_position,
                word=word.text,
                issue="closed_vowel",
                severity="medium" if openness <= 0.3 else "low",
                suggestion=VOWEL_SUGGESTIONS.get(base, f'Closed vowel in "{word.text}" may be hard to sustain'),
            )
        )

    for i, (current, following) in enumerate(zip(word.syllables, word.syllables[1:])):
        if current.is_open or not following.phonemes:
            continue
        onset = 0
        for phoneme in following.phonemes:
            if not lex.is_consonant(phoneme):
                break
            onset += 1
        if onset >= 2:
            problems.append(
                WordProblem(
                    position=start_position + i,
                    word=word.text,
                    issue="awkward_transition",
                    severity="low",
                    suggestion=f'Transition within "{word.text}" may be choppy',
                )
            )
    return problems


def analyze_line_singability(words: list[SyllabifiedWord], lexicon: PhoneticLexicon | None = None) -> SingabilityScore:
    lex = lexicon or default_lexicon()
    syllable_scores = [score_sustainability(s, lex) for w in words for s in w.syllables]
    if not syllable_scores:
        return SingabilityScore()

    problems: list[WordProblem] = []
    position = 0
    for word in words:
        problems.extend(find_word_problems(word, position, lex))
        position += len(word.syllables)

    penalty = min(MAX_PROBLEM_PENALTY, sum(SEVERITY_PENALTY[p.severity] for p in problems))
    line_score = max(0.0, sum(syllable_scores) / len(syllable_scores) - penalty)
    log_event(
        logger,
        "line_singability_scored",
        level=logging.DEBUG,
        line_score=round(line_score, 3),
        problem_count=len(problems),
    )
    return SingabilityScore(
        syllable_scores=syllable_scores,
        line_score=min(1.0, line_score),
        problem_spots=[ProblemSpot(position=p.position, issue=p.describe(), severity=p.severity) for p in problems],
    )


def adjust_singability_for_sound_patterns(score: SingabilityScore, patterns: LineSoundPatterns) -> SingabilityScore:
    impact = 0.0

    alliterations = len(patterns.alliterations)
    if alliterations in (1, 2):
        impact += 0.05 * alliterations
    elif alliterations > 3:
        impact -= 0.02 * (alliterations - 3)

    assonances = len(patterns.assonances)
    if 1 <= assonances <= 3:
        impact += 0.04 * assonances

    impact += 0.02 * sum(1 for p in patterns.alliterations if p.strength > 0.7)
    impact += 0.03 * sum(1 for p in patterns.assonances if p.strength > 0.7)

    if 1 <= len(patterns.consonances) <= 2:
        impact += 0.02

    impact = max(-MAX_SOUND_PATTERN_IMPACT, min(MAX_SOUND_PATTERN_IMPACT, impact))
    return score.model_copy(update={"line_score": max(0.0, min(1.0, score.line_score + impact))})


def score_word_singability(word: str, lexicon: PhoneticLexicon | None = None) -> float | None:
    if not word or not word.strip():
        return None
    lex = lexicon or default_lexicon()
    phonemes = lex.lookup_word(word)
    if not phonemes:
        return None
    return max(0.0, score_vowel_openness(phonemes, lex) - 0.5 * score_consonant_clusters(phonemes, lex))


def has_difficult_clusters(word: str, lexicon: PhoneticLexicon | None = None) -> bool:
    lex = lexicon or default_lexicon()
    phonemes = lex.lookup_word(word)
    if not phonemes:
        return False
    return score_consonant_clusters(phonemes, lex) >= 0.4


def calculate_average_singability(scores: list[SingabilityScore]) -> float:
    if not scores:
        return 0.0
    return sum(s.line_score for s in scores) / len(scores)


def collect_problem_spots(scores: list[SingabilityScore], min_severity: str = "low") -> list[tuple[int, ProblemSpot]]:
    threshold = SEVERITY_ORDER[min_severity]
    return [
        (line_index, problem)
        for line_index, score in enumerate(scores)
        for problem in score.problem_spots
        if SEVERITY_ORDER[problem.severity] >= threshold
    ]
