from melodify.models import LineSoundPatterns, SingabilityScore, SoundPattern, Syllable
from melodify.services.phonetics import DictLexicon, syllabify_word
from melodify.services.singability import (
    adjust_singability_for_sound_patterns,
    analyze_line_singability,
    calculate_average_singability,
    collect_problem_spots,
    find_word_problems,
    has_difficult_clusters,
    score_consonant_clusters,
    score_sustainability,
    score_vowel_openness,
    score_word_singability,
)


LEXICON = DictLexicon(
    {
        "law": ["L", "AO1"],
        "strengths": ["S", "T", "R", "EH1", "NG", "K", "TH", "S"],
        "bit": ["B", "IH1", "T"],
        "song": ["S", "AO1", "NG"],
    }
)


def test_vowel_openness_uses_first_vowel():
    assert score_vowel_openness(["L", "AO1"], LEXICON) == 0.9
    assert score_vowel_openness(["B", "IH1", "T"], LEXICON) == 0.3
    assert score_vowel_openness(["S", "T"], LEXICON) == 0.0


def test_consonant_cluster_penalty_grows_with_cluster_length():
    assert score_consonant_clusters(["L", "AO1"], LEXICON) == 0.0
    assert score_consonant_clusters(["S", "T", "AA1"], LEXICON) == 0.2
    assert score_consonant_clusters(["S", "T", "R", "EH1", "NG", "K", "TH", "S"], LEXICON) == 1.0


def test_open_syllable_scores_higher_than_closed():
    open_syllable = Syllable(phonemes=["L", "AO1"], stress=1, vowel_phoneme="AO1", is_open=True)
    sonorant = Syllable(phonemes=["S", "AO1", "NG"], stress=1, vowel_phoneme="AO1", is_open=False)
    closed = Syllable(phonemes=["B", "IH1", "T"], stress=1, vowel_phoneme="IH1", is_open=False)

    assert score_sustainability(open_syllable, LEXICON) == 1.0
    assert abs(score_sustainability(sonorant, LEXICON) - 1.0) < 1e-9
    assert abs(score_sustainability(closed, LEXICON) - 0.3) < 1e-9


def test_syllable_without_phonemes_scores_zero():
    assert score_sustainability(Syllable(), LEXICON) == 0.0


def test_cluster_heavy_word_is_flagged_high():
    word = syllabify_word("strengths", LEXICON)
    problems = find_word_problems(word, 3, LEXICON)

    cluster = next(p for p in problems if p.issue == "consonant_cluster")
    assert cluster.severity == "high"
    assert cluster.position == 3
    assert cluster.describe().startswith('Consonant cluster in "strengths"')


def test_closed_vowel_word_is_flagged():
    problems = find_word_problems(syllabify_word("bit", LEXICON), 0, LEXICON)

    assert [(p.issue, p.severity) for p in problems] == [("closed_vowel", "medium")]


def test_lexicon_miss_has_no_word_problems():
    word = syllabify_word("zyxthrumps", LEXICON)

    assert word.in_lexicon is False
    assert find_word_problems(word, 0, LEXICON) == []


def test_line_score_penalises_problems():
    easy = analyze_line_singability([syllabify_word("law", LEXICON)], LEXICON)
    hard = analyze_line_singability([syllabify_word("strengths", LEXICON)], LEXICON)

    assert easy.line_score == 1.0
    assert easy.problem_spots == []
    assert hard.line_score < easy.line_score
    assert any(p.severity == "high" for p in hard.problem_spots)


def test_empty_line_scores_zero():
    score = analyze_line_singability([], LEXICON)

    assert score.line_score == 0.0
    assert score.syllable_scores == []


def test_sound_patterns_nudge_line_score():
    base = SingabilityScore(syllable_scores=[0.5], line_score=0.5)
    patterns = LineSoundPatterns(
        alliterations=[SoundPattern(sound="S", words=["silver", "sea"], strength=0.8)],
        assonances=[SoundPattern(sound="AY", words=["night", "light"], strength=0.5)],
    )

    adjusted = adjust_singability_for_sound_patterns(base, patterns)

    assert abs(adjusted.line_score - (0.5 + 0.05 + 0.04 + 0.02)) < 1e-9
    assert base.line_score == 0.5


def test_word_level_helpers():
    assert score_word_singability("law", LEXICON) == 0.9
    assert score_word_singability("unknownword", LEXICON) is None
    assert score_word_singability("  ", LEXICON) is None
    assert has_difficult_clusters("strengths", LEXICON) is True
    assert has_difficult_clusters("law", LEXICON) is False


def test_average_and_problem_collection():
    scores = [
        analyze_line_singability([syllabify_word("law", LEXICON)], LEXICON),
        analyze_line_singability([syllabify_word("strengths", LEXICON)], LEXICON),
    ]

    assert calculate_average_singability([]) == 0.0
    assert 0 < calculate_average_singability(scores) < 1
    spots = collect_problem_spots(scores, min_severity="high")
    assert spots
    assert all(line_index == 1 for line_index, _spot in spots)
