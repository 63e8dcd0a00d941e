import pytest

from melodify.services.phonetics import DictLexicon
from melodify.services.rhyme import (
    analyze_rhymes,
    classify_rhyme,
    detect_rhyme_scheme,
    find_internal_rhymes,
    get_last_word,
    get_rhyme_quality_score,
    get_rhyming_part,
    identify_rhyme_form,
    rhyme_density,
)


LEXICON = DictLexicon(
    {
        "cat": ["K", "AE1", "T"],
        "hat": ["HH", "AE1", "T"],
        "sat": ["S", "AE1", "T"],
        "bad": ["B", "AE1", "D"],
        "kit": ["K", "IH1", "T"],
        "dog": ["D", "AO1", "G"],
        "fog": ["F", "AA1", "G"],
        "by": ["B", "AY1"],
        "the": ["DH", "AH0"],
        "able": ["EY1", "B", "AH0", "L"],
        "fading": ["F", "EY1", "D", "IH0", "NG"],
    }
)


def test_rhyming_part_starts_at_stressed_vowel():
    assert get_rhyming_part(["K", "AE1", "T"], LEXICON) == ["AE1", "T"]
    assert get_rhyming_part(["F", "EY1", "D", "IH0", "NG"], LEXICON) == ["EY1", "D", "IH0", "NG"]
    assert get_rhyming_part(["DH", "AH0"], LEXICON) == ["AH0"]
    assert get_rhyming_part([], LEXICON) == []


@pytest.mark.parametrize(
    ("word1", "word2", "expected"),
    [
        ("cat", "hat", "perfect"),
        ("cat", "bad", "assonance"),
        ("cat", "kit", "consonance"),
        ("dog", "fog", "consonance"),
        ("able", "fading", "slant"),
        ("the", "cat", "none"),
        ("cat", "zzyzx", "none"),
    ],
)
def test_classify_rhyme(word1, word2, expected):
    assert classify_rhyme(word1, word2, LEXICON) == expected


def test_quality_score_follows_rhyme_type():
    assert get_rhyme_quality_score("cat", "hat", LEXICON) == 1.0
    assert get_rhyme_quality_score("cat", "bad", LEXICON) == 0.5
    assert get_rhyme_quality_score("the", "cat", LEXICON) == 0.0


def test_last_word_strips_punctuation():
    assert get_last_word("The night, the light!") == "light"
    assert get_last_word("Don't stop—") == "stop"
    assert get_last_word("   ") == ""


def test_rhyme_scheme_alternating():
    assert detect_rhyme_scheme(["The cat", "In fog", "A hat", "The dog"], LEXICON) == "ABAB"


def test_rhyme_scheme_gives_wordless_and_unknown_lines_their_own_letter():
    assert detect_rhyme_scheme(["the cat", "!!!", "a hat"], LEXICON) == "ABA"
    assert detect_rhyme_scheme(["the cat", "the zzyzx"], LEXICON) == "AB"
    assert detect_rhyme_scheme([], LEXICON) == ""


def test_internal_rhymes_skip_end_word_pairs():
    rhymes = find_internal_rhymes("The cat sat by the hat", 3, LEXICON)

    assert [(r.words, r.positions, r.line_index) for r in rhymes] == [(("cat", "sat"), (4, 8), 3)]


def test_rhyme_density():
    assert rhyme_density("cat sat the", LEXICON) == pytest.approx(1 / 3)
    assert rhyme_density("cat", LEXICON) == 0.0


@pytest.mark.parametrize(
    ("scheme", "form"),
    [
        ("", "none"),
        ("AABB", "couplets"),
        ("AABBCCDDEE", "couplets"),
        ("ABAB", "alternate"),
        ("ABAAB", "limerick"),
        ("ABCDABCD", "repeating pattern"),
        ("ABABCBCDC", "terza rima"),
        ("ABCD", "free verse (minimal rhyme)"),
        ("AABA", "dense rhyme"),
    ],
)
def test_identify_rhyme_form(scheme, form):
    assert identify_rhyme_form(scheme) == form


def test_analyze_rhymes_groups_and_stanza_schemes():
    analysis = analyze_rhymes(["The cat", "In fog", "A hat", "The dog"], LEXICON, [2, 2])

    assert analysis.scheme == "ABAB"
    assert analysis.stanza_schemes == ["AB", "AB"]
    assert analysis.form == "alternate"
    assert [(g.label, g.lines, g.rhyme_type, g.end_words) for g in analysis.groups] == [
        ("A", [0, 2], "perfect", ["cat", "hat"]),
        ("B", [1, 3], "consonance", ["fog", "dog"]),
    ]
    assert analysis.internal_rhymes == []


def test_unrhymed_line_forms_group_of_one():
    analysis = analyze_rhymes(["The cat", "In fog"], LEXICON)

    assert analysis.stanza_schemes == ["AB"]
    assert [g.rhyme_type for g in analysis.groups] == ["none", "none"]


def test_analyze_rhymes_empty():
    analysis = analyze_rhymes([], LEXICON)

    assert analysis.scheme == ""
    assert analysis.groups == []
    assert analysis.form == "none"
