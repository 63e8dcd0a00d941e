import pytest

from melodify.models import Melody, MelodyParams, Note
from melodify.services.variations import (
    STYLE_PRESETS,
    VariationOptions,
    apply_style_preset,
    generate_variation,
    get_available_presets,
    get_preset_by_name,
    get_variation_description,
    is_valid_preset_name,
    is_valid_variation_type,
    summarize_variation,
)


def _note(pitch, duration=2, octave=0):
    return Note(pitch=pitch, octave=octave, duration=duration)


def _melody():
    return Melody(
        params=MelodyParams(title="Song", tempo=100),
        measures=[
            [_note("C"), _note("G"), _note("E"), _note("z", 2)],
            [_note("D", 1), _note("A", 1), _note("B", 4), _note("C", 2, octave=1)],
        ],
        lyrics=[["Sing", "a", "song", ""], ["of", "the", "sea", "now"]],
    )


def _rests(melody):
    return [n for m in melody.measures for n in m if n.is_rest]


def test_catalog_helpers():
    assert [p.name for p in get_available_presets()] == ["folk", "classical", "pop", "hymn"]
    assert get_preset_by_name(" Hymn ") is STYLE_PRESETS["hymn"]
    assert get_preset_by_name("jazz") is None
    assert is_valid_preset_name("pop") is True
    assert is_valid_variation_type("invert") is True
    assert is_valid_variation_type("retrograde") is False
    assert get_variation_description("transpose").startswith("Shifts all pitches")
    assert get_variation_description("retrograde") == "Unknown variation type"


@pytest.mark.parametrize("variation_type", ["ornament", "simplify", "invert", "transpose"])
def test_variations_keep_rests(variation_type):
    melody = _melody()
    options = VariationOptions(seed=4, ornament_probability=0.8, transpose_semitones=3)

    varied = generate_variation(melody, variation_type, options)

    assert _rests(varied) == _rests(melody)
    assert len(varied.lyrics) == len(varied.measures)


def test_variation_does_not_mutate_input():
    melody = _melody()
    before = melody.model_dump()

    for variation_type in ("ornament", "simplify", "invert", "transpose"):
        generate_variation(melody, variation_type, VariationOptions(seed=1, transpose_semitones=2))

    assert melody.model_dump() == before


def test_unknown_variation_returns_copy():
    melody = _melody()

    varied = generate_variation(melody, "retrograde")

    assert varied == melody
    assert varied is not melody


def test_transpose_shifts_pitches_and_titles():
    varied = generate_variation(_melody(), "transpose", VariationOptions(transpose_semitones=2))

    assert varied.params.title == "Song (transposed up 2 semitones)"
    assert [(n.pitch, n.octave) for n in varied.measures[0]] == [("D", 0), ("A", 0), ("F", 0), ("z", 0)]
    assert varied.lyrics == _melody().lyrics


def test_transpose_down_crosses_octave():
    varied = generate_variation(_melody(), "transpose", VariationOptions(transpose_semitones=-1))

    assert varied.params.title == "Song (transposed down 1 semitones)"
    assert (varied.measures[0][0].pitch, varied.measures[0][0].octave) == ("B", -1)


def test_zero_transpose_is_unchanged_copy():
    melody = _melody()

    assert generate_variation(melody, "transpose", VariationOptions(transpose_semitones=0)) == melody


def test_invert_mirrors_around_midpoint():
    melody = Melody(measures=[[_note("C"), _note("E"), _note("G")]], lyrics=[["a", "b", "c"]])

    varied = generate_variation(melody, "invert")

    assert [(n.pitch, n.octave) for n in varied.measures[0]] == [("F", 0), ("D", 0), ("B", -1)]


def test_invert_with_explicit_pivot():
    melody = Melody(measures=[[_note("E"), _note("G")]], lyrics=[])

    varied = generate_variation(melody, "invert", VariationOptions(invert_pivot="e"))

    assert [(n.pitch, n.octave) for n in varied.measures[0]] == [("E", 0), ("C", 0)]
    assert varied.lyrics == []


def test_invert_all_rests_is_copy():
    melody = Melody(measures=[[_note("z", 8)]], lyrics=[[""]])

    assert generate_variation(melody, "invert") == melody


def test_simplify_merges_short_and_repeated_notes():
    melody = Melody(
        measures=[[_note("C", 0.5), _note("D", 1), _note("D", 1), _note("E", 0.5), _note("z", 0.5)]],
        lyrics=[["a", "b", "c", "d", ""]],
    )

    varied = generate_variation(melody, "simplify")

    assert [(n.pitch, n.duration) for n in varied.measures[0]] == [("D", 3.5), ("z", 0.5)]
    assert varied.lyrics == [["b", ""]]


def test_ornament_without_probability_changes_nothing():
    melody = _melody()

    varied = generate_variation(melody, "ornament", VariationOptions(seed=9, ornament_probability=0))

    assert varied.measures == melody.measures
    assert varied.lyrics == melody.lyrics


def test_ornament_fills_wide_leaps_with_passing_tones():
    melody = Melody(measures=[[_note("C"), _note("G")]], lyrics=[["one", "two"]])

    varied = generate_variation(melody, "ornament", VariationOptions(seed=9, ornament_probability=1))

    pitches = [n.pitch for n in varied.measures[0]]
    assert "D" in pitches
    assert len(varied.measures[0]) == len(varied.lyrics[0])
    assert varied.lyrics[0][0] == "one"
    assert [s for s in varied.lyrics[0] if s] == ["one", "two"]


def test_ornament_is_seeded():
    melody = _melody()
    options = VariationOptions(seed=21, ornament_probability=0.7)

    assert generate_variation(melody, "ornament", options) == generate_variation(melody, "ornament", options)


def test_hymn_style_slows_and_lengthens():
    styled = apply_style_preset(_melody(), STYLE_PRESETS["hymn"])

    assert styled.params.tempo == 90
    assert styled.params.time_signature == "4/4"
    assert all(n.duration >= 2 for m in styled.measures for n in m if not n.is_rest)
    assert styled.lyrics == _melody().lyrics


def test_pop_style_caps_durations_and_raises_tempo():
    melody = _melody().model_copy(update={"params": MelodyParams(title="Song", tempo=80)})

    styled = apply_style_preset(melody, STYLE_PRESETS["pop"])

    assert styled.params.tempo == 100
    assert all(n.duration <= 2 for m in styled.measures for n in m if not n.is_rest)


def test_folk_style_is_deterministic_and_narrows_leaps():
    first = apply_style_preset(_melody(), STYLE_PRESETS["folk"])
    second = apply_style_preset(_melody(), STYLE_PRESETS["folk"])

    assert first == second
    assert all(2 <= n.duration <= 4 for m in first.measures for n in m if not n.is_rest)
    assert _rests(first) == _rests(_melody())


def test_summary_reports_changes():
    melody = _melody()
    styled = apply_style_preset(melody.model_copy(update={"params": MelodyParams(tempo=50)}), STYLE_PRESETS["hymn"])

    summary = summarize_variation(melody.model_copy(update={"params": MelodyParams(tempo=50)}), styled)

    assert summary.note_count_change == 0
    assert summary.tempo_change == 10
    assert summary.time_signature_changed is False
    assert summary.describe() == "+0 notes, tempo +10 BPM"
