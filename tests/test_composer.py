import logging

import pytest

from melodify.models import MoodProfile, Note, ParamsOverride
from melodify.services import composer as composer_service
from melodify.services.composer import (
    MelodyOptions,
    adjust_melody_params,
    apply_line_cadence,
    determine_melody_params,
    generate_melody,
    group_into_measures,
    melody_to_abc,
    regenerate_melody,
)
from melodify.services.music_theory import measure_units
from melodify.services.poem_analysis import analyze_poem
from melodify.services.score_validation import validate_melody
from melodify.services.seeded_random import Mulberry32


POEM = (
    "The morning light is soft and clear\n"
    "It settles on the field\n"
    "\n"
    "The evening brings the quiet near\n"
    "And all the world is healed"
)
SAD_MOOD = MoodProfile(
    overall_sentiment=-0.6,
    arousal=0.2,
    dominant_emotions=["sad"],
    mode="minor",
    tempo_range=(60, 90),
)


@pytest.fixture(scope="module")
def analysis():
    return analyze_poem(POEM)


def _flatten(melody):
    return [n for m in melody.measures for n in m]


def test_same_seed_gives_identical_melody_and_abc(analysis):
    first = generate_melody(analysis, MelodyOptions(seed=42))
    second = generate_melody(analysis, MelodyOptions(seed=42))

    assert first.model_dump() == second.model_dump()
    assert melody_to_abc(first) == melody_to_abc(second)


def test_different_seeds_usually_differ(analysis):
    melodies = {melody_to_abc(generate_melody(analysis, MelodyOptions(seed=seed))) for seed in range(5)}

    assert len(melodies) > 1


def test_generated_melody_is_structurally_valid(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=7))

    assert validate_melody(melody).valid
    assert len(melody.lyrics) == len(melody.measures)
    assert all(len(lyrics) == len(measure) for lyrics, measure in zip(melody.lyrics, melody.measures))


def test_one_note_per_syllable_plus_breath_rests(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=7))
    notes = _flatten(melody)
    syllables = sum(line.syllable_count for line in analysis.lines)

    rests = [n for n in notes if n.is_rest]
    assert len(rests) == len(analysis.lines) - 1
    assert len(notes) == syllables + len(rests)

    without_breaths = generate_melody(analysis, MelodyOptions(seed=7, respect_breath_points=False))
    assert not any(n.is_rest for n in _flatten(without_breaths))


def test_rests_carry_empty_lyrics(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=11))

    for measure, lyrics in zip(melody.measures, melody.lyrics):
        for note, syllable in zip(measure, lyrics):
            if note.is_rest:
                assert syllable == ""
            else:
                assert syllable


def test_major_melody_ends_on_tonic(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=3))
    last = _flatten(melody)[-1]

    assert (last.pitch, last.octave) == ("C", 0)


def test_minor_mood_ends_on_minor_tonic():
    analysis = analyze_poem(POEM, mood=SAD_MOOD)
    melody = generate_melody(analysis, MelodyOptions(seed=3))
    last = _flatten(melody)[-1]

    assert melody.params.key == "Am"
    assert melody.params.tempo == 66
    assert (last.pitch, last.octave) == ("A", -1)


def test_params_follow_suggestions_and_neutral_mood(analysis):
    params = determine_melody_params(analysis)

    assert params.title == "Untitled Melody"
    assert params.key == "C"
    assert params.tempo == 100
    assert params.default_note_length == "1/8"
    assert params.time_signature == analysis.suggestions.time_signature


def test_forced_params_override_suggestions(analysis):
    options = MelodyOptions(seed=1, title="Field Song", force_params={"key": "G", "tempo": 150})

    melody = generate_melody(analysis, options)

    assert melody.params.title == "Field Song"
    assert melody.params.key == "G"
    assert melody.params.tempo == 150


def test_forced_minor_key_switches_mode(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=2, force_params={"key": "Am"}))
    last = _flatten(melody)[-1]

    assert (last.pitch, last.octave) == ("A", -1)


@pytest.mark.parametrize("text", ["", "   \n\n  ", "!!! ... ---"])
def test_poem_without_syllables_gives_single_rest_measure(text):
    melody = generate_melody(analyze_poem(text), MelodyOptions(seed=1))

    assert len(melody.measures) == 1
    assert melody.measures[0] == [Note(pitch="z", octave=0, duration=measure_units(melody.params.time_signature))]
    assert melody.lyrics == [[""]]
    assert "w:" not in melody_to_abc(melody)


def test_regenerate_with_seed_matches_generate(analysis):
    regenerated = regenerate_melody(analysis, 99)

    assert regenerated.model_dump() == generate_melody(analysis, MelodyOptions(seed=99)).model_dump()


def test_regenerate_without_seed_draws_one(analysis, monkeypatch):
    monkeypatch.setattr(composer_service, "random_seed", lambda: 1234)

    regenerated = regenerate_melody(analysis)

    assert regenerated.model_dump() == generate_melody(analysis, MelodyOptions(seed=1234)).model_dump()


def test_group_into_measures_opens_new_bar_on_overflow():
    notes = [Note(pitch="C", duration=4), Note(pitch="D", duration=4), Note(pitch="E", duration=2)]

    measures, lyrics = group_into_measures(notes, ["a", "b"], "4/4")

    assert [[n.pitch for n in m] for m in measures] == [["C", "D"], ["E"]]
    assert lyrics == [["a", "b"], [""]]


def test_stanza_end_cadence_resolves_to_tonic():
    notes = [Note(pitch="E", duration=2), Note(pitch="F", duration=2), Note(pitch="A", octave=1, duration=2)]

    resolved = apply_line_cadence(notes, True, True, "major", Mulberry32(1))

    assert [(n.pitch, n.octave) for n in resolved[-2:]] == [("B", 0), ("C", 0)]
    assert resolved[-1].duration == 3
    assert notes[-1].pitch == "A"


def test_line_end_cadence_leaves_phrase_open():
    notes = [Note(pitch="E", duration=2), Note(pitch="F", duration=4)]

    resolved = apply_line_cadence(notes, True, False, "minor", Mulberry32(1))

    assert resolved[-1].pitch in ("E", "G")
    assert resolved[-1].duration == 5
    assert resolved[0] == notes[0]


def test_adjust_tempo_keeps_measures(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=5))

    adjusted = adjust_melody_params(melody, ParamsOverride(tempo=72))

    assert adjusted.params.tempo == 72
    assert adjusted.measures == melody.measures


def test_adjust_time_signature_regroups_bars(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=5))

    adjusted = adjust_melody_params(melody, {"time_signature": "3/4"})

    assert adjusted.params.time_signature == "3/4"
    assert _flatten(adjusted) == _flatten(melody)
    assert [s for m in adjusted.lyrics for s in m] == [s for m in melody.lyrics for s in m]
    capacity = measure_units("3/4")
    assert all(sum(n.duration for n in m) <= capacity or len(m) == 1 for m in adjusted.measures)


def test_generation_logs_summary_event(analysis, caplog):
    caplog.set_level(logging.INFO)

    generate_melody(analysis, MelodyOptions(seed=8))

    assert "melody_generated" in caplog.text


def test_custom_logger_receives_events(analysis, caplog):
    caplog.set_level(logging.INFO)
    custom = logging.getLogger("melodify.tests.custom")

    generate_melody(analysis, MelodyOptions(seed=8, logger=custom))

    assert any(r.name == "melodify.tests.custom" and r.getMessage() == "melody_generated" for r in caplog.records)


def test_fixed_contour_skips_contour_choice(analysis, monkeypatch):
    def fail(*_args, **_kwargs):
        raise AssertionError("contour should not be chosen")

    monkeypatch.setattr(composer_service, "choose_contour_shape", fail)

    melody = generate_melody(analysis, MelodyOptions(seed=4, contour="descending"))

    assert validate_melody(melody).valid


def test_regenerate_keeps_breath_point_option(analysis):
    regenerated = regenerate_melody(analysis, 7, MelodyOptions(respect_breath_points=False))

    assert not any(n.is_rest for n in _flatten(regenerated))


def test_adjust_time_signature_keeps_missing_lyrics_empty(analysis):
    melody = generate_melody(analysis, MelodyOptions(seed=5)).model_copy(update={"lyrics": []})

    adjusted = adjust_melody_params(melody, {"time_signature": "2/4"})

    assert adjusted.lyrics == []
    assert adjusted.params.time_signature == "2/4"
    assert _flatten(adjusted) == _flatten(melody)
