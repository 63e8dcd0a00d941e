import pytest

from melodify.models import Note
from melodify.services.cadence import (
    CADENCE_TYPES,
    LinePosition,
    apply_phrase_closure,
    determine_line_ending_cadence,
    generate_cadence,
    generate_short_cadence,
    get_cadence_to_target,
    get_scale_degree,
    suggest_cadence_for_emotion,
    validate_cadence,
)
from melodify.services.music_theory import SUPPORTED_KEYS


def _shape(notes):
    return [(n.pitch, n.octave, n.duration) for n in notes]


def test_perfect_cadence_in_c():
    assert _shape(generate_cadence("perfect", "C")) == [("B", 0, 1), ("G", 0, 2), ("C", 0, 4)]


def test_cadence_in_g_carries_upper_octave_degrees():
    assert _shape(generate_cadence("perfect", "G")) == [("F", 1, 1), ("D", 1, 2), ("G", 0, 4)]


@pytest.mark.parametrize("cadence_type", CADENCE_TYPES)
@pytest.mark.parametrize("key", SUPPORTED_KEYS)
def test_generated_cadences_validate(cadence_type, key):
    assert validate_cadence(generate_cadence(cadence_type, key), cadence_type, key).valid
    assert validate_cadence(generate_short_cadence(cadence_type, key), cadence_type, key).valid


def test_unknown_cadence_type_falls_back_to_perfect():
    assert generate_cadence("mystery", "C") == generate_cadence("perfect", "C")


def test_base_octave_shifts_every_note():
    assert [n.octave for n in generate_cadence("half", "C", base_octave=-1)] == [-1, -1, -1]


def test_validate_cadence_messages():
    assert validate_cadence([], "perfect", "C").issues == ["Cadence is empty"]

    wrong = validate_cadence([Note(pitch="D", octave=0, duration=1)], "perfect", "C")
    assert wrong.valid is False
    assert wrong.issues == [
        "Perfect cadence should end on tonic (C), but ends on D",
        "Final cadence note should have longer duration for proper resolution",
    ]


def test_line_ending_cadence_choice():
    assert determine_line_ending_cadence(LinePosition(3, 4, True)) == "perfect"
    assert determine_line_ending_cadence(LinePosition(2, 4, False)) == "deceptive"
    assert determine_line_ending_cadence(LinePosition(1, 4, False)) == "plagal"
    assert determine_line_ending_cadence(LinePosition(0, 4, False)) == "half"
    assert determine_line_ending_cadence(LinePosition(0, 2, False)) == "half"


def test_phrase_closure_bridges_wide_approach():
    closed = apply_phrase_closure([Note(pitch="C", octave=0, duration=2)], "perfect", "C")

    assert [n.pitch for n in closed] == ["C", "F", "B", "G", "C"]
    assert closed[-1].duration == 4


def test_phrase_closure_without_notes_is_plain_cadence():
    assert apply_phrase_closure([], "half", "C") == generate_cadence("half", "C")


def test_phrase_closure_after_rest_adds_no_bridge():
    closed = apply_phrase_closure([Note(pitch="z", octave=0, duration=2)], "perfect", "C")

    assert [n.pitch for n in closed] == ["z", "B", "G", "C"]


def test_cadence_to_target():
    assert _shape(get_cadence_to_target("C", "C")) == [("G", 0, 2), ("C", 0, 4)]
    assert _shape(get_cadence_to_target("e", "C")) == [("D", 0, 2), ("E", 0, 4)]
    assert _shape(get_cadence_to_target("G", "C")) == [("F", 0, 2), ("G", 0, 4)]


def test_scale_degree_and_emotion_lookup():
    assert get_scale_degree("Am", 0).pitch == "A"
    assert get_scale_degree("Bbm", 4).pitch == "E"
    assert suggest_cadence_for_emotion("peaceful") == "plagal"
    assert suggest_cadence_for_emotion("bewildered") == "perfect"
