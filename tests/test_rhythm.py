from melodify.services.contour import choose_contour_shape, contour_to_pitches, contour_values
from melodify.services.rhythm import (
    NoteDuration,
    fit_to_measure,
    generate_line_rhythm,
    insert_breath_rests,
    is_strong_beat,
    normalize_line_durations,
    round_to_allowed_duration,
    stress_to_duration,
    strong_beats,
    total_duration,
    validate_rhythm,
)
from melodify.services.seeded_random import MAX_SEED, Mulberry32, random_seed


def test_mulberry32_is_reproducible_and_bounded():
    a = Mulberry32(12345)
    b = Mulberry32(12345)

    values = [a.next() for _ in range(50)]
    assert values == [b.next() for _ in range(50)]
    assert all(0 <= v < 1 for v in values)
    assert values != [Mulberry32(54321).next() for _ in range(50)]


def test_next_int_and_pick_stay_in_range():
    rng = Mulberry32(7)

    ints = [rng.next_int(-1, 1) for _ in range(200)]
    assert set(ints) <= {-1, 0, 1}
    assert len(set(ints)) == 3
    assert all(rng.pick(["G", "B"]) in ("G", "B") for _ in range(20))


def test_random_seed_is_in_range():
    assert all(0 <= random_seed() < MAX_SEED for _ in range(10))


def test_stress_to_duration_values():
    rng = Mulberry32(3)

    for _ in range(100):
        assert stress_to_duration(1, rng) in (2, 3)
        assert stress_to_duration(0, rng) in (0.5, 1)
        assert stress_to_duration(2, rng) == 2


def test_round_to_allowed_duration():
    assert [round_to_allowed_duration(v) for v in (0.6, 1.2, 2.4, 3.0, 5.0)] == [0.5, 1, 2, 3, 4]


def test_normalize_line_durations_fills_whole_measures():
    assert normalize_line_durations([2, 1, 2, 1], "4/4") == [3, 1, 3, 1]
    assert normalize_line_durations([], "4/4") == []


def test_generated_line_rhythm_matches_syllables():
    durations = generate_line_rhythm([0, 1, 0, 1, 0, 1], "3/4", Mulberry32(99))

    assert len(durations) == 6
    assert all(d in (0.5, 1, 2, 3, 4) for d in durations)


def test_insert_breath_rests_after_each_point():
    notes = [NoteDuration(0, 1), NoteDuration(1, 1), NoteDuration(2, 1)]

    result = insert_breath_rests(notes, [0, 1, 7])

    assert [(d.syllable_index, d.is_rest) for d in result] == [
        (0, False),
        (-1, True),
        (1, False),
        (-1, True),
        (2, False),
    ]
    assert insert_breath_rests([], [0]) == []


def test_fit_to_measure_splits_and_pads():
    notes = [NoteDuration(0, 3), NoteDuration(1, 3)]

    split = fit_to_measure(notes, 4)
    assert [d.beats for d in split] == [3, 1, 2, 2]
    assert split[-1].is_rest is True
    assert total_duration(split) == 8

    shortened = fit_to_measure(notes, 4, allow_split_notes=False)
    assert [d.beats for d in shortened] == [3, 1]

    unpadded = fit_to_measure([NoteDuration(0, 3)], 4, pad_with_rests=False)
    assert [d.beats for d in unpadded] == [3]


def test_validate_rhythm_reports_each_issue():
    report = validate_rhythm([NoteDuration(0, 1), NoteDuration(-1, 1), NoteDuration(2, 1, is_rest=True)])

    assert report.valid is False
    assert len(report.issues) == 2
    assert validate_rhythm([NoteDuration(0, 1), NoteDuration(-1, 0.5, is_rest=True)]).valid is True


def test_strong_beats():
    assert strong_beats("4/4") == [0, 2]
    assert strong_beats("5/4") == [0]
    assert is_strong_beat(2, "4/4") is True
    assert is_strong_beat(1, "4/4") is False
    assert is_strong_beat(4.5, "4/4") is True
    assert is_strong_beat(3, "6/8") is True


def test_contour_values_are_clamped_and_sized():
    rng = Mulberry32(5)

    for shape in ("arch", "descending", "ascending", "wave"):
        values = contour_values(9, shape, rng)
        assert len(values) == 9
        assert all(0 <= v <= 6 for v in values)


def test_last_line_always_descends():
    rng = Mulberry32(1)

    assert choose_contour_shape(3, 4, "happy", rng) == "descending"
    assert choose_contour_shape(0, 4, "happy", rng) in ("ascending", "arch")


def test_contour_to_pitches_maps_height_and_stress():
    pitches = contour_to_pitches([0, 3, 6], "C", "major", [0, 1, 0])

    assert pitches == [("C", -1), ("G", 0), ("B", 1)]


def test_minor_contour_sits_below_middle_register():
    pitches = contour_to_pitches([2], "Am", "minor", [0])

    assert pitches == [("C", -1)]
