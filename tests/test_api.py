from fastapi.testclient import TestClient

from melodify import main as main_module
from melodify.main import app
from melodify.models import Melody, MelodyParams, Note
from melodify.services.composer import MelodyOptions, generate_melody
from melodify.services.poem_analysis import analyze_poem
from melodify.services.section_melody import generate_sectioned_melody


client = TestClient(app)

POEM = "Roses are red\nViolets are blue\nSugar is sweet\nAnd so are you"


def _sample_melody() -> Melody:
    return generate_melody(analyze_poem(POEM), MelodyOptions(seed=17))


def test_analyze_returns_full_analysis():
    res = client.post("/api/analyze", json={"text": POEM})

    assert res.status_code == 200
    payload = res.json()
    assert payload["poem"]["line_count"] == 4
    assert payload["structure"]["structure_pattern"] == "A"
    assert len(payload["lines"]) == 4
    assert payload["suggestions"]["key"] == "C"
    assert payload["rhyme"]["scheme"] == "ABCB"
    assert res.headers["X-Request-ID"]


def test_request_id_header_is_echoed():
    res = client.post("/api/analyze", json={"text": POEM}, headers={"X-Request-ID": "abc-123"})

    assert res.headers["X-Request-ID"] == "abc-123"


def test_generate_melody_is_reproducible_with_seed():
    body = {"text": POEM, "seed": 42, "title": "Roses"}

    first = client.post("/api/generate-melody", json=body)
    second = client.post("/api/generate-melody", json=body)

    assert first.status_code == 200
    assert first.json()["abc"] == second.json()["abc"]
    payload = first.json()
    assert payload["seed"] == 42
    assert payload["structure_pattern"] == "A"
    assert payload["analysis_summary"] == "Single stanza poem"
    assert "T:Roses" in payload["abc"]
    assert payload["melody"]["params"]["title"] == "Roses"


def test_generate_melody_draws_seed_when_missing(monkeypatch):
    monkeypatch.setattr(main_module, "random_seed", lambda: 31337)

    res = client.post("/api/generate-melody", json={"text": POEM})

    assert res.status_code == 200
    assert res.json()["seed"] == 31337


def test_generate_melody_rejects_bad_force_params():
    res = client.post("/api/generate-melody", json={"text": POEM, "force_params": {"key": "H#"}})

    assert res.status_code == 422


def test_generate_melody_forced_params_apply():
    res = client.post(
        "/api/generate-melody",
        json={"text": POEM, "seed": 1, "force_params": {"key": "Em", "time_signature": "3/4", "tempo": 140}},
    )

    assert res.status_code == 200
    params = res.json()["melody"]["params"]
    assert params == {**params, "key": "Em", "time_signature": "3/4", "tempo": 140}
    assert "K:Em" in res.json()["abc"]


def test_generate_melody_value_error_becomes_friendly_422(monkeypatch):
    def broken(*_args, **_kwargs):
        raise ValueError("internal detail")

    monkeypatch.setattr(main_module, "generate_melody", broken)

    res = client.post("/api/generate-melody", json={"text": POEM, "seed": 1})

    assert res.status_code == 422
    detail = res.json()["detail"]
    assert detail["message"] == "Melody generation failed. Please adjust inputs and try again."
    assert detail["request_id"]
    assert "internal detail" not in res.text


def test_regenerate_melody_uses_new_seed():
    res = client.post("/api/regenerate-melody", json={"text": POEM, "seed": 5})

    assert res.status_code == 200
    assert res.json()["seed"] == 5


def test_adjust_melody_changes_tempo():
    melody = _sample_melody()

    res = client.post("/api/adjust-melody", json={"melody": melody.model_dump(), "params": {"tempo": 72}})

    assert res.status_code == 200
    assert res.json()["melody"]["params"]["tempo"] == 72
    assert "Q:1/4=72" in res.json()["abc"]


def test_adjust_melody_rejects_structurally_invalid_melody():
    melody = _sample_melody().model_copy(update={"measures": []})

    res = client.post("/api/adjust-melody", json={"melody": melody.model_dump(), "params": {"tempo": 72}})

    assert res.status_code == 422
    assert "Melody adjustment failed" in res.json()["detail"]["message"]


def test_melody_abc_round_trip():
    melody = _sample_melody()

    res = client.post("/api/melody-abc", json={"melody": melody.model_dump()})

    assert res.status_code == 200
    assert res.json()["abc"].startswith("X:1\nT:Untitled Melody\n")


def test_melody_abc_reports_notation_errors():
    melody = Melody(params=MelodyParams(tempo=0), measures=[[Note(pitch="C", duration=8)]])

    res = client.post("/api/melody-abc", json={"melody": melody.model_dump()})

    assert res.status_code == 422
    assert "ABC export failed" in res.json()["detail"]["message"]


def test_apply_style_known_and_unknown():
    melody = _sample_melody()

    ok = client.post("/api/apply-style", json={"melody": melody.model_dump(), "style": "hymn"})
    unknown = client.post("/api/apply-style", json={"melody": melody.model_dump(), "style": "jazz"})

    assert ok.status_code == 200
    assert 60 <= ok.json()["melody"]["params"]["tempo"] <= 90
    assert unknown.status_code == 422
    assert "Style application failed" in unknown.json()["detail"]["message"]


def test_variation_endpoint_returns_summary():
    melody = _sample_melody()

    res = client.post(
        "/api/variation",
        json={
            "melody": melody.model_dump(),
            "variation_type": "transpose",
            "options": {"transpose_semitones": 2},
        },
    )

    assert res.status_code == 200
    payload = res.json()
    assert payload["summary"].startswith("Shifts all pitches")
    assert "+0 notes" in payload["summary"]
    assert payload["melody"]["params"]["title"].endswith("(transposed up 2 semitones)")


def test_variation_endpoint_passes_unknown_type_through():
    melody = _sample_melody()

    res = client.post("/api/variation", json={"melody": melody.model_dump(), "variation_type": "retrograde"})

    assert res.status_code == 200
    assert res.json()["melody"] == melody.model_dump()
    assert res.json()["summary"].startswith("Unknown variation type")


def test_validate_melody_endpoint_valid_and_invalid():
    melody = _sample_melody()

    ok = client.post("/api/validate-melody", json={"melody": melody.model_dump()})
    bad = client.post(
        "/api/validate-melody",
        json={"melody": melody.model_copy(update={"params": MelodyParams(key="H")}).model_dump()},
    )

    assert ok.status_code == 200
    assert ok.json()["valid"] is True
    assert ok.json()["errors"] == []
    assert bad.status_code == 200
    assert bad.json()["valid"] is False
    assert "Invalid key signature: H" in bad.json()["errors"]


def test_styles_endpoint_lists_presets():
    res = client.get("/api/styles")

    assert res.status_code == 200
    names = [style["name"] for style in res.json()["styles"]]
    assert names == ["folk", "classical", "pop", "hymn"]
    assert res.json()["styles"][0]["tempo_range"] == [80, 120]


def test_breath_rests_can_be_disabled_on_generate_and_regenerate():
    body = {"text": POEM, "seed": 7, "respect_breath_points": False}

    for path in ("/api/generate-melody", "/api/regenerate-melody"):
        res = client.post(path, json=body)

        assert res.status_code == 200
        notes = [n for m in res.json()["melody"]["measures"] for n in m]
        assert [n for n in notes if n["pitch"] == "z"] == []


def test_generate_by_section_matches_sectioned_composer():
    text = "Sing with me, sing with me\nLet the river carry on\n\nQuiet fields\n\nSing with me, sing with me\nLet the river carry on"
    body = {"text": text, "seed": 9, "by_section": True}

    generated = client.post("/api/generate-melody", json=body)
    regenerated = client.post("/api/regenerate-melody", json=body)

    assert generated.status_code == 200
    assert regenerated.status_code == 200
    expected = generate_sectioned_melody(analyze_poem(text), MelodyOptions(seed=9))
    assert generated.json()["melody"] == expected.model_dump()
    assert regenerated.json()["abc"] == generated.json()["abc"]
