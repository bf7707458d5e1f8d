import pytest

from medicrew.core.triage import (
    enforce_red_flags,
    match_red_flags,
    normalize_triage_level,
    triage_label,
    triage_style,
)


@pytest.mark.parametrize(
    "raw,expected",
    [("See Soon", "see_soon"), ("self-care", "self_care"), ("EMERGENCY", "emergency"), ("bogus", "bogus"), (None, None)],
)
def test_normalize_triage_level(raw, expected):
    assert normalize_triage_level(raw) == expected


def test_match_red_flags():
    assert match_red_flags("I have chest pain and I fainted") == ["Chest pain or pressure", "Loss of consciousness"]
    assert match_red_flags("runny nose") == []
    assert match_red_flags("") == []


def test_enforce_red_flags_forces_emergency_without_duplicates():
    resp = {"triage_level": "self_care", "red_flag_matches": [{"flag": "Chest pain or pressure"}]}
    enforce_red_flags(resp, "sudden chest pain")
    assert resp["triage_level"] == "emergency"
    assert len(resp["red_flag_matches"]) == 1


def test_enforce_red_flags_leaves_calm_text_alone():
    resp = {"triage_level": "self_care"}
    assert enforce_red_flags(resp, "mild cough")["triage_level"] == "self_care"
    assert "red_flag_matches" not in resp


def test_style_and_label():
    assert triage_style("emergency") == "error"
    assert triage_style("see_soon") == "warning"
    assert triage_style("self_care") == "success"
    assert triage_style("whatever") == "info"
    assert triage_label("see_soon") == "SEE SOON"
    assert triage_label(None) == "UNKNOWN"


@pytest.mark.parametrize(
    "text",
    [
        "Mild cough for two days, no chest pain, no fever.",
        "Denies chest tightness. Never fainted.",
        "I am not suicidal, just tired",
        "sore throat without trouble swallowing or choking",
    ],
)
def test_negated_symptoms_are_not_red_flags(text):
    assert match_red_flags(text) == []
    resp = {"triage_level": "self_care"}
    assert enforce_red_flags(resp, text)["triage_level"] == "self_care"


@pytest.mark.parametrize(
    "text,label",
    [
        ("no fever and crushing chest pain", "Chest pain or pressure"),
        ("No cough, but I fainted twice today", "Loss of consciousness"),
        ("no chest pain earlier. Now severe chest pain", "Chest pain or pressure"),
    ],
)
def test_negation_does_not_leak_into_next_clause(text, label):
    assert label in match_red_flags(text)
