import json
from dataclasses import replace

import pytest

from medicrew.core import generator, prompts
from medicrew.core.attachments import Attachment
from medicrew.core.generator import (
    INSUFFICIENT_DATA_NOTE,
    GenerationError,
    analyze_doctor_case,
    analyze_patient_case,
    flag_low_confidence_reports,
    get_doctor_profile,
    update_doctors_list,
)


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModels:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        return FakeResponse(self.replies.pop(0) if len(self.replies) > 1 else self.replies[0])


class FakeClient:
    def __init__(self, replies):
        self.models = FakeModels(replies)


@pytest.fixture
def gemini(monkeypatch, settings):
    def install(*replies):
        client = FakeClient(replies)
        monkeypatch.setattr(generator, "_get_client", lambda api_key: client)
        return replace(settings, provider="gemini", api_key="test-key"), client

    return install


def test_stub_patient_case(settings, patient):
    out = analyze_patient_case("runny nose for two days", user=patient, settings=settings)
    assert out["mode"] == "patient"
    assert out["triage_level"] == "insufficient_info"
    assert out["user_input_raw"] == "runny nose for two days"
    assert out["can_save_history"] is True
    assert out["nearby_doctors_list"] == []
    assert out["real_time_tracking"] == {"is_active": False, "refresh_interval_seconds": 15, "status": "unavailable"}


def test_red_flag_text_forces_emergency(settings, patient):
    out = analyze_patient_case("crushing chest pain since an hour", user=patient, settings=settings)
    assert out["triage_level"] == "emergency"
    assert "Chest pain or pressure" in out["red_flag_matches"]


def test_guest_response_is_never_saveable(settings, guest):
    out = analyze_patient_case("cough", user=guest, settings=settings)
    assert out["can_save_history"] is False
    assert out["history_metadata"] == {"can_save": False, "history_id": None}
    assert out["account_editable_fields"] == []
    assert out["guest_account_view"]["role"] == "guest"
    assert "account_view_data" not in out


def test_stub_doctor_case_notes_missing_sections(settings, doctor):
    out, raw = analyze_doctor_case("68M CKD", user=doctor, settings=settings, with_raw=True)
    assert out["mode"] == "doctor"
    assert out["data_insufficiency_notes"] == INSUFFICIENT_DATA_NOTE
    assert json.loads(raw)["mode"] == "doctor"


def test_stub_tracking_and_profile(settings):
    update = update_doctors_list((1.0, 2.0), "sore throat", settings=settings)
    assert update["nearby_doctors_list"][0]["doctor_id"] == "doc-stub-1"
    profile = get_doctor_profile("doc-42", "sore throat", settings=settings)
    assert profile["doctor_id"] == "doc-42"


def test_gemini_patient_filters_prescription_drugs(gemini, patient):
    reply = {
        "triage_level": "Self Care",
        "parsed_summary": "cold",
        "can_save_history": True,
        "medication_suggestions": [
            {"name": "Paracetamol", "type": "OTC"},
            {"name": "Amoxicillin", "type": "Rx"},
            {"name": "Saline spray"},
        ],
        "nearby_doctors_list": [{"doctor_id": "d1", "name": "Dr. A"}],
    }
    settings, client = gemini("Here you go:\n```json\n" + json.dumps(reply) + "\n```")
    out = analyze_patient_case("blocked nose", location=(10.0, 20.0), user=patient, settings=settings)

    assert out["triage_level"] == "self_care"
    assert [m["name"] for m in out["medication_suggestions"]] == ["Paracetamol", "Saline spray"]
    assert out["nearby_doctors_list"][0]["doctor_id"] == "d1"

    call = client.models.calls[0]
    assert call["model"] == settings.patient_model
    assert call["config"].response_mime_type == "application/json"
    assert "10.0, 20.0" in call["contents"][0].text


def test_gemini_doctor_sends_files_with_markers(gemini, doctor):
    reply = {
        "patient_summary": "CKD follow-up",
        "treatment_procedure": [{"step_number": 1, "description": "Repeat labs"}],
        "medications_during_treatment": [{"drug_name": "Furosemide"}],
        "discharge_instructions": [{"instruction": "Daily weights"}],
        "post_discharge_medications": [{"drug_name": "Furosemide"}],
        "parsed_reports": [
            {
                "file_id": "f1",
                "extracted_entities": [
                    {"name": "Serum Creatinine", "value": "2.1", "confidence": 0.3},
                    {"name": "Hair colour", "confidence": 0.1},
                ],
            }
        ],
    }
    settings, client = gemini(json.dumps(reply))
    files = [Attachment("labs.pdf", "application/pdf", b"%PDF-1.4")]
    out = analyze_doctor_case("CKD 3b", files, user=doctor, settings=settings)

    assert "data_insufficiency_notes" not in out
    report = out["parsed_reports"][0]
    assert report["needs_manual_review"] is True
    assert report["low_confidence_fields"] == ["Serum Creatinine"]

    contents = client.models.calls[0]["contents"]
    assert len(contents) == 3
    assert contents[1].inline_data.mime_type == "application/pdf"
    assert 'Name="labs.pdf"' in contents[2].text
    assert client.models.calls[0]["config"].thinking_config.thinking_budget == settings.doctor_thinking_budget


def test_retry_tightens_prompt_then_succeeds(gemini, patient):
    good = json.dumps({"triage_level": "urgent", "parsed_summary": "x"})
    settings, client = gemini("I cannot answer in JSON, sorry.", good)
    out = analyze_patient_case("ear pain", user=patient, settings=settings)

    assert out["triage_level"] == "urgent"
    assert len(client.models.calls) == 2
    assert prompts.STRICT_JSON_SUFFIX.strip() in client.models.calls[1]["contents"][0].text


def test_generation_error_saves_raw(gemini, patient):
    settings, client = gemini("still not json")
    with pytest.raises(GenerationError):
        analyze_patient_case("ear pain", user=patient, settings=settings)
    assert len(client.models.calls) == settings.retries + 1
    assert (settings.data_dir / "last_model_raw.txt").read_text(encoding="utf-8") == "still not json"


def test_gemini_without_key_fails(settings):
    with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
        analyze_patient_case("x", settings=replace(settings, provider="gemini", api_key=""))


def test_unknown_provider(settings):
    with pytest.raises(RuntimeError, match="Unknown MODEL_PROVIDER"):
        analyze_patient_case("x", settings=replace(settings, provider="ollama"))


def test_save_last_prompt(settings):
    analyze_patient_case("sore throat", settings=replace(settings, save_last_prompt=True))
    assert "sore throat" in (settings.data_dir / "last_model_prompt.txt").read_text(encoding="utf-8")


def test_flag_low_confidence_tolerates_bad_values():
    obj = {"parsed_reports": [{"extracted_entities": [{"name": "Potassium", "confidence": "n/a"}]}, "junk"]}
    flag_low_confidence_reports(obj)
    assert obj["parsed_reports"][0]["status"] == "low_confidence"
