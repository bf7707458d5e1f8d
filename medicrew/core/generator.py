import json
import logging
import time
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from jsonschema import validate
from jsonschema.exceptions import ValidationError

from . import prompts
from .account import GUEST_ACCOUNT_VIEW, can_store_history
from .attachments import Attachment
from .config import APP, Settings, load_settings
from .json_utils import extract_response
from .models import UserProfile
from .prompts import Coordinates
from .triage import enforce_red_flags, normalize_triage_level

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"
AGENT_VERSION = "Medicrew-Universal-v2.0"

MANDATORY_DOCTOR_SECTIONS = (
    "treatment_procedure",
    "medications_during_treatment",
    "discharge_instructions",
    "post_discharge_medications",
)
INSUFFICIENT_DATA_NOTE = (
    "More clinical values or reports required for accurate dosing and procedure planning."
)
CRITICAL_ANALYTES = ("creatinine", "troponin", "potassium", "sodium", "lactate", "inr", "hemoglobin", "glucose")
LOW_CONFIDENCE = 0.5

Part = Union[str, Attachment]


class GenerationError(RuntimeError):
    """The model never produced a schema-valid JSON object."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@lru_cache(maxsize=None)
def load_schema(kind: str) -> Dict[str, Any]:
    return json.loads((SCHEMAS_DIR / f"{kind}.schema.json").read_text(encoding="utf-8"))


# --- providers ---

def _call_stub(kind: str, prompt: str) -> str:
    now = _utc_now_iso()
    if kind == "patient":
        payload = {
            "mode": "patient",
            "disclaimer": APP["disclaimer"],
            "session_id": str(uuid.uuid4()),
            "timestamp": now,
            "parsed_summary": "Stub summary. Set MODEL_PROVIDER=gemini to run the real model.",
            "case_summary_for_doctor": "Stub case summary.",
            "missing_information": ["MODEL_PROVIDER=stub - connect Gemini to generate real output."],
            "symptom_entities": [],
            "triage_level": "insufficient_info",
            "red_flag_matches": [],
            "first_aid_instructions": ["Rest and stay hydrated."],
            "image_provenance": [],
            "medication_suggestions": [],
            "specialties_to_consult": [{"specialty": "General Practice", "reason": "Initial assessment."}],
            "nearby_doctors_query": {"enabled": False, "query_text": "", "filters": []},
            "nearby_doctors_list": [],
            "next_steps": ["Describe your symptoms in more detail."],
            "notes_for_user": "This is a stub response.",
            "can_save_history": True,
            "history_id": f"hist-stub-{uuid.uuid4().hex[:8]}",
            "agent_version": AGENT_VERSION,
        }
    elif kind == "doctor":
        payload = {
            "mode": "doctor",
            "disclaimer": APP["disclaimer"],
            "session_id": str(uuid.uuid4()),
            "timestamp": now,
            "input_source": {"type": "free_text", "identifier": "stub", "provided_by": "clinician"},
            "patient_summary": "Stub summary. Set MODEL_PROVIDER=gemini to run the real model.",
            "parsed_reports": [],
            "treatment_pattern_detected": {},
            "treatment_procedure": [],
            "medications_during_treatment": [],
            "discharge_instructions": [],
            "post_discharge_medications": [],
            "personalized_recommendations": [],
            "alternative_options": [],
            "red_flags": [],
            "conflicts_or_gaps": [],
            "search_log": [],
            "ehr_export_suggestion": {"can_export": False, "export_format": "FHIR", "export_payload_example": {}},
            "sources_consulted": [],
            "notes_for_clinician": "This is a stub response.",
            "can_save_history": True,
            "history_id": f"hist-stub-{uuid.uuid4().hex[:8]}",
            "agent_version": AGENT_VERSION,
        }
    elif kind == "tracking_update":
        payload = {
            "nearby_doctors_list": [
                {
                    "doctor_id": "doc-stub-1",
                    "name": "Dr. Stub Clinic",
                    "primary_specialty": "General Practice",
                    "practice_type": "clinic",
                    "distance_km": 1.2,
                    "availability_summary": "Open now",
                    "verified": True,
                    "rating": 4.5,
                    "short_bio": "Stub listing.",
                    "actions": ["view_profile"],
                    "live_data": {"status": "online", "last_ping": now},
                }
            ],
            "real_time_tracking": {"is_active": True, "refresh_interval_seconds": 15, "status": "tracking"},
        }
    elif kind == "doctor_profile":
        payload = {
            "doctor_id": "doc-stub-1",
            "full_name": "Dr. Stub Clinic",
            "headline": "Stub profile",
            "verified_status": {"status": "unverified", "verified_on": None},
            "specialties": ["General Practice"],
            "qualifications": [],
            "languages_spoken": ["English"],
            "practice_locations": [],
            "contact_methods": {"phone": "", "book_url": "", "teleconsult_url": ""},
            "availability_detailed": [],
            "areas_of_expertise": [],
            "education_and_training": [],
            "consultation_fee": {"in_person": None, "teleconsult": None, "currency": "USD"},
            "insurance_accepted": [],
            "profile_verification_badge": False,
            "ui_render_hints": {"highlight_with_lifeline_glow": False, "emphasize_action_buttons": []},
        }
    else:
        raise ValueError(f"Unknown response kind: {kind}")
    return json.dumps(payload, ensure_ascii=False)


# --- caching for Streamlit reruns ---
try:
    import streamlit as st
    _cache_resource = st.cache_resource
except Exception:
    _cache_resource = None


def _make_client(api_key: str):
    from google import genai
    return genai.Client(api_key=api_key)


if _cache_resource:
    @_cache_resource(show_spinner=False)
    def _get_client(api_key: str):
        return _make_client(api_key)
else:
    @lru_cache(maxsize=1)
    def _get_client(api_key: str):
        return _make_client(api_key)


def _call_gemini(
    settings: Settings,
    model: str,
    parts: Sequence[Part],
    temperature: float,
    thinking_budget: Optional[int] = None,
) -> str:
    from google.genai import types

    if not settings.api_key:
        raise RuntimeError("MODEL_PROVIDER=gemini requires GEMINI_API_KEY in .env")

    client = _get_client(settings.api_key)
    contents = [
        types.Part.from_text(text=p) if isinstance(p, str) else types.Part.from_bytes(data=p.data, mime_type=p.mime_type)
        for p in parts
    ]
    config = types.GenerateContentConfig(
        response_mime_type="application/json",
        temperature=temperature,
        thinking_config=types.ThinkingConfig(thinking_budget=thinking_budget) if thinking_budget else None,
    )
    response = client.models.generate_content(model=model, contents=contents, config=config)
    return (response.text or "{}").strip()


def _save_artifact(settings: Settings, name: str, text: str) -> Path:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    path = settings.data_dir / name
    path.write_text(text or "", encoding="utf-8", errors="ignore")
    return path


def _generate(
    kind: str,
    parts: List[Part],
    *,
    model: str,
    temperature: float,
    thinking_budget: Optional[int] = None,
    postprocess: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
    settings: Optional[Settings] = None,
) -> Tuple[Dict[str, Any], str]:
    """
    Returns (output_json, raw_model_text).
    parts[0] must be the prompt text; it is tightened on every retry.
    """
    settings = settings or load_settings()
    schema = load_schema(kind)
    parts = list(parts)

    if settings.save_last_prompt:
        _save_artifact(settings, "last_model_prompt.txt", parts[0])

    last_text = ""
    last_err = ""

    for attempt in range(settings.retries + 1):
        if settings.provider == "stub":
            last_text = _call_stub(kind, parts[0])
        elif settings.provider == "gemini":
            last_text = _call_gemini(settings, model, parts, temperature, thinking_budget)
        else:
            raise RuntimeError(f"Unknown MODEL_PROVIDER: {settings.provider}")

        obj = extract_response(last_text, kind)
        if obj is None:
            last_err = "No valid JSON object found."
        else:
            if postprocess:
                obj = postprocess(obj)
            try:
                validate(instance=obj, schema=schema)
                return obj, last_text
            except ValidationError as e:
                last_err = f"Schema validation error: {e.message}"

        logger.warning("%s attempt %d/%d rejected: %s", kind, attempt + 1, settings.retries + 1, last_err)
        parts[0] = parts[0] + prompts.STRICT_JSON_SUFFIX + last_err

    raw_path = _save_artifact(settings, "last_model_raw.txt", last_text)
    raise GenerationError(
        f"Failed to produce valid {kind} JSON. Last error: {last_err}. Saved RAW to {raw_path}"
    )


# --- post-processing (fields the model must not override) ---

def _apply_account_context(obj: Dict[str, Any], user: Optional[UserProfile]) -> Dict[str, Any]:
    if not can_store_history(user):
        obj["can_save_history"] = False
        obj["history_metadata"] = {"can_save": False, "history_id": None}
    else:
        obj.setdefault("history_metadata", {"can_save": bool(obj.get("can_save_history")), "history_id": obj.get("history_id")})

    if user is None or user.is_guest:
        obj.pop("account_view_data", None)
        obj["account_editable_fields"] = []
        obj["guest_account_view"] = dict(GUEST_ACCOUNT_VIEW)
    return obj


def _postprocess_patient(
    obj: Dict[str, Any],
    text: str,
    location: Optional[Coordinates],
    user: Optional[UserProfile],
    refresh_seconds: int,
) -> Dict[str, Any]:
    obj["mode"] = "patient"
    obj.setdefault("disclaimer", APP["disclaimer"])
    obj.setdefault("session_id", str(uuid.uuid4()))
    obj.setdefault("timestamp", _utc_now_iso())
    obj.setdefault("user_input_raw", text)
    obj.setdefault("parsed_summary", "")
    obj["triage_level"] = normalize_triage_level(obj.get("triage_level", "insufficient_info"))

    meds = obj.get("medication_suggestions") or []
    otc = [m for m in meds if isinstance(m, dict) and str(m.get("type", "OTC")).upper() == "OTC"]
    if len(otc) != len(meds):
        logger.info("Dropped %d non-OTC medication suggestion(s)", len(meds) - len(otc))
    obj["medication_suggestions"] = otc

    if location is None:
        obj["nearby_doctors_list"] = []
        obj["real_time_tracking"] = {
            "is_active": False,
            "refresh_interval_seconds": refresh_seconds,
            "status": "unavailable",
        }

    enforce_red_flags(obj, text)
    obj.setdefault("agent_version", AGENT_VERSION)
    return _apply_account_context(obj, user)


def _confidence(entity: Dict[str, Any]) -> float:
    try:
        return float(entity.get("confidence") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def flag_low_confidence_reports(obj: Dict[str, Any]) -> Dict[str, Any]:
    for report in obj.get("parsed_reports") or []:
        if not isinstance(report, dict):
            continue
        weak = [
            e.get("name")
            for e in report.get("extracted_entities") or []
            if isinstance(e, dict)
            and any(a in str(e.get("name", "")).lower() for a in CRITICAL_ANALYTES)
            and _confidence(e) < LOW_CONFIDENCE
        ]
        if weak:
            report["status"] = "low_confidence"
            report["needs_manual_review"] = True
            report["low_confidence_fields"] = weak
    return obj


def _postprocess_doctor(obj: Dict[str, Any], user: Optional[UserProfile]) -> Dict[str, Any]:
    obj["mode"] = "doctor"
    obj.setdefault("disclaimer", APP["disclaimer"])
    obj.setdefault("session_id", str(uuid.uuid4()))
    obj.setdefault("timestamp", _utc_now_iso())
    obj.setdefault("patient_summary", "")

    insufficient = False
    for key in MANDATORY_DOCTOR_SECTIONS:
        if not isinstance(obj.get(key), list):
            obj[key] = []
        if not obj[key]:
            insufficient = True
    if insufficient and not obj.get("data_insufficiency_notes"):
        obj["data_insufficiency_notes"] = INSUFFICIENT_DATA_NOTE

    flag_low_confidence_reports(obj)
    obj.setdefault("agent_version", AGENT_VERSION)
    return _apply_account_context(obj, user)


# --- public API ---

def analyze_patient_case(
    text: str,
    images: Sequence[Attachment] = (),
    audio: Optional[Attachment] = None,
    location: Optional[Coordinates] = None,
    user: Optional[UserProfile] = None,
    settings: Optional[Settings] = None,
    with_raw: bool = False,
):
    settings = settings or load_settings()
    role = user.type if user else "guest"
    parts: List[Part] = [prompts.build_patient_prompt(text, location, user_role=role)]
    parts.extend(images)
    if audio is not None:
        parts.append(audio)

    obj, raw = _generate(
        "patient",
        parts,
        model=settings.patient_model,
        temperature=settings.patient_temperature,
        postprocess=lambda o: _postprocess_patient(o, text, location, user, settings.tracking_interval_seconds),
        settings=settings,
    )
    logger.info("Patient case analysed: triage=%s", obj.get("triage_level"))
    return (obj, raw) if with_raw else obj


def analyze_doctor_case(
    text: str,
    files: Sequence[Attachment] = (),
    audio: Optional[Attachment] = None,
    user: Optional[UserProfile] = None,
    settings: Optional[Settings] = None,
    with_raw: bool = False,
):
    settings = settings or load_settings()
    role = user.type if user else "doctor"
    parts: List[Part] = [prompts.build_doctor_prompt(text, user_role=role)]

    stamp = _epoch_ms()
    for index, f in enumerate(files):
        parts.append(f)
        parts.append(prompts.file_marker(f"file_{stamp}_{index}", f.name))

    if audio is not None:
        parts.append(audio)

    obj, raw = _generate(
        "doctor",
        parts,
        model=settings.doctor_model,
        temperature=settings.doctor_temperature,
        thinking_budget=settings.doctor_thinking_budget,
        postprocess=lambda o: _postprocess_doctor(o, user),
        settings=settings,
    )
    logger.info("Doctor case analysed: %d report(s) parsed", len(obj.get("parsed_reports") or []))
    return (obj, raw) if with_raw else obj


def update_doctors_list(
    location: Coordinates,
    symptom_summary: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    settings = settings or load_settings()
    obj, _raw = _generate(
        "tracking_update",
        [prompts.build_tracking_prompt(location, symptom_summary)],
        model=settings.patient_model,
        temperature=settings.patient_temperature,
        settings=settings,
    )
    return obj


def get_doctor_profile(
    doctor_id: str,
    context: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    settings = settings or load_settings()

    def _pin_id(o: Dict[str, Any]) -> Dict[str, Any]:
        o["doctor_id"] = doctor_id
        return o

    obj, _raw = _generate(
        "doctor_profile",
        [prompts.build_profile_prompt(doctor_id, context)],
        model=settings.patient_model,
        temperature=settings.patient_temperature,
        postprocess=_pin_id,
        settings=settings,
    )
    return obj
