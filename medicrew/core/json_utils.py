import ast
import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple


# Keys used to pick the right object out of a reply; the first set of each
# pair must all be present, the second is used for best-effort ranking.
RESPONSE_KEYS = {
    "patient": (
        {"triage_level", "parsed_summary"},
        {
            "mode", "disclaimer", "session_id", "timestamp", "user_input_raw",
            "parsed_summary", "case_summary_for_doctor", "missing_information",
            "symptom_entities", "triage_level", "red_flag_matches",
            "first_aid_instructions", "medication_suggestions",
            "specialties_to_consult", "nearby_doctors_list", "next_steps",
            "notes_for_user", "can_save_history",
        },
    ),
    "doctor": (
        {"patient_summary", "treatment_procedure"},
        {
            "mode", "disclaimer", "session_id", "timestamp", "input_source",
            "patient_summary", "parsed_reports", "treatment_procedure",
            "medications_during_treatment", "discharge_instructions",
            "post_discharge_medications", "personalized_recommendations",
            "red_flags", "search_log", "notes_for_clinician", "can_save_history",
        },
    ),
    "doctor_profile": (
        {"doctor_id", "full_name"},
        {
            "doctor_id", "full_name", "headline", "specialties", "qualifications",
            "practice_locations", "contact_methods", "availability_detailed",
            "consultation_fee", "ui_render_hints",
        },
    ),
    "tracking_update": (
        {"nearby_doctors_list"},
        {"nearby_doctors_list", "real_time_tracking"},
    ),
}


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    text = re.sub(r"```(?:json|JSON)?", "", text)
    return text.replace("```", "").strip()


def _scan_top_level_json_object_spans(text: str) -> List[Tuple[int, int]]:
    """
    Returns spans (start, end_exclusive) for every top-level {...} object.
    Braces inside string literals are ignored.
    """
    spans: List[Tuple[int, int]] = []
    depth = 0
    start = None
    in_str = False
    esc = False

    for i, ch in enumerate(text):
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue

        if ch == '"':
            in_str = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start is not None:
                spans.append((start, i + 1))
                start = None

    return spans


def _parse_candidate(candidate: str) -> Optional[Dict[str, Any]]:
    """Strict JSON first, then python dict-like text (single quotes, True/None)."""
    candidate = candidate.strip()
    if not candidate.startswith("{") or not candidate.endswith("}"):
        return None

    try:
        obj = json.loads(candidate)
        return obj if isinstance(obj, dict) else None
    except json.JSONDecodeError:
        pass

    try:
        obj = ast.literal_eval(candidate)
        return obj if isinstance(obj, dict) else None
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        return None


def extract_json_object(
    text: str,
    expected_keys: Iterable[str] = (),
    core_keys: Iterable[str] = (),
) -> Optional[Dict[str, Any]]:
    """
    Extract the best JSON object from model output.
    - Strips code fences
    - Finds all top-level {...} objects
    - Prefers the LAST object holding every core key (the prompt's own
      schema skeleton may be echoed back before the real answer)
    - Otherwise the object sharing the most expected keys
    """
    if not text:
        return None

    text = _strip_code_fences(text)
    parsed = [obj for obj in (_parse_candidate(text[s:e]) for s, e in _scan_top_level_json_object_spans(text)) if obj is not None]
    if not parsed:
        return None

    core = set(core_keys)
    if core:
        for obj in reversed(parsed):
            if core.issubset(obj.keys()):
                return obj

    expected = set(expected_keys)
    # max() keeps the first of equal scores; reverse so the latest wins ties
    return max(reversed(parsed), key=lambda o: len(set(o.keys()) & expected))


def extract_response(text: str, kind: str) -> Optional[Dict[str, Any]]:
    core, expected = RESPONSE_KEYS[kind]
    return extract_json_object(text, expected_keys=expected, core_keys=core)
