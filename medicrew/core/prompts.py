from pathlib import Path
from typing import Optional, Tuple

PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"

Coordinates = Tuple[float, float]

STRICT_JSON_SUFFIX = "\n\nIMPORTANT: Return ONLY one valid JSON object. First char '{' last char '}'. "


def _load_text(name: str, prompts_dir: Optional[Path] = None) -> str:
    path = Path(prompts_dir or PROMPTS_DIR) / name
    return path.read_text(encoding="utf-8")


def _render_template(tpl: str, **kwargs) -> str:
    out = tpl
    for k, v in kwargs.items():
        out = out.replace("{{" + k + "}}", v)
    return out


def format_location(location: Coordinates) -> str:
    lat, lng = location
    return f"{lat}, {lng}"


def system_prompt(user_role: str = "guest", prompts_dir: Optional[Path] = None) -> str:
    return _render_template(_load_text("system.md", prompts_dir), USER_ROLE=user_role).strip()


def build_patient_prompt(
    text: str,
    location: Optional[Coordinates] = None,
    user_role: str = "guest",
    prompts_dir: Optional[Path] = None,
) -> str:
    if location:
        loc = f"{format_location(location)} (Simulate nearby doctors based on this)"
    else:
        loc = "Not provided (Do not list nearby doctors, ask for location consent)"
    body = _render_template(
        _load_text("patient.md", prompts_dir),
        USER_INPUT=text,
        USER_LOCATION=loc,
    )
    return system_prompt(user_role, prompts_dir) + "\n\n" + body.strip()


def build_doctor_prompt(text: str, user_role: str = "doctor", prompts_dir: Optional[Path] = None) -> str:
    body = _render_template(_load_text("doctor.md", prompts_dir), CLINICIAN_INPUT=text)
    return system_prompt(user_role, prompts_dir) + "\n\n" + body.strip()


def build_tracking_prompt(location: Coordinates, symptom_summary: str, prompts_dir: Optional[Path] = None) -> str:
    body = _render_template(
        _load_text("tracking_update.md", prompts_dir),
        LOCATION=format_location(location),
        SYMPTOM_CONTEXT=symptom_summary,
    )
    return system_prompt("patient", prompts_dir) + "\n\n" + body.strip()


def build_profile_prompt(doctor_id: str, context: str, prompts_dir: Optional[Path] = None) -> str:
    body = _render_template(
        _load_text("doctor_profile.md", prompts_dir),
        DOCTOR_ID=doctor_id,
        CONTEXT=context,
    )
    return system_prompt("patient", prompts_dir) + "\n\n" + body.strip()


def file_marker(file_id: str, name: str) -> str:
    """Text part placed after each uploaded file so the model can cite it."""
    return f'[FILE START: ID={file_id}, Name="{name}"] (Analyze this file for structured entities and findings) [FILE END]'
