import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

APP = {
    "title": "MEDICREW",
    "tagline": "Universal Clinical Engine",
    "disclaimer": (
        "Decision support only. Medicrew does not diagnose or prescribe and does not "
        "replace a clinician. In an emergency call your local emergency number."
    ),
}

DEFAULT_CONSENTS = {"store_history": True, "store_images": False, "location_access": False}


def _secret(name: str) -> str:
    """Environment first, then Streamlit secrets (when running under Streamlit)."""
    val = os.getenv(name, "").strip()
    if val:
        return val
    try:
        import streamlit as st
        return str(st.secrets.get(name, "")).strip()
    except Exception:
        return ""


def _number(name: str, default, cast):
    raw = _secret(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %r", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    provider: str = "stub"
    api_key: str = ""
    patient_model: str = "gemini-2.5-flash"
    doctor_model: str = "gemini-3-pro-preview"
    patient_temperature: float = 0.2
    doctor_temperature: float = 0.1
    doctor_thinking_budget: int = 2048
    retries: int = 1
    data_dir: Path = Path(".medicrew")
    tracking_interval_seconds: int = 15
    max_upload_mb: float = 10.0
    max_license_mb: float = 5.0
    log_level: str = "INFO"
    save_last_prompt: bool = False

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @property
    def max_license_bytes(self) -> int:
        return int(self.max_license_mb * 1024 * 1024)


def load_settings() -> Settings:
    api_key = _secret("GEMINI_API_KEY") or _secret("GOOGLE_API_KEY") or _secret("API_KEY")
    return Settings(
        provider=(_secret("MODEL_PROVIDER") or "stub").lower(),
        api_key=api_key,
        patient_model=_secret("PATIENT_MODEL") or Settings.patient_model,
        doctor_model=_secret("DOCTOR_MODEL") or Settings.doctor_model,
        patient_temperature=_number("PATIENT_TEMPERATURE", Settings.patient_temperature, float),
        doctor_temperature=_number("DOCTOR_TEMPERATURE", Settings.doctor_temperature, float),
        doctor_thinking_budget=_number("DOCTOR_THINKING_BUDGET", Settings.doctor_thinking_budget, int),
        retries=max(0, _number("RETRIES", Settings.retries, int)),
        data_dir=Path(_secret("DATA_DIR") or Settings.data_dir),
        tracking_interval_seconds=max(1, _number("TRACKING_INTERVAL_SECONDS", Settings.tracking_interval_seconds, int)),
        max_upload_mb=_number("MAX_UPLOAD_MB", Settings.max_upload_mb, float),
        max_license_mb=_number("MAX_LICENSE_MB", Settings.max_license_mb, float),
        log_level=(_secret("LOG_LEVEL") or Settings.log_level).upper(),
        save_last_prompt=_secret("SAVE_LAST_PROMPT") in ("1", "true", "yes"),
    )


def configure_logging(level: Optional[str] = None) -> None:
    level = level or load_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
