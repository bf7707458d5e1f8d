"""
App navigation over a session-state mapping (st.session_state in the app,
a plain dict in tests).
"""
from typing import MutableMapping, Optional

from .models import UserProfile

INTRO = "INTRO"
SELECTION = "SELECTION"
AUTH = "AUTH"
PATIENT = "PATIENT"
DOCTOR = "DOCTOR"
ACCOUNT = "ACCOUNT"

PAGES = {
    INTRO: "Home.py",
    SELECTION: "Home.py",
    AUTH: "Home.py",
    PATIENT: "pages/01_Patient_Mode.py",
    DOCTOR: "pages/02_Doctor_Mode.py",
    ACCOUNT: "pages/03_Account.py",
}


def ensure_defaults(state: MutableMapping) -> None:
    state.setdefault("app_mode", INTRO)
    state.setdefault("target_mode", None)
    state.setdefault("previous_mode", None)
    state.setdefault("user", None)


def current_user(state: MutableMapping) -> Optional[UserProfile]:
    return state.get("user")


def finish_intro(state: MutableMapping) -> None:
    state["app_mode"] = SELECTION


def choose_mode(state: MutableMapping, mode: str) -> None:
    if mode not in (PATIENT, DOCTOR):
        raise ValueError(f"Unknown mode: {mode}")
    state["target_mode"] = mode
    state["app_mode"] = AUTH


def auth_complete(state: MutableMapping, user: UserProfile) -> None:
    state["user"] = user
    if state.get("target_mode") in (PATIENT, DOCTOR):
        state["app_mode"] = state["target_mode"]


def go_home(state: MutableMapping) -> None:
    state["app_mode"] = INTRO
    state["user"] = None
    state["target_mode"] = None


def open_account(state: MutableMapping) -> None:
    state["previous_mode"] = state.get("app_mode")
    state["app_mode"] = ACCOUNT


def account_back(state: MutableMapping) -> None:
    previous = state.get("previous_mode")
    state["app_mode"] = previous if previous else SELECTION
    state["previous_mode"] = None


def login_request(state: MutableMapping) -> None:
    user = current_user(state)
    if not state.get("target_mode") and user is not None:
        state["target_mode"] = DOCTOR if user.type == "doctor" else PATIENT
    state["app_mode"] = AUTH


def logout(state: MutableMapping) -> None:
    state["user"] = None
    state["target_mode"] = None
    state["previous_mode"] = None
    state["app_mode"] = INTRO


def update_user(state: MutableMapping, user: UserProfile) -> None:
    state["user"] = user


def page_for(state: MutableMapping) -> str:
    return PAGES.get(state.get("app_mode", INTRO), PAGES[INTRO])
