"""
Sign-in flows. There is no backend: email sign-in builds a profile from the
form and the Google flow is a scripted account chooser with fixed delays.
"""
import logging
import time
from dataclasses import replace
from datetime import date
from typing import List, Optional, Tuple

from .attachments import Attachment
from .config import DEFAULT_CONSENTS
from .models import Consents, UserProfile

logger = logging.getLogger(__name__)

LICENSE_REQUIRED_MSG = "Please upload your medical license document to proceed."

DEVICE_ACCOUNTS: List[Tuple[str, str]] = [
    ("alice.doe@gmail.com", "Alice Doe"),
    ("dr.smith@clinic.com", "Dr. John Smith"),
    ("new.user@example.com", "New User"),
]
FALLBACK_GOOGLE_ACCOUNT = ("user@gmail.com", "Google User")


class AuthError(ValueError):
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def _user_type(mode: str) -> str:
    return "patient" if mode.upper() == "PATIENT" else "doctor"


def guest_profile() -> UserProfile:
    return UserProfile(
        id=f"guest-{_now_ms()}",
        type="guest",
        name="Guest User",
        auth_providers=[],
        email_verified=False,
    )


def email_auth(
    mode: str,
    email: str,
    password: str,
    name: str = "",
    license_number: str = "",
    license_file: Optional[Attachment] = None,
    registering: bool = False,
    profile_pic_url: Optional[str] = None,
) -> UserProfile:
    email = (email or "").strip()
    if "@" not in email:
        raise AuthError("Enter a valid email address.")
    if not password:
        raise AuthError("Enter your password.")
    if registering and not (name or "").strip():
        raise AuthError("Enter your full name.")

    user_type = _user_type(mode)
    if user_type == "doctor" and registering and license_file is None:
        raise AuthError(LICENSE_REQUIRED_MSG)

    stamp = _now_ms()
    user = UserProfile(
        id=f"user-{stamp}",
        type=user_type,
        # a real login would get the name back from the server
        name=name.strip() if registering else "User",
        email=email,
        profile_pic_url=profile_pic_url,
        license_number=(license_number.strip() or None) if user_type == "doctor" else None,
        license_file_id=f"lic_{stamp}" if license_file is not None else None,
        verification_status="pending" if user_type == "doctor" else None,
        auth_providers=["email"],
        email_verified=False,
    )
    logger.info("Email %s for %s account", "registration" if registering else "sign-in", user_type)
    return user


class GoogleAuthFlow:
    """
    CHOICE -> GOOGLE_CONSENT -> (allow) GOOGLE_CHOOSER -> GOOGLE_CONFIRM -> GOOGLE_SIM -> done
                             -> (deny)  GOOGLE_SIM with the fallback account
    Nothing signs in without an explicit account pick and confirmation.
    """

    DELAYS = {"detect": 0.5, "fallback": 1.5, "confirm": 1.0}

    def __init__(self, mode: str):
        self.mode = mode
        self.step = "CHOICE"
        self.selected: Optional[Tuple[str, str]] = None
        self.delay = 0.0

    def start(self) -> None:
        self.step = "GOOGLE_CONSENT"

    def consent(self, allowed: bool) -> None:
        if self.step != "GOOGLE_CONSENT":
            raise AuthError(f"Unexpected consent answer in step {self.step}")
        if allowed:
            self.delay = self.DELAYS["detect"]
            self.step = "GOOGLE_CHOOSER"
        else:
            self.selected = FALLBACK_GOOGLE_ACCOUNT
            self.delay = self.DELAYS["fallback"]
            self.step = "GOOGLE_SIM"

    @property
    def candidates(self) -> List[Tuple[str, str]]:
        return list(DEVICE_ACCOUNTS) if self.step == "GOOGLE_CHOOSER" else []

    def select(self, email: str, name: str) -> None:
        if self.step != "GOOGLE_CHOOSER":
            raise AuthError(f"Cannot select an account in step {self.step}")
        self.selected = (email, name)
        self.step = "GOOGLE_CONFIRM"

    def confirm(self) -> None:
        if self.step != "GOOGLE_CONFIRM" or self.selected is None:
            raise AuthError("No account selected.")
        self.delay = self.DELAYS["confirm"]
        self.step = "GOOGLE_SIM"

    def cancel(self) -> None:
        if self.step == "GOOGLE_CONFIRM":
            self.selected = None
            self.step = "GOOGLE_CHOOSER"
        else:
            self.selected = None
            self.step = "CHOICE"

    def finish(self) -> UserProfile:
        if self.step != "GOOGLE_SIM" or self.selected is None:
            raise AuthError(f"Google sign-in not ready (step {self.step})")
        email, name = self.selected
        user_type = _user_type(self.mode)
        return UserProfile(
            id=f"google-user-{_now_ms()}",
            type=user_type,
            name=name,
            email=email,
            auth_providers=["google"],
            email_verified=True,
            verification_status="pending" if user_type == "doctor" else None,
        )


def complete_auth(user: UserProfile) -> UserProfile:
    return replace(
        user,
        consents=user.consents or Consents(**DEFAULT_CONSENTS),
        joined_date=date.today().isoformat(),
    )
