import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .attachments import Attachment
from .models import Consents, UserProfile

DEFAULT_PROFILE_PIC_URL = ""

GUEST_ACCOUNT_VIEW = {
    "role": "guest",
    "display_name": "Guest User",
    "default_profile_pic_url": DEFAULT_PROFILE_PIC_URL,
    "can_edit": False,
    "can_view_history": False,
    "requires_login_message": "Log in or create an account to save searches and edit your profile.",
    "can_logout": False,
}

_COMMON_EDITABLE = ["name", "phone", "profile_pic_url", "consents"]
_PATIENT_EDITABLE = _COMMON_EDITABLE + ["dob", "allergies"]
_DOCTOR_EDITABLE = _COMMON_EDITABLE + ["specializations", "clinic_info"]
_LIST_FIELDS = ("allergies", "specializations")


def can_store_history(user: Optional[UserProfile]) -> bool:
    if user is None or user.is_guest:
        return False
    return user.consents is None or user.consents.store_history


def doctor_needs_license(user: Optional[UserProfile]) -> bool:
    return user is not None and user.type == "doctor" and not user.license_file_id


def editable_fields(user: Optional[UserProfile]) -> List[str]:
    if user is None or user.is_guest:
        return []
    if user.type == "doctor":
        return list(_DOCTOR_EDITABLE)
    return list(_PATIENT_EDITABLE)


def account_view(user: Optional[UserProfile]) -> Dict[str, Any]:
    """What the Account page may show. Guests only ever get the fixed guest view."""
    if user is None or user.is_guest:
        return {"guest_account_view": dict(GUEST_ACCOUNT_VIEW)}

    consents = user.consents or Consents()
    data = {
        "full_name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.type,
        "profile_pic_url": user.profile_pic_url,
        "consent_flags": {
            "store_history": consents.store_history,
            "store_images": consents.store_images,
            "location_access": consents.location_access,
        },
        "account_creation_date": user.joined_date,
        "auth_providers": list(user.auth_providers),
        "email_verified": user.email_verified,
        "can_change_email": user.email_verified,
        "can_logout": True,
    }
    if user.type == "patient":
        data.update(date_of_birth=user.dob, age=user.age, allergies=list(user.allergies))
    else:
        data.update(
            medical_license_number=user.license_number,
            license_authority=user.license_authority,
            license_file_id=user.license_file_id,
            specializations=list(user.specializations),
            clinic_info=user.clinic_info,
            verification_status=user.verification_status or "unverified",
        )
    return {"account_view_data": data, "account_editable_fields": editable_fields(user)}


def _split_csv(value: Any) -> List[str]:
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(s).strip() for s in value or [] if str(s).strip()]


def update_profile(user: UserProfile, changes: Dict[str, Any]) -> UserProfile:
    """Apply only the fields this user may edit; everything else is ignored."""
    allowed = set(editable_fields(user))
    clean: Dict[str, Any] = {}
    for key, value in changes.items():
        if key not in allowed:
            continue
        if key in _LIST_FIELDS:
            value = _split_csv(value)
        elif key == "consents" and isinstance(value, dict):
            value = Consents(**{k: bool(v) for k, v in value.items() if k in Consents.__dataclass_fields__})
        clean[key] = value
    return replace(user, **clean)


def attach_license(user: UserProfile, upload: Attachment) -> UserProfile:
    """A new license document always sends the account back to pending review."""
    return replace(
        user,
        license_file_id=f"lic_{int(time.time() * 1000)}_{upload.name}",
        verification_status="pending",
    )
