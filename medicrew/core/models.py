from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

USER_TYPES = ("guest", "patient", "doctor")
VERIFICATION_STATUSES = ("unverified", "pending", "verified", "rejected")
TRIAGE_LEVELS = ("emergency", "urgent", "see_soon", "self_care", "insufficient_info")


@dataclass
class Consents:
    store_history: bool = True
    store_images: bool = False
    location_access: bool = False


@dataclass
class UserProfile:
    id: str
    type: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_pic_url: Optional[str] = None
    # patient
    dob: Optional[str] = None
    age: Optional[int] = None
    allergies: List[str] = field(default_factory=list)
    # doctor
    license_number: Optional[str] = None
    license_authority: Optional[str] = None
    license_file_id: Optional[str] = None
    specializations: List[str] = field(default_factory=list)
    clinic_info: Optional[str] = None
    verification_status: Optional[str] = None
    # common
    consents: Optional[Consents] = None
    joined_date: Optional[str] = None
    auth_providers: List[str] = field(default_factory=list)
    email_verified: bool = False

    @property
    def is_guest(self) -> bool:
        return self.type == "guest"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HistoryItem:
    id: str
    timestamp: str
    query_summary: str
    type: str
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistoryItem":
        return cls(
            id=str(d.get("id") or ""),
            timestamp=str(d.get("timestamp") or ""),
            query_summary=str(d.get("query_summary") or ""),
            type=str(d.get("type") or "patient"),
            data=d.get("data") if isinstance(d.get("data"), dict) else {},
        )
