from medicrew.core.account import (
    GUEST_ACCOUNT_VIEW,
    account_view,
    attach_license,
    can_store_history,
    doctor_needs_license,
    editable_fields,
    update_profile,
)
from medicrew.core.attachments import Attachment
from medicrew.core.models import Consents


def test_guest_gets_fixed_view(guest):
    assert account_view(guest) == {"guest_account_view": GUEST_ACCOUNT_VIEW}
    assert account_view(None) == {"guest_account_view": GUEST_ACCOUNT_VIEW}
    assert editable_fields(guest) == []
    assert not can_store_history(guest)


def test_patient_view(patient):
    patient.allergies = ["penicillin"]
    view = account_view(patient)
    data = view["account_view_data"]
    assert data["role"] == "patient"
    assert data["allergies"] == ["penicillin"]
    assert data["can_logout"] is True
    assert data["can_change_email"] is False
    assert "medical_license_number" not in data
    assert "dob" in view["account_editable_fields"]


def test_doctor_view(doctor):
    data = account_view(doctor)["account_view_data"]
    assert data["verification_status"] == "pending"
    assert "specializations" in editable_fields(doctor)
    assert "dob" not in editable_fields(doctor)


def test_update_profile_ignores_forbidden_fields(patient):
    updated = update_profile(
        patient,
        {
            "name": "Patricia",
            "allergies": "penicillin, , latex",
            "email": "evil@example.com",
            "type": "doctor",
            "consents": {"store_history": False, "location_access": 1, "bogus": True},
        },
    )
    assert updated.name == "Patricia"
    assert updated.allergies == ["penicillin", "latex"]
    assert updated.email == "pat@example.com"
    assert updated.type == "patient"
    assert updated.consents == Consents(store_history=False, store_images=False, location_access=True)
    assert patient.name == "Pat"


def test_doctor_specializations(doctor):
    updated = update_profile(doctor, {"specializations": ["Nephrology ", "ICU"], "dob": "1970-01-01"})
    assert updated.specializations == ["Nephrology", "ICU"]
    assert updated.dob is None


def test_license_gate(doctor):
    assert not doctor_needs_license(doctor)
    doctor.license_file_id = None
    assert doctor_needs_license(doctor)
    fixed = attach_license(doctor, Attachment("lic.pdf", "application/pdf", b"%PDF"))
    assert fixed.license_file_id.endswith("_lic.pdf")
    assert fixed.verification_status == "pending"
    assert not doctor_needs_license(fixed)


def test_history_consent(patient):
    assert can_store_history(patient)
    patient.consents = None
    assert can_store_history(patient)
    patient.consents = Consents(store_history=False)
    assert not can_store_history(patient)
