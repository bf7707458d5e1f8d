import re

import pytest

from medicrew.core.attachments import Attachment
from medicrew.core.auth import (
    DEVICE_ACCOUNTS,
    FALLBACK_GOOGLE_ACCOUNT,
    LICENSE_REQUIRED_MSG,
    AuthError,
    GoogleAuthFlow,
    complete_auth,
    email_auth,
    guest_profile,
)
from medicrew.core.models import Consents, UserProfile

LICENSE = Attachment("license.pdf", "application/pdf", b"%PDF")


def test_guest_profile():
    g = guest_profile()
    assert g.is_guest
    assert re.fullmatch(r"guest-\d+", g.id)
    assert g.name == "Guest User"


@pytest.mark.parametrize(
    "kwargs,message",
    [
        ({"email": "nope", "password": "x"}, "Enter a valid email address."),
        ({"email": "a@b.c", "password": ""}, "Enter your password."),
        ({"email": "a@b.c", "password": "x", "registering": True}, "Enter your full name."),
    ],
)
def test_email_auth_validation(kwargs, message):
    with pytest.raises(AuthError, match=message):
        email_auth("PATIENT", **kwargs)


def test_email_login_patient():
    u = email_auth("PATIENT", "a@b.c", "pw")
    assert u.type == "patient"
    assert u.name == "User"
    assert u.auth_providers == ["email"]
    assert u.verification_status is None


def test_doctor_registration_requires_license():
    with pytest.raises(AuthError, match=LICENSE_REQUIRED_MSG):
        email_auth("DOCTOR", "d@c.com", "pw", name="Dr. D", registering=True)


def test_doctor_registration_with_license():
    u = email_auth("DOCTOR", "d@c.com", "pw", name="Dr. D", license_number=" MD-1 ", license_file=LICENSE, registering=True)
    assert u.type == "doctor"
    assert u.name == "Dr. D"
    assert u.license_number == "MD-1"
    assert u.license_file_id.startswith("lic_")
    assert u.verification_status == "pending"


def test_google_flow_with_consent():
    flow = GoogleAuthFlow("PATIENT")
    assert flow.candidates == []
    flow.start()
    flow.consent(True)
    assert flow.step == "GOOGLE_CHOOSER"
    assert flow.candidates == DEVICE_ACCOUNTS
    email, name = DEVICE_ACCOUNTS[1]
    flow.select(email, name)
    assert flow.step == "GOOGLE_CONFIRM"
    flow.confirm()
    assert flow.delay == GoogleAuthFlow.DELAYS["confirm"]
    user = flow.finish()
    assert (user.email, user.name) == (email, name)
    assert user.auth_providers == ["google"]
    assert user.email_verified


def test_google_flow_denied_uses_fallback_account():
    flow = GoogleAuthFlow("DOCTOR")
    flow.start()
    flow.consent(False)
    assert flow.step == "GOOGLE_SIM"
    user = flow.finish()
    assert (user.email, user.name) == FALLBACK_GOOGLE_ACCOUNT
    assert user.type == "doctor"
    assert user.verification_status == "pending"


def test_google_flow_cancel_and_wrong_steps():
    flow = GoogleAuthFlow("PATIENT")
    with pytest.raises(AuthError):
        flow.consent(True)
    flow.start()
    flow.consent(True)
    flow.select(*DEVICE_ACCOUNTS[0])
    flow.cancel()
    assert flow.step == "GOOGLE_CHOOSER"
    assert flow.selected is None
    with pytest.raises(AuthError):
        flow.confirm()
    flow.cancel()
    assert flow.step == "CHOICE"
    with pytest.raises(AuthError):
        flow.finish()


def test_complete_auth_defaults():
    u = complete_auth(email_auth("PATIENT", "a@b.c", "pw"))
    assert u.consents == Consents(store_history=True, store_images=False, location_access=False)
    assert u.joined_date

    custom = Consents(store_history=False)
    kept = complete_auth(UserProfile(id="x", type="patient", name="n", consents=custom))
    assert kept.consents is custom


def test_registration_keeps_uploaded_profile_picture():
    pic = Attachment("me.png", "image/png", b"\x89PNG")
    u = email_auth("PATIENT", "a@b.c", "pw", name="Ann", registering=True, profile_pic_url=pic.to_data_url())
    assert u.profile_pic_url.startswith("data:image/png;base64,")
    assert Attachment.from_data_url(u.profile_pic_url).data == b"\x89PNG"
