import sys
from pathlib import Path

import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medicrew.core import session
from medicrew.core.account import account_view, attach_license, update_profile
from medicrew.core.attachments import LICENSE_EXTENSIONS, Attachment, UploadTooLarge
from medicrew.core.config import configure_logging, load_settings
from medicrew.core.view import require_user

configure_logging()
settings = load_settings()
state = st.session_state

user = require_user()
state.setdefault("confirm_logout", False)

BADGES = {
    "verified": ("success", "Verified"),
    "pending": ("warning", "Pending verification"),
    "rejected": ("error", "Verification rejected"),
    "unverified": ("info", "Unverified"),
}

if st.button("Back"):
    session.account_back(state)
    st.switch_page(session.page_for(state))

st.title("Account")
if state.pop("profile_saved", False):
    st.success("Profile updated.")
view = account_view(user)

# ---------- GUEST ----------
if "guest_account_view" in view:
    guest = view["guest_account_view"]
    st.subheader(guest["display_name"])
    st.info(guest["requires_login_message"])
    c1, c2 = st.columns(2)
    if c1.button("Log In", use_container_width=True):
        session.login_request(state)
        state["registering"] = False
        state["auth_method"] = "EMAIL"
        st.switch_page(session.page_for(state))
    if c2.button("Create Account", type="primary", use_container_width=True):
        session.login_request(state)
        state["registering"] = True
        state["auth_method"] = "EMAIL"
        st.switch_page(session.page_for(state))
    st.stop()

data = view["account_view_data"]
editable = set(view["account_editable_fields"])

st.subheader(data["full_name"])
st.caption(f"{data['role'].title()} · {data.get('email') or ''}")

if data["role"] == "doctor":
    style, label = BADGES.get(data.get("verification_status"), BADGES["unverified"])
    getattr(st, style)(label)

# ---------- PROFILE ----------
with st.form("profile"):
    name = st.text_input("Full Name", value=data["full_name"] or "")
    st.text_input("Email", value=data.get("email") or "", disabled=not data["can_change_email"])
    phone = st.text_input("Phone", value=data.get("phone") or "")
    pic = st.text_input("Profile picture URL", value=data.get("profile_pic_url") or "")

    changes = {"name": name, "phone": phone or None, "profile_pic_url": pic or None}
    if "dob" in editable:
        changes["dob"] = st.text_input("Date of birth (YYYY-MM-DD)", value=data.get("date_of_birth") or "") or None
        changes["allergies"] = st.text_input("Allergies (comma separated)", value=", ".join(data.get("allergies") or []))
    if "specializations" in editable:
        changes["specializations"] = st.text_input(
            "Specializations (comma separated)", value=", ".join(data.get("specializations") or [])
        )
        changes["clinic_info"] = st.text_area("Clinic info", value=data.get("clinic_info") or "") or None

    st.markdown("**Privacy**")
    flags = data["consent_flags"]
    changes["consents"] = {
        "store_history": st.checkbox("Store my history", value=flags["store_history"]),
        "store_images": st.checkbox("Store uploaded images", value=flags["store_images"]),
        "location_access": st.checkbox("Allow location access", value=flags["location_access"]),
    }

    if st.form_submit_button("Save changes", type="primary"):
        session.update_user(state, update_profile(user, changes))
        state["profile_saved"] = True
        st.rerun()

# ---------- LICENSE ----------
if data["role"] == "doctor":
    st.subheader("Medical license")
    st.write(f"License number: {data.get('medical_license_number') or 'not provided'}")
    if data.get("license_file_id"):
        st.caption(f"On file: {data['license_file_id']}")
    upload = st.file_uploader("Upload license document", type=LICENSE_EXTENSIONS)
    if upload is not None and st.button("Submit for verification"):
        try:
            doc = Attachment.from_upload(upload, settings.max_license_bytes)
        except UploadTooLarge as e:
            st.error(str(e))
        else:
            session.update_user(state, attach_license(user, doc))
            st.rerun()

# ---------- SECURITY ----------
st.subheader("Account")
st.caption(f"ID: {user.id}")
st.caption(f"Joined: {data.get('account_creation_date') or '-'}")
if data.get("auth_providers"):
    st.caption("Sign-in: " + ", ".join(data["auth_providers"]))

if not state["confirm_logout"]:
    if st.button("Log out"):
        state["confirm_logout"] = True
        st.rerun()
else:
    st.warning("Log out of Medicrew?")
    c1, c2 = st.columns(2)
    if c1.button("Cancel"):
        state["confirm_logout"] = False
        st.rerun()
    if c2.button("Log out", type="primary"):
        state["confirm_logout"] = False
        session.logout(state)
        st.switch_page(session.page_for(state))
