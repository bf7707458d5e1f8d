import sys
import time
from pathlib import Path

import streamlit as st

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medicrew.core import session
from medicrew.core.attachments import (
    IMAGE_EXTENSIONS,
    IMAGE_TYPES,
    LICENSE_EXTENSIONS,
    Attachment,
    UnsupportedUpload,
    UploadTooLarge,
)
from medicrew.core.auth import AuthError, GoogleAuthFlow, complete_auth, email_auth, guest_profile
from medicrew.core.config import APP, configure_logging, load_settings

st.set_page_config(page_title="Medicrew", layout="wide")
configure_logging()

settings = load_settings()
state = st.session_state
session.ensure_defaults(state)
state.setdefault("auth_method", "CHOICE")
state.setdefault("registering", False)


def _finish(user) -> None:
    session.auth_complete(state, complete_auth(user))
    state["auth_method"] = "CHOICE"
    state.pop("google_flow", None)
    st.switch_page(session.page_for(state))


# ---------- INTRO ----------
if state["app_mode"] == session.INTRO:
    st.title(APP["title"])
    st.caption(APP["tagline"])
    if st.button("Enter"):
        session.finish_intro(state)
        st.rerun()
    st.stop()

# already signed in: jump straight to the portal
if state["app_mode"] in (session.PATIENT, session.DOCTOR, session.ACCOUNT):
    st.switch_page(session.page_for(state))

# ---------- SELECTION ----------
if state["app_mode"] == session.SELECTION:
    st.title(APP["title"])
    st.caption(APP["tagline"])
    c1, c2 = st.columns(2)
    with c1.container(border=True):
        st.subheader("I am a Patient")
        st.caption("Symptom triage & guidance")
        if st.button("Continue as Patient", use_container_width=True):
            session.choose_mode(state, session.PATIENT)
            st.rerun()
    with c2.container(border=True):
        st.subheader("I am a Doctor")
        st.caption("Clinical decision support")
        if st.button("Continue as Doctor", use_container_width=True):
            session.choose_mode(state, session.DOCTOR)
            st.rerun()
    st.info(APP["disclaimer"])
    st.stop()

# ---------- AUTH ----------
target = state.get("target_mode") or session.PATIENT
st.title(f"{'Patient' if target == session.PATIENT else 'Clinician'} Portal")

if st.button("Back"):
    state["app_mode"] = session.SELECTION
    state["auth_method"] = "CHOICE"
    state.pop("google_flow", None)
    st.rerun()

method = state["auth_method"]
flow = state.get("google_flow")

if method == "CHOICE":
    if st.button("Continue with Google", use_container_width=True):
        flow = GoogleAuthFlow(target)
        flow.start()
        state["google_flow"] = flow
        state["auth_method"] = "GOOGLE"
        st.rerun()
    if st.button("Sign in with Email", use_container_width=True):
        state["auth_method"] = "EMAIL"
        st.rerun()
    st.divider()
    if st.button("Continue as Guest (No History)", use_container_width=True):
        _finish(guest_profile())

elif method == "GOOGLE" and flow is not None:
    if flow.step == "GOOGLE_CONSENT":
        st.write("Allow Medicrew to check for Google accounts on this device?")
        st.caption("We only use this to show an account chooser. Nothing is signed in automatically.")
        c1, c2 = st.columns(2)
        if c1.button("No, thanks"):
            flow.consent(False)
            st.rerun()
        if c2.button("Allow"):
            flow.consent(True)
            with st.spinner("Detecting accounts..."):
                time.sleep(flow.delay)
            st.rerun()

    elif flow.step == "GOOGLE_CHOOSER":
        st.subheader("Choose an account")
        for email, name in flow.candidates:
            if st.button(f"{name} · {email}", key=f"acct_{email}", use_container_width=True):
                flow.select(email, name)
                st.rerun()
        if st.button("Cancel"):
            flow.cancel()
            state["auth_method"] = "CHOICE"
            st.rerun()

    elif flow.step == "GOOGLE_CONFIRM":
        email, name = flow.selected
        st.write(f"Sign in to Medicrew as **{name}** ({email})?")
        c1, c2 = st.columns(2)
        if c1.button("Cancel"):
            flow.cancel()
            st.rerun()
        if c2.button("Continue"):
            flow.confirm()
            st.rerun()

    elif flow.step == "GOOGLE_SIM":
        with st.spinner("Signing in with Google..."):
            time.sleep(flow.delay)
        _finish(flow.finish())

elif method == "EMAIL":
    registering = st.toggle("New to Medicrew? Create Account", value=state["registering"])
    state["registering"] = registering

    with st.form("email_auth"):
        name = st.text_input("Full Name") if registering else ""
        pic_upload = st.file_uploader("Profile picture (optional)", type=IMAGE_EXTENSIONS) if registering else None
        email = st.text_input("Email Address")
        password = st.text_input("Password", type="password")
        license_number = ""
        license_upload = None
        if target == session.DOCTOR and registering:
            license_number = st.text_input("Medical License Number")
            license_upload = st.file_uploader("Medical license document", type=LICENSE_EXTENSIONS)
        if not registering:
            st.checkbox("Remember me")
        submitted = st.form_submit_button("CREATE ACCOUNT" if registering else "SIGN IN")

    if submitted:
        try:
            license_file = (
                Attachment.from_upload(license_upload, settings.max_license_bytes) if license_upload else None
            )
            profile_pic_url = (
                Attachment.from_upload(pic_upload, settings.max_upload_bytes, IMAGE_TYPES).to_data_url()
                if pic_upload
                else None
            )
            user = email_auth(
                target,
                email=email,
                password=password,
                name=name,
                license_number=license_number,
                license_file=license_file,
                registering=registering,
                profile_pic_url=profile_pic_url,
            )
        except (AuthError, UploadTooLarge, UnsupportedUpload) as e:
            st.error(str(e))
        else:
            _finish(user)

    if st.button("Use another method"):
        state["auth_method"] = "CHOICE"
        st.rerun()
