import sys
import time
from pathlib import Path

import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medicrew.core import history, tracking
from medicrew.core.attachments import (
    IMAGE_EXTENSIONS,
    IMAGE_TYPES,
    Attachment,
    UnsupportedUpload,
    UploadTooLarge,
    audio_attachment,
)
from medicrew.core.config import configure_logging, load_settings
from medicrew.core.generator import analyze_patient_case, get_doctor_profile, update_doctors_list
from medicrew.core.triage import triage_label, triage_style
from medicrew.core.view import bullet_list, require_user, safe_get, top_bar

configure_logging()
settings = load_settings()
state = st.session_state

user = require_user("patient")
store = history.HistoryStore(settings.data_dir, "patient")

state.setdefault("patient_input", "")
state.setdefault("patient_status", "idle")
state.setdefault("patient_result", None)
state.setdefault("tracking_active", False)
state.setdefault("doctor_profile", None)

top_bar(user)

tab_search, tab_history = st.tabs(["Search", "History"])


def render_doctor_profile(profile: dict) -> None:
    with st.container(border=True):
        st.subheader(profile.get("full_name", "Doctor"))
        st.caption(profile.get("headline", ""))
        status = safe_get(profile, "verified_status", "status", default="unverified")
        st.write(f"**Verification:** {status}")
        specialties = [s if isinstance(s, str) else safe_get(s, "name", default="") for s in profile.get("specialties") or []]
        if specialties:
            st.write("**Specialties:** " + ", ".join(specialties))
        if profile.get("languages_spoken"):
            st.write("**Languages:** " + ", ".join(profile["languages_spoken"]))
        for loc in profile.get("practice_locations") or []:
            st.write(f"- {loc.get('clinic_name', '')}, {loc.get('address', '')} ({loc.get('hours', '')})")
        fee = profile.get("consultation_fee") or {}
        if fee:
            st.write(
                f"**Fees:** in person {fee.get('in_person') or '-'} / teleconsult {fee.get('teleconsult') or '-'} {fee.get('currency', '')}"
            )
        st.markdown("**Next available**")
        bullet_list(profile.get("availability_detailed"), empty="No slots listed.")
        if profile.get("emergency_recommendation"):
            st.warning(profile["emergency_recommendation"])
        if st.button("Close profile"):
            state["doctor_profile"] = None
            st.rerun()


def render_doctor_list(result: dict, live: bool) -> None:
    doctors = result.get("nearby_doctors_list") or []
    if not doctors:
        note = safe_get(result, "nearby_doctors_query", "notes", default="")
        if note:
            st.caption(note)
        return

    st.subheader("Nearby Clinicians" + ("  ·  LIVE UPDATES" if live else ""))
    for i, doc in enumerate(doctors):
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 2, 1])
            c1.markdown(f"**{doc.get('name', '')}**")
            c1.caption(f"{doc.get('primary_specialty', '')} · {doc.get('distance_km', '?')} km")
            c2.write(doc.get("availability_summary", ""))
            live_status = safe_get(doc, "live_data", "status")
            if live_status:
                c2.caption(f"Status: {live_status}")
            if c3.button("Profile", key=f"doc_profile_{i}"):
                with st.spinner("Loading profile..."):
                    try:
                        state["doctor_profile"] = get_doctor_profile(doc.get("doctor_id", ""), state["patient_input"])
                    except Exception as e:
                        st.error(f"Could not load profile: {e}")
                st.rerun()


def render_result(result: dict) -> None:
    level = result.get("triage_level", "insufficient_info")
    callout = getattr(st, triage_style(level))
    callout(f"Assessment: {triage_label(level)}")
    if result.get("notes_for_user"):
        st.write(result["notes_for_user"])

    flags = result.get("red_flag_matches") or []
    if flags:
        st.error("Critical alerts")
        bullet_list([f if isinstance(f, str) else (f.get("flag") or f.get("description")) for f in flags])

    c1, c2 = st.columns(2)
    with c1:
        if result.get("first_aid_instructions"):
            st.subheader("First Aid")
            bullet_list(result["first_aid_instructions"])
    with c2:
        meds = result.get("medication_suggestions") or []
        if meds:
            st.subheader("Suggestions (OTC)")
            for med in meds:
                conf = med.get("confidence")
                pct = f" · {float(conf) * 100:.0f}%" if isinstance(conf, (int, float)) else ""
                st.markdown(f"**{med.get('name', '')}**{pct}")
                st.caption(f"{med.get('purpose', '')} · {med.get('typical_dose', '')}")
                if med.get("warnings"):
                    st.caption("Warnings: " + "; ".join(med["warnings"]))

    if result.get("specialties_to_consult"):
        st.subheader("Specialties to consult")
        bullet_list([
            f"{s.get('specialty', '')}: {s.get('reason', '')}" if isinstance(s, dict) else s
            for s in result["specialties_to_consult"]
        ])

    if result.get("next_steps"):
        st.subheader("Next steps")
        bullet_list(result["next_steps"])

    for img in result.get("image_provenance") or []:
        if img.get("upload_status") != "success":
            st.warning(f"Image {img.get('image_id', '')}: {img.get('image_error') or 'not fully read'}. {img.get('retry_suggestion', '')}")

    if result.get("missing_information"):
        with st.expander("Missing information"):
            bullet_list(result["missing_information"])

    with st.expander("Case summary for a doctor"):
        st.write(result.get("case_summary_for_doctor", ""))

    st.download_button(
        "Download result (JSON)",
        data=history.export_bytes(history.make_history_item("patient", state["patient_input"], result)),
        file_name="medicrew-patient-result.json",
        mime="application/json",
    )


# ---------- SEARCH ----------
with tab_search:
    default_consent = bool(user.consents and user.consents.location_access)
    share = st.toggle("Share my location", value=default_consent)
    location = None
    if share:
        c1, c2 = st.columns(2)
        lat = c1.number_input("Latitude", min_value=-90.0, max_value=90.0, value=0.0, format="%.5f")
        lng = c2.number_input("Longitude", min_value=-180.0, max_value=180.0, value=0.0, format="%.5f")
        location = (lat, lng)
    location_consent = "granted" if share else "denied"

    text = st.text_area(
        "Describe your symptoms",
        value=state["patient_input"],
        placeholder="Search symptoms, e.g. 'sore throat and fever for 3 days'",
    )
    uploads = st.file_uploader("Attach images (optional)", type=IMAGE_EXTENSIONS, accept_multiple_files=True)
    recording = st.audio_input("Voice note (optional)")

    images = []
    for up in uploads or []:
        try:
            images.append(Attachment.from_upload(up, settings.max_upload_bytes, IMAGE_TYPES))
        except (UploadTooLarge, UnsupportedUpload) as e:
            st.error(str(e))
    if images:
        st.caption(f"{len(images)} image(s) attached")

    if st.button("Search", type="primary", disabled=not (text.strip() or images)):
        state["patient_input"] = text
        state["patient_status"] = "processing"
        with st.spinner("Analyzing case..."):
            try:
                audio = audio_attachment(recording, settings.max_upload_bytes)
                result = analyze_patient_case(text, images, audio=audio, location=location, user=user, settings=settings)
            except Exception as e:
                state["patient_status"] = "error"
                st.error(f"Analysis failed: {e}")
            else:
                state["patient_result"] = result
                state["patient_status"] = "success"
                state["tracking_active"] = location is not None
                state["tracking_location"] = location
                state["tracking_last"] = time.monotonic()
                if history.should_save(result, user):
                    store.add(user, history.make_history_item("patient", text, result))

    result = state["patient_result"]
    if result is None and state["patient_status"] != "error":
        st.info("Start consultation: describe symptoms or upload an image for triage.")
    elif result is not None:
        render_result(result)

        live = tracking.tracking_enabled(
            state["tracking_active"], result, state.get("tracking_location"), location_consent
        )
        if live:
            @st.fragment(run_every=settings.tracking_interval_seconds)
            def live_doctors():
                if tracking.is_due(state.get("tracking_last"), settings.tracking_interval_seconds):
                    state["patient_result"] = tracking.refresh_doctors(
                        state["patient_result"],
                        state["tracking_location"],
                        state["patient_input"],
                        update_doctors_list,
                    )
                    state["tracking_last"] = time.monotonic()
                render_doctor_list(state["patient_result"], live=True)

            live_doctors()
        else:
            render_doctor_list(result, live=False)

        if state["doctor_profile"]:
            render_doctor_profile(state["doctor_profile"])

        st.caption(result.get("disclaimer", ""))

# ---------- HISTORY ----------
with tab_history:
    if user.is_guest:
        st.info("Log in or create an account to save searches and view your history.")
    else:
        items = store.load(user)
        if not items:
            st.caption("No saved searches yet.")
        for idx, item in enumerate(items):
            with st.container(border=True):
                level = item.data.get("triage_level", "")
                st.markdown(f"**{item.query_summary or '(no text)'}**")
                st.caption(f"{item.timestamp} · {triage_label(level)}")
                c1, c2, c3 = st.columns(3)
                if c1.button("Continue case", key=f"load_{item.id}_{idx}"):
                    state["patient_result"] = item.data
                    state["patient_input"] = item.data.get("user_input_raw", "")
                    state["tracking_active"] = False
                    st.rerun()
                c2.download_button(
                    "Export",
                    data=history.export_bytes(item),
                    file_name=history.export_filename(item),
                    mime="application/json",
                    key=f"export_{item.id}_{idx}",
                )
                if c3.button("Delete", key=f"delete_{item.id}_{idx}"):
                    store.delete(user, item.id)
                    st.rerun()
