import json
import sys
from pathlib import Path

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medicrew.core import history, session
from medicrew.core.account import doctor_needs_license
from medicrew.core.attachments import (
    CLINICAL_FILE_EXTENSIONS,
    CLINICAL_FILE_TYPES,
    Attachment,
    UnsupportedUpload,
    UploadTooLarge,
    audio_attachment,
)
from medicrew.core.config import configure_logging, load_settings
from medicrew.core.generator import analyze_doctor_case
from medicrew.core.view import bullet_list, require_user, safe_get, top_bar

configure_logging()
settings = load_settings()
state = st.session_state

user = require_user("doctor")
store = history.HistoryStore(settings.data_dir, "doctor")

state.setdefault("doctor_input", "")
state.setdefault("doctor_status", "idle")
state.setdefault("doctor_result", None)
state.setdefault("doctor_upload_key", 0)

top_bar(user)

if doctor_needs_license(user):
    st.error("Verification required")
    st.write("Upload your medical license on the Account page before using clinical decision support.")
    if st.button("Go to Account Upload"):
        session.open_account(state)
        st.switch_page(session.page_for(state))
    st.stop()


def _evidence_lines(evidence) -> list:
    lines = []
    for ev in evidence or []:
        if isinstance(ev, dict):
            src = ev.get("source") or ev.get("publisher") or "source"
            url = ev.get("url")
            lines.append(f"[{src}]({url})" if url else src)
        else:
            lines.append(str(ev))
    return lines


def entities_frame(report: dict) -> pd.DataFrame:
    cols = ["category", "name", "value", "unit", "reference_range", "flag", "confidence", "source_snippet"]
    df = pd.DataFrame(report.get("extracted_entities") or [])
    if df.empty:
        return df
    return df[[c for c in cols if c in df.columns]]


def render_result(result: dict) -> None:
    st.subheader("Patient summary")
    st.write(result.get("patient_summary", ""))

    for flag in result.get("red_flags") or []:
        if isinstance(flag, dict):
            st.error(f"{flag.get('description', '')} ({flag.get('urgency', '')}): {flag.get('suggested_action', '')}")
        else:
            st.error(str(flag))

    if result.get("data_insufficiency_notes"):
        st.warning(result["data_insufficiency_notes"])

    pattern = result.get("treatment_pattern_detected") or {}
    if pattern.get("pattern_id"):
        st.info(f"Pattern detected: {pattern.get('pattern_description', pattern['pattern_id'])}")

    st.subheader("1. Treatment procedure")
    steps = result.get("treatment_procedure") or []
    if not steps:
        st.caption("No procedure generated.")
    for step in steps:
        with st.container(border=True):
            st.markdown(f"**Step {step.get('step_number', '?')}.** {step.get('description', '')}")
            meta = []
            if step.get("time_required"):
                meta.append(f"Time: {step['time_required']}")
            if step.get("equipment_needed"):
                meta.append("Equipment: " + ", ".join(step["equipment_needed"]))
            if step.get("risks"):
                meta.append("Risks: " + ", ".join(step["risks"]))
            if meta:
                st.caption(" · ".join(meta))

    st.subheader("2. Medications during treatment")
    meds = result.get("medications_during_treatment") or []
    if meds:
        df = pd.DataFrame(meds)
        st.dataframe(
            df[[c for c in ["drug_name", "indication", "dosage", "route", "frequency", "duration", "confidence"] if c in df.columns]],
            use_container_width=True,
        )
        for med in meds:
            if med.get("contraindications") or med.get("monitoring_requirements"):
                with st.expander(f"{med.get('drug_name', '')}: details"):
                    st.write("**Adjustment rules:** " + str(med.get("adjustment_rules", "")))
                    st.write("**Contraindications**")
                    bullet_list(med.get("contraindications"))
                    st.write("**Monitoring**")
                    bullet_list(med.get("monitoring_requirements"))
                    bullet_list(_evidence_lines(med.get("evidence")))
    else:
        st.caption("No in-treatment medications generated.")
    st.caption("Requires clinician approval.")

    st.subheader("3. Discharge instructions")
    instructions = result.get("discharge_instructions") or []
    if not instructions:
        st.caption("No discharge instructions generated.")
    for inst in instructions:
        with st.container(border=True):
            st.markdown(f"**{inst.get('instruction', '')}**")
            st.caption(inst.get("reason", ""))
            if inst.get("warning_signs"):
                st.write("Warning signs: " + ", ".join(inst["warning_signs"]))
            if inst.get("follow_up_interval"):
                st.write(f"Follow-up: {inst['follow_up_interval']}")

    st.subheader("4. Post-discharge medication plan")
    post = result.get("post_discharge_medications") or []
    if post:
        df = pd.DataFrame(post)
        st.dataframe(
            df[[c for c in ["drug_name", "dosage", "route", "frequency", "duration", "instructions"] if c in df.columns]],
            use_container_width=True,
        )
    else:
        st.caption("No post-discharge plan generated.")

    reports = result.get("parsed_reports") or []
    if reports:
        st.subheader("Parsed reports")
    for report in reports:
        title = f"{report.get('file_name') or report.get('file_id', 'report')} · {report.get('report_type', 'unknown')}"
        with st.expander(title):
            conf = report.get("parsed_confidence")
            if isinstance(conf, (int, float)):
                st.progress(min(max(float(conf), 0.0), 1.0), text=f"Parsed confidence {conf:.0%}")
            if report.get("needs_manual_review"):
                st.warning("Low confidence on critical values: " + ", ".join(report.get("low_confidence_fields") or []) + ". Manual review required.")
            if report.get("parsing_error"):
                st.error(report["parsing_error"])
            df = entities_frame(report)
            if not df.empty:
                st.dataframe(df, use_container_width=True)
            st.write(report.get("summary_findings", ""))

    recs = result.get("personalized_recommendations") or []
    if recs:
        st.subheader("Personalized recommendations")
    for rec in recs:
        with st.container(border=True):
            st.markdown(f"**{rec.get('action', '')}**: {rec.get('suggestion', '')}")
            if rec.get("exact_changes"):
                st.write(rec["exact_changes"])
            st.caption(
                f"{rec.get('timeframe', '')} · evidence {rec.get('evidence_strength', '?')} · confidence {rec.get('confidence', '?')}"
            )
            st.write(rec.get("clinical_rationale", ""))
            bullet_list(_evidence_lines(rec.get("evidence")))
            for prov in rec.get("provenance_files") or []:
                st.caption(f"{prov.get('file_id', '')}: \"{prov.get('snippet_quote', '')}\"")

    if result.get("alternative_options"):
        with st.expander("Alternative options"):
            bullet_list([
                f"{o.get('option_description', '')}: {o.get('rationale', '')}" if isinstance(o, dict) else o
                for o in result["alternative_options"]
            ])

    if result.get("search_log"):
        with st.expander("Search log"):
            st.dataframe(pd.DataFrame(result["search_log"]), use_container_width=True)

    export = result.get("ehr_export_suggestion") or {}
    if export.get("can_export"):
        st.download_button(
            f"Export to EHR ({export.get('export_format', 'JSON')})",
            data=json.dumps(export.get("export_payload_example", {}), indent=2, ensure_ascii=False),
            file_name="medicrew-ehr-export.json",
            mime="application/json",
        )

    if result.get("sources_consulted"):
        with st.expander("Sources consulted"):
            bullet_list(result["sources_consulted"])

    st.subheader("Notes for clinician")
    st.write(result.get("notes_for_clinician", ""))
    st.caption(result.get("disclaimer", ""))


left, center = st.columns([1, 3])

# ---------- CASELOAD ----------
with left:
    st.markdown("**Caseload**")
    if st.button("New case", use_container_width=True):
        state["doctor_result"] = None
        state["doctor_input"] = ""
        state["doctor_upload_key"] += 1
        st.rerun()
    if user.is_guest:
        st.caption("Guests have no saved cases.")
    for idx, item in enumerate(store.load(user)[:20]):
        label = item.query_summary or f"Case {idx + 1}"
        if safe_get(item.data, "treatment_pattern_detected", "pattern_id"):
            label = "● " + label
        if st.button(label, key=f"case_{item.id}_{idx}", use_container_width=True):
            state["doctor_result"] = item.data
            state["doctor_input"] = safe_get(item.data, "input_source", "identifier") or item.data.get("patient_summary", "")
            state["doctor_upload_key"] += 1
            st.rerun()

# ---------- WORKING CANVAS ----------
with center:
    if state["doctor_result"] is None:
        text = st.text_area(
            "Clinical input",
            value=state["doctor_input"],
            height=200,
            placeholder="Paste clinical notes, vitals, or symptoms here...",
        )
        uploads = st.file_uploader(
            "Upload reports (PDF or images)",
            type=CLINICAL_FILE_EXTENSIONS,
            accept_multiple_files=True,
            key=f"doctor_files_{state['doctor_upload_key']}",
        )
        recording = st.audio_input("Dictation (optional)")

        files = []
        for up in uploads or []:
            try:
                files.append(Attachment.from_upload(up, settings.max_upload_bytes, CLINICAL_FILE_TYPES))
            except (UploadTooLarge, UnsupportedUpload) as e:
                st.error(str(e))
        for f in files:
            st.caption(f"📄 {f.name} · {f.display_size}")

        busy = state["doctor_status"] == "processing"
        if st.button("ANALYZE CASE", type="primary", disabled=busy or not (text.strip() or files)):
            state["doctor_input"] = text
            state["doctor_status"] = "processing"
            with st.spinner("Processing..."):
                try:
                    audio = audio_attachment(recording, settings.max_upload_bytes)
                    result = analyze_doctor_case(text, files, audio=audio, user=user, settings=settings)
                except Exception as e:
                    state["doctor_status"] = "error"
                    st.error(f"Analysis failed: {e}")
                else:
                    state["doctor_result"] = result
                    state["doctor_status"] = "success"
                    if history.should_save(result, user):
                        store.add(user, history.make_history_item("doctor", text, result))
                    st.rerun()
    else:
        render_result(state["doctor_result"])
