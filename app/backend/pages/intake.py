"""
Intake Page - Patient details and the three dental photographs

Handles:
- Patient details form
- One uploader per fixed view (upper, front, lower)
- Submission through the intake service
"""
import streamlit as st

from app.backend.state import IntakeState, get_submission_service
from app.services.errors import ScreeningError, ValidationError
from app.services.submission import (
    PatientInfo,
    Role,
    SLOT_DISPLAY_NAMES,
    SLOT_LABELS,
    SubmissionService,
    require_role,
)
from app.services.submission.validation import ALLOWED_EXTENSIONS

UPLOAD_TYPES = [ext.lstrip(".") for ext in ALLOWED_EXTENSIONS]


def get_intake_state() -> IntakeState:
    """Get intake state from session state"""
    return st.session_state.intake_state


def render_patient_form(state: IntakeState) -> PatientInfo:
    """Render patient detail inputs and return what was entered"""
    st.subheader("Patient Details")

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", key=f"intake_name_{state.form_version}")
        mobile = st.text_input("Mobile Number", key=f"intake_mobile_{state.form_version}")
    with col2:
        email = st.text_input("Email", key=f"intake_email_{state.form_version}")
        note = st.text_area("Note", key=f"intake_note_{state.form_version}", height=100)

    return PatientInfo(name=name or "", mobile_number=mobile or "", email=email or "", note=note or "")


def render_image_uploaders(state: IntakeState) -> list:
    """Render one uploader per view; returns uploaded files in slot order (None where missing)"""
    st.subheader("Photographs")

    uploads = []
    columns = st.columns(len(SLOT_LABELS))
    for col, label in zip(columns, SLOT_LABELS):
        with col:
            uploads.append(st.file_uploader(
                SLOT_DISPLAY_NAMES[label],
                type=UPLOAD_TYPES,
                key=f"intake_upload_{label}_{state.form_version}",
            ))
    return uploads


def submit_intake(service: SubmissionService, state: IntakeState, patient: PatientInfo, uploads: list):
    """Validate and store the intake; errors are shown inline"""
    try:
        require_role(state.caller, Role.PATIENT)
        if any(upload is None for upload in uploads):
            raise ValidationError(
                "Please upload all three images (upper, front, lower).",
                field="images",
                details={"current_count": sum(1 for u in uploads if u is not None), "required_count": 3},
            )
        images = [(upload.name, upload.getvalue()) for upload in uploads]
        submission = service.upload_intake(patient, images, user_id=state.user_id)
    except (ScreeningError, PermissionError) as e:
        st.error(str(e))
        return None

    state.last_submission_id = submission.id
    state.form_version += 1
    st.success("Intake submitted. A clinician will review your photographs.")
    st.rerun()
    return submission


def render_submission_history(service: SubmissionService, state: IntakeState):
    """List this patient's earlier submissions, newest first"""
    submissions = service.list_submissions(user_id=state.user_id)
    if not submissions:
        return

    st.divider()
    st.subheader("Your Submissions")
    for submission in submissions:
        summary = submission.summary()
        st.markdown(f"**{summary['patient_name']}** · {summary['status']} · {summary['uploaded_at'][:16]}")
        if submission.report_ref:
            report = service.load_report(submission)
            st.download_button(
                label="Download Report",
                data=report,
                file_name=f"screening-report-{submission.id[:8]}.pdf",
                mime="application/pdf",
                key=f"intake_report_{submission.id}",
            )


def render_intake_page():
    """Main intake page render function"""
    state = get_intake_state()
    service = get_submission_service()

    st.header("Dental Screening Intake")
    st.caption("Fill in your details and upload one photograph of each view.")

    patient = render_patient_form(state)
    uploads = render_image_uploaders(state)

    if st.button("Submit", type="primary", key="intake_submit"):
        submit_intake(service, state, patient, uploads)

    render_submission_history(service, state)
