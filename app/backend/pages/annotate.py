"""
Annotation Page - Mark up a patient's photographs and produce the report

Features:
- Submission picker with status
- Slot navigation (draft of the current slot is kept when switching)
- Drawing tools, condition palette, brush width and zoom
- Interactive canvas
- Treatment recommendations text
- Save all slots, generate and download the screening report
"""
import streamlit as st

from app.backend.state import AnnotationState, get_submission_service
from app.services.annotation import (
    CONDITION_PALETTE,
    ShapeKind,
    Tool,
    annotation_canvas,
    parse_canvas_result,
)
from app.services.annotation.editor import MAX_BRUSH_WIDTH, MIN_BRUSH_WIDTH
from app.services.errors import ScreeningError
from app.services.submission import (
    Role,
    SLOT_DISPLAY_NAMES,
    Submission,
    SubmissionService,
    SubmissionStatus,
    require_role,
)

TOOL_BUTTONS = [
    ("Free-hand", Tool.FREEHAND),
    ("Rectangle", Tool.RECTANGLE),
    ("Circle", Tool.CIRCLE),
    ("Arrow", Tool.ARROW),
    ("Eraser", Tool.ERASER),
]


def get_annotation_state() -> AnnotationState:
    """Get annotation state from session state"""
    return st.session_state.annotation_state


def submission_label(submission: Submission) -> str:
    return f"{submission.patient.name} · {submission.status.value} · {submission.uploaded_at:%d/%m/%Y %H:%M}"


def open_submission(service: SubmissionService, state: AnnotationState, submission: Submission):
    """Start an editing session for the chosen submission"""
    state.close_session()
    state.current_submission_id = submission.id
    state.treatment_text = submission.treatment_recommendations
    state.session = service.start_session(submission)


def render_submission_sidebar(service: SubmissionService, state: AnnotationState):
    """Render submission picker in sidebar"""
    st.sidebar.header("Submissions")

    state.clinician_name = st.sidebar.text_input(
        "Clinician Name", value=state.clinician_name, key="clinician_name",
    ) or ""

    submissions = service.list_submissions()
    if not submissions:
        st.sidebar.info("No submissions yet.")
        return

    ids = [s.id for s in submissions]
    labels = {s.id: submission_label(s) for s in submissions}
    selected = st.sidebar.selectbox(
        "Open Submission",
        [""] + ids,
        index=ids.index(state.current_submission_id) + 1 if state.current_submission_id in ids else 0,
        format_func=lambda sid: labels.get(sid, "Select..."),
        key="select_submission",
    )

    if selected and selected != state.current_submission_id:
        open_submission(service, state, service.get_submission(selected))
        st.rerun()

    st.sidebar.divider()
    st.sidebar.caption(f"Uploaded: {sum(1 for s in submissions if s.status == SubmissionStatus.UPLOADED)}")
    st.sidebar.caption(f"Annotated: {sum(1 for s in submissions if s.status == SubmissionStatus.ANNOTATED)}")
    st.sidebar.caption(f"Reported: {sum(1 for s in submissions if s.status == SubmissionStatus.REPORTED)}")


def render_patient_header(submission: Submission):
    """Render patient details of the open submission"""
    patient = submission.patient
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Patient", patient.name)
    with col2:
        st.metric("Mobile", patient.mobile_number)
    with col3:
        st.metric("Email", patient.email)
    with col4:
        st.metric("Status", submission.status.value.capitalize())
    if patient.note:
        st.caption(f"Note: {patient.note}")


def render_slot_navigation(state: AnnotationState, submission: Submission):
    """Render one button per slot"""
    session = state.session
    columns = st.columns(len(submission.slots))

    for i, (col, slot) in enumerate(zip(columns, submission.slots)):
        with col:
            label = SLOT_DISPLAY_NAMES[slot.label]
            if slot.annotated_image_ref:
                label += " ✓"
            if st.button(
                label,
                type="primary" if session.active_slot_index == i else "secondary",
                use_container_width=True,
                key=f"slot_{i}",
            ):
                session.switch_slot(i)
                st.rerun()


def render_drawing_toolbar(state: AnnotationState):
    """Render tool buttons; shape tools drop a default-sized shape on the image"""
    session = state.session
    columns = st.columns(len(TOOL_BUTTONS))

    for col, (label, tool) in zip(columns, TOOL_BUTTONS):
        with col:
            if st.button(
                label,
                type="primary" if session.tool == tool else "secondary",
                use_container_width=True,
                key=f"tool_{tool.value}",
            ):
                if tool in (Tool.FREEHAND, Tool.ERASER):
                    session.select_tool(tool)
                else:
                    session.place_shape(ShapeKind(tool.value))
                    state.unsaved_changes = True
                st.rerun()


def render_style_controls(state: AnnotationState):
    """Render condition palette, brush width, zoom and undo/clear"""
    session = state.session

    palette_columns = st.columns(len(CONDITION_PALETTE))
    for col, (name, color) in zip(palette_columns, CONDITION_PALETTE):
        with col:
            if st.button(
                name,
                type="primary" if session.color == color else "secondary",
                use_container_width=True,
                key=f"color_{color}",
            ):
                session.set_color(color)
                st.rerun()

    col1, col2, col3, col4, col5, col6 = st.columns([3, 1, 1, 1, 1, 1])

    with col1:
        width = st.slider(
            "Brush Width", MIN_BRUSH_WIDTH, MAX_BRUSH_WIDTH, int(session.brush_width), key="brush_width",
        )
        if width != session.brush_width:
            session.set_brush_width(width)

    with col2:
        if st.button("Zoom -", key="zoom_out"):
            session.zoom_out()
            st.rerun()

    with col3:
        if st.button(f"{int(round(session.zoom * 100))}%", key="zoom_reset"):
            session.reset_zoom()
            st.rerun()

    with col4:
        if st.button("Zoom +", key="zoom_in"):
            session.zoom_in()
            st.rerun()

    with col5:
        if st.button("Undo", disabled=session.working_document.is_empty, key="undo"):
            session.undo()
            state.unsaved_changes = True
            st.rerun()

    with col6:
        if st.button("Clear", disabled=session.working_document.is_empty, key="clear"):
            session.clear()
            state.unsaved_changes = True
            st.rerun()


def render_annotation_canvas(state: AnnotationState):
    """Render the canvas for the active slot and take over its edits"""
    session = state.session
    result = annotation_canvas(
        session,
        key=f"canvas_{state.current_submission_id}_{session.active_slot_index}",
    )

    if not result:
        return

    # Skip values already applied
    action_timestamp = result.get("actionTimestamp")
    if action_timestamp is None or action_timestamp == state.last_action_timestamp:
        return

    try:
        document, action = parse_canvas_result(result)
    except ScreeningError as e:
        st.error(f"Could not read the drawing: {e}")
        state.last_action_timestamp = action_timestamp
        return

    state.last_action_timestamp = action_timestamp
    if document is None or action is None:
        return
    if document.serialize() == session.working_document.serialize():
        return

    session.replace_working(document)
    state.unsaved_changes = True


def render_recommendations(state: AnnotationState):
    """Render the clinician's free-text recommendations"""
    state.treatment_text = st.text_area(
        "Treatment Recommendations",
        value=state.treatment_text,
        key=f"treatment_{state.current_submission_id}",
        height=120,
    ) or ""


def render_actions(service: SubmissionService, state: AnnotationState, submission: Submission):
    """Render save, report and download controls"""
    col1, col2, col3 = st.columns(3)
    reported = submission.status == SubmissionStatus.REPORTED

    with col1:
        if st.button("Save & Complete", type="primary", disabled=reported, key="save_all"):
            try:
                status = service.save_session(
                    submission.id,
                    state.session,
                    treatment_text=state.treatment_text,
                    annotated_by=state.clinician_name or None,
                )
            except ScreeningError as e:
                st.error(str(e))
            else:
                state.unsaved_changes = False
                st.success(f"All annotations saved (status: {status.value})")
                st.rerun()

    with col2:
        ready = submission.status == SubmissionStatus.ANNOTATED and not submission.missing_raster_slots
        if st.button("Generate Report", disabled=not ready or state.unsaved_changes, key="generate_report"):
            try:
                state.last_report_ref = service.generate_report(
                    submission.id, generated_by=state.clinician_name or None,
                )
            except ScreeningError as e:
                st.error(str(e))
            else:
                st.success("Report generated")
                st.rerun()

    with col3:
        if submission.report_ref:
            st.download_button(
                label="Download Report",
                data=service.load_report(submission),
                file_name=f"screening-report-{submission.id[:8]}.pdf",
                mime="application/pdf",
                key="download_report",
            )

    if state.unsaved_changes:
        st.caption("Unsaved changes")


def render_annotation_page():
    """Main annotation page render function"""
    state = get_annotation_state()

    try:
        require_role(state.caller, Role.ADMIN)
    except PermissionError as e:
        st.error(str(e))
        return

    service = get_submission_service()
    render_submission_sidebar(service, state)

    if not state.current_submission_id:
        st.info("Select a submission to start annotating.")
        return

    try:
        submission = service.get_submission(state.current_submission_id)
    except KeyError:
        state.close_session()
        st.warning("The selected submission no longer exists.")
        return

    if state.session is None:
        open_submission(service, state, submission)

    render_patient_header(submission)
    st.divider()

    render_slot_navigation(state, submission)
    st.divider()

    render_drawing_toolbar(state)
    render_style_controls(state)

    render_annotation_canvas(state)

    st.divider()
    render_recommendations(state)
    render_actions(service, state, submission)
