"""
Application state management for the screening UI

Contains dataclasses for session state that persists across Streamlit reruns.
"""
from dataclasses import dataclass, field
from typing import Optional
import uuid

from app import config
from app.services.annotation import EditorSession
from app.services.submission import (
    Caller,
    LocalBlobStorage,
    LocalSubmissionStore,
    Role,
    SubmissionService,
)


@dataclass
class IntakeState:
    """State for the intake page"""
    # Stands in for the authenticated patient until a login layer exists
    user_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    last_submission_id: Optional[str] = None
    # Bumped after a successful submit so the uploaders come back empty
    form_version: int = 0

    @property
    def caller(self) -> Caller:
        return Caller(id=self.user_id, role=Role.PATIENT)


@dataclass
class AnnotationState:
    """State for the annotation page"""
    current_submission_id: Optional[str] = None
    session: Optional[EditorSession] = None
    treatment_text: str = ""
    clinician_name: str = ""
    unsaved_changes: bool = False
    last_report_ref: Optional[str] = None
    # actionTimestamp of the last canvas value applied
    last_action_timestamp: Optional[int] = None

    @property
    def caller(self) -> Caller:
        return Caller(id="clinician", role=Role.ADMIN, name=self.clinician_name or None)

    def close_session(self) -> None:
        """Release the editor surface and forget the loaded submission"""
        if self.session is not None:
            self.session.end()
        self.session = None
        self.current_submission_id = None
        self.treatment_text = ""
        self.unsaved_changes = False
        self.last_report_ref = None
        self.last_action_timestamp = None


def get_submission_service() -> SubmissionService:
    """Create the service over the configured local storage"""
    return SubmissionService(
        LocalBlobStorage(config.BLOB_DIR),
        LocalSubmissionStore(config.SUBMISSIONS_DIR, permissive=config.ANNOTATION_PARSE_PERMISSIVE),
        permissive_parse=config.ANNOTATION_PARSE_PERMISSIVE,
    )


def init_session_state():
    """Initialize session state if not already done"""
    import streamlit as st

    if "intake_state" not in st.session_state:
        st.session_state.intake_state = IntakeState()

    if "annotation_state" not in st.session_state:
        st.session_state.annotation_state = AnnotationState()
