"""
Shared pytest fixtures for backend page tests
"""
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import pytest

from app.backend.state import AnnotationState, IntakeState


def _column_count(spec):
    return spec if isinstance(spec, int) else len(spec)


@pytest.fixture
def mock_streamlit():
    """Mock Streamlit module for UI testing."""
    mock_st = MagicMock()

    # Mock sidebar
    mock_st.sidebar = MagicMock()
    mock_st.sidebar.header = MagicMock()
    mock_st.sidebar.selectbox = MagicMock(return_value="")
    mock_st.sidebar.text_input = MagicMock(return_value="")
    mock_st.sidebar.info = MagicMock()
    mock_st.sidebar.divider = MagicMock()
    mock_st.sidebar.caption = MagicMock()

    # Mock main UI elements
    mock_st.file_uploader = MagicMock(return_value=None)
    mock_st.text_input = MagicMock(return_value="")
    mock_st.text_area = MagicMock(return_value="")
    mock_st.slider = MagicMock(side_effect=lambda label, lo, hi, value, **kwargs: value)
    mock_st.info = MagicMock()
    mock_st.success = MagicMock()
    mock_st.error = MagicMock()
    mock_st.warning = MagicMock()
    mock_st.button = MagicMock(return_value=False)
    mock_st.download_button = MagicMock()
    mock_st.divider = MagicMock()
    mock_st.subheader = MagicMock()
    mock_st.header = MagicMock()
    mock_st.caption = MagicMock()
    mock_st.metric = MagicMock()
    mock_st.markdown = MagicMock()
    mock_st.rerun = MagicMock()

    # Columns unpack to the requested count
    mock_st.columns = MagicMock(side_effect=lambda spec, **kwargs: [MagicMock() for _ in range(_column_count(spec))])

    # Mock expander context manager
    mock_expander = MagicMock()
    mock_expander.__enter__ = Mock(return_value=mock_st)
    mock_expander.__exit__ = Mock(return_value=None)
    mock_st.expander = MagicMock(return_value=mock_expander)

    mock_st.session_state = MagicMock()

    return mock_st


@pytest.fixture
def intake_state():
    """Create empty IntakeState."""
    return IntakeState(user_id="patient-1")


@pytest.fixture
def annotation_state():
    """Create empty AnnotationState."""
    return AnnotationState()


@pytest.fixture
def annotation_state_with_session(service, uploaded_submission):
    """Create AnnotationState with an open editing session."""
    state = AnnotationState(clinician_name="Dr. Mehta")
    state.current_submission_id = uploaded_submission.id
    state.session = service.start_session(uploaded_submission)
    yield state
    if state.session is not None:
        state.session.end()


@pytest.fixture
def mock_uploaded_files(intake_images):
    """Mock Streamlit uploaded files for the three views."""
    files = []
    for name, data in intake_images:
        mock_file = MagicMock()
        mock_file.name = name
        mock_file.getvalue = Mock(return_value=data)
        mock_file.read = BytesIO(data).read
        files.append(mock_file)
    return files


# Helper functions for verifying UI components by label


def find_button_by_label(mock_st, label):
    """
    Find button call by its label in mock Streamlit button calls.

    Returns:
        Call args if found, or None if not found
    """
    for call in mock_st.button.call_args_list:
        if call[0][0] == label:
            return call
    return None


def is_button_disabled(button_call):
    """Check if button call has disabled=True."""
    return bool(button_call and button_call[1].get("disabled", False))


def is_button_primary(button_call):
    """Check if button call has type='primary'."""
    return bool(button_call and button_call[1].get("type") == "primary")


def click(*labels):
    """Button side effect that reports a click for the given labels."""
    return lambda label, *args, **kwargs: label in labels


@pytest.fixture
def ui():
    """Label-based helpers for asserting on mocked Streamlit buttons."""
    return SimpleNamespace(
        find_button=find_button_by_label,
        is_disabled=is_button_disabled,
        is_primary=is_button_primary,
        click=click,
    )
