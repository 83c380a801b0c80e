"""
Tests for Intake page UI rendering functions.

Tests the Streamlit UI components in app/backend/pages/intake.py
"""
from unittest.mock import patch

from app.services.submission import SubmissionStatus


class TestRenderPatientForm:
    """Tests for render_patient_form() function."""

    def test_collects_entered_details(self, mock_streamlit, intake_state):
        """Test entered values are returned as PatientInfo."""
        from app.backend.pages.intake import render_patient_form

        values = {"Name": "Asha Rao", "Mobile Number": "9876543210", "Email": "asha@example.com"}
        mock_streamlit.text_input.side_effect = lambda label, **kwargs: values[label]
        mock_streamlit.text_area.return_value = "Bleeding gums"

        with patch("app.backend.pages.intake.st", mock_streamlit):
            patient = render_patient_form(intake_state)

        assert patient.name == "Asha Rao"
        assert patient.mobile_number == "9876543210"
        assert patient.note == "Bleeding gums"

    def test_keys_follow_form_version(self, mock_streamlit, intake_state):
        """Test widget keys change after a submit so the form resets."""
        from app.backend.pages.intake import render_patient_form

        intake_state.form_version = 2

        with patch("app.backend.pages.intake.st", mock_streamlit):
            render_patient_form(intake_state)

        keys = [call[1]["key"] for call in mock_streamlit.text_input.call_args_list]
        assert all(key.endswith("_2") for key in keys)


class TestRenderImageUploaders:
    """Tests for render_image_uploaders() function."""

    def test_one_uploader_per_view(self, mock_streamlit, intake_state):
        """Test three uploaders labeled by view."""
        from app.backend.pages.intake import render_image_uploaders

        with patch("app.backend.pages.intake.st", mock_streamlit):
            uploads = render_image_uploaders(intake_state)

        labels = [call[0][0] for call in mock_streamlit.file_uploader.call_args_list]
        assert labels == ["Upper Teeth", "Front Teeth", "Lower Teeth"]
        assert uploads == [None, None, None]

    def test_uploaders_accept_image_types(self, mock_streamlit, intake_state):
        """Test uploaders accept PNG and JPEG."""
        from app.backend.pages.intake import render_image_uploaders

        with patch("app.backend.pages.intake.st", mock_streamlit):
            render_image_uploaders(intake_state)

        call_kwargs = mock_streamlit.file_uploader.call_args[1]
        assert "png" in call_kwargs["type"]
        assert "jpg" in call_kwargs["type"]
        assert "jpeg" in call_kwargs["type"]


class TestSubmitIntake:
    """Tests for submit_intake() function."""

    def test_missing_upload_shows_error(self, mock_streamlit, service, intake_state, patient, mock_uploaded_files):
        """Test a missing view is reported without storing anything."""
        from app.backend.pages.intake import submit_intake

        with patch("app.backend.pages.intake.st", mock_streamlit):
            result = submit_intake(service, intake_state, patient, mock_uploaded_files[:2] + [None])

        assert result is None
        mock_streamlit.error.assert_called_once()
        assert service.list_submissions() == []

    def test_invalid_email_shows_error(self, mock_streamlit, service, intake_state, patient, mock_uploaded_files):
        """Test validation errors are shown inline."""
        from app.backend.pages.intake import submit_intake

        patient.email = "not-an-email"

        with patch("app.backend.pages.intake.st", mock_streamlit):
            submit_intake(service, intake_state, patient, mock_uploaded_files)

        assert "email" in mock_streamlit.error.call_args[0][0]
        mock_streamlit.rerun.assert_not_called()

    def test_successful_submit(self, mock_streamlit, service, intake_state, patient, mock_uploaded_files):
        """Test a valid intake is stored and the form reset."""
        from app.backend.pages.intake import submit_intake

        with patch("app.backend.pages.intake.st", mock_streamlit):
            submission = submit_intake(service, intake_state, patient, mock_uploaded_files)

        assert submission.status == SubmissionStatus.UPLOADED
        assert submission.user_id == "patient-1"
        assert intake_state.last_submission_id == submission.id
        assert intake_state.form_version == 1
        mock_streamlit.success.assert_called_once()
        mock_streamlit.rerun.assert_called_once()


class TestRenderSubmissionHistory:
    """Tests for render_submission_history() function."""

    def test_nothing_without_submissions(self, mock_streamlit, service, intake_state):
        """Test the history is hidden for a new patient."""
        from app.backend.pages.intake import render_submission_history

        with patch("app.backend.pages.intake.st", mock_streamlit):
            render_submission_history(service, intake_state)

        mock_streamlit.subheader.assert_not_called()

    def test_lists_own_submissions(self, mock_streamlit, service, intake_state, uploaded_submission):
        """Test the patient's submissions are listed without a report download."""
        from app.backend.pages.intake import render_submission_history

        with patch("app.backend.pages.intake.st", mock_streamlit):
            render_submission_history(service, intake_state)

        mock_streamlit.subheader.assert_called_once_with("Your Submissions")
        assert "uploaded" in mock_streamlit.markdown.call_args[0][0]
        mock_streamlit.download_button.assert_not_called()


class TestRenderIntakePage:
    """Tests for render_intake_page() function."""

    def test_renders_form_and_submit(self, mock_streamlit, service, intake_state, ui):
        """Test the page renders its form and submit button."""
        from app.backend.pages.intake import render_intake_page

        mock_streamlit.session_state.intake_state = intake_state

        with patch("app.backend.pages.intake.st", mock_streamlit), \
                patch("app.backend.pages.intake.get_submission_service", return_value=service):
            render_intake_page()

        mock_streamlit.header.assert_called_once_with("Dental Screening Intake")
        assert ui.is_primary(ui.find_button(mock_streamlit, "Submit"))
