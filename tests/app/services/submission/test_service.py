"""
Tests for SubmissionService
"""
from io import BytesIO
from unittest.mock import patch

from PIL import Image
import pytest

from app.services.annotation.models import AnnotationDocument, Circle, Point, Stroke
from app.services.errors import (
    IncompleteAnnotationError,
    MalformedAnnotationError,
    StorageError,
    ValidationError,
)
from app.services.rendering.rasterizer import composite
from app.services.submission.models import SubmissionStatus
from app.services.submission.service import SubmissionService


def blob_files(tmp_path, kind):
    folder = tmp_path / "blobs" / kind
    return sorted(folder.iterdir()) if folder.exists() else []


def save_every_slot(service, submission_id, document):
    for i in range(3):
        entries = [None, None, None]
        entries[i] = document
        service.save_annotation(submission_id, entries, changed_slot_index=i)


class TestUploadIntake:
    """Tests for upload_intake()"""

    def test_creates_uploaded_submission(self, service, patient, intake_images, tmp_path):
        """Test three valid images create an uploaded submission"""
        submission = service.upload_intake(patient, intake_images, user_id="patient-1")

        assert submission.status == SubmissionStatus.UPLOADED
        assert submission.user_id == "patient-1"
        assert submission.patient.email == "asha@example.com"
        assert len(blob_files(tmp_path, "original-image")) == 3
        assert service.get_submission(submission.id) == submission

    def test_original_refs_keep_format(self, uploaded_submission):
        """Test PNG and JPEG originals keep matching extensions"""
        refs = [slot.original_image_ref for slot in uploaded_submission.slots]

        assert refs[0].endswith(".png")
        assert refs[1].endswith(".jpg")

    def test_two_images_rejected(self, service, patient, intake_images, tmp_path):
        """Test two images fail validation and store nothing"""
        with pytest.raises(ValidationError) as exc_info:
            service.upload_intake(patient, intake_images[:2], user_id="patient-1")

        assert exc_info.value.field == "images"
        assert blob_files(tmp_path, "original-image") == []
        assert service.list_submissions() == []

    def test_invalid_patient_rejected(self, service, patient, intake_images):
        """Test bad patient details fail before any image is stored"""
        patient.email = "nope"

        with pytest.raises(ValidationError) as exc_info:
            service.upload_intake(patient, intake_images, user_id="patient-1")

        assert exc_info.value.field == "email"

    def test_base_image_loads(self, service, uploaded_submission, intake_images):
        """Test originals are retrievable per slot"""
        assert service.load_base_image(uploaded_submission, 2) == intake_images[2][1]


class TestSaveAnnotation:
    """Tests for save_annotation()"""

    def test_first_save_moves_to_annotated(self, service, uploaded_submission, sample_document):
        """Test saving slot 0 only sets annotated status and timestamp"""
        status = service.save_annotation(
            uploaded_submission.id, [sample_document, None, None], changed_slot_index=0,
        )

        saved = service.get_submission(uploaded_submission.id)
        assert status == SubmissionStatus.ANNOTATED
        assert saved.status == SubmissionStatus.ANNOTATED
        assert saved.annotated_at is not None
        assert saved.annotation_documents == [sample_document, None, None]
        assert saved.annotated_image_refs[0] is not None
        assert saved.missing_raster_slots == [1, 2]

    def test_raster_rendered_server_side(self, service, uploaded_submission, sample_document, intake_images):
        """Test the stored raster equals composite() of the original and overlay"""
        service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=0)

        saved = service.get_submission(uploaded_submission.id)
        assert service.load_annotated_image(saved, 0) == composite(intake_images[0][1], sample_document)

    def test_none_keeps_previous_slot_data(self, service, uploaded_submission, sample_document):
        """Test a later save for slot 1 keeps what slot 0 saved"""
        other = AnnotationDocument(objects=[Circle(left=10, top=10, radius=20)])
        service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=0)
        first_ref = service.get_submission(uploaded_submission.id).annotated_image_refs[0]

        service.save_annotation(uploaded_submission.id, [None, other, None], changed_slot_index=1)

        saved = service.get_submission(uploaded_submission.id)
        assert saved.annotation_documents == [sample_document, other, None]
        assert saved.annotated_image_refs[0] == first_ref
        assert saved.annotated_image_refs[1] is not None

    def test_client_raster_accepted(self, service, uploaded_submission, sample_document, png_bytes):
        """Test a supplied raster is stored as-is"""
        service.save_annotation(
            uploaded_submission.id, [sample_document, None, None],
            changed_slot_index=0, raster_bytes=png_bytes,
        )

        saved = service.get_submission(uploaded_submission.id)
        assert service.load_annotated_image(saved, 0) == png_bytes

    def test_invalid_client_raster_rejected(self, service, uploaded_submission, sample_document):
        """Test a supplied raster must decode"""
        with pytest.raises(ValidationError):
            service.save_annotation(
                uploaded_submission.id, [sample_document, None, None],
                changed_slot_index=0, raster_bytes=b"garbage",
            )

    def test_client_raster_needs_overlay(self, service, uploaded_submission, sample_document, png_bytes, tmp_path):
        """Test a raster for a slot with no overlay is rejected and not stored"""
        service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=0)
        stored_before = blob_files(tmp_path, "annotated-image")

        with pytest.raises(ValidationError) as exc_info:
            service.save_annotation(
                uploaded_submission.id, [None, None, None],
                changed_slot_index=1, raster_bytes=png_bytes,
            )

        assert exc_info.value.field == "annotation_documents"
        assert blob_files(tmp_path, "annotated-image") == stored_before
        assert service.get_submission(uploaded_submission.id).annotated_image_refs[1] is None

    def test_generator_entries_accepted(self, service, uploaded_submission, sample_document):
        """Test documents may be any iterable of three entries"""
        service.save_annotation(uploaded_submission.id, (doc for doc in [sample_document, None, None]))

        saved = service.get_submission(uploaded_submission.id)
        assert saved.annotation_documents == [sample_document, None, None]

    def test_short_generator_rejected(self, service, uploaded_submission, sample_document):
        """Test a short iterable raises ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            service.save_annotation(uploaded_submission.id, iter([sample_document]))

        assert exc_info.value.field == "annotation_documents"

    def test_raster_without_slot_rejected(self, service, uploaded_submission, sample_document, png_bytes):
        """Test a raster must say which slot it belongs to"""
        with pytest.raises(ValidationError) as exc_info:
            service.save_annotation(uploaded_submission.id, [sample_document, None, None], raster_bytes=png_bytes)

        assert exc_info.value.field == "changed_slot_index"

    def test_invalid_slot_index(self, service, uploaded_submission, sample_document):
        """Test slot index outside 0..2 is rejected"""
        with pytest.raises(ValidationError):
            service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=3)

    def test_slot_without_overlay_cannot_rasterize(self, service, uploaded_submission, sample_document):
        """Test rasterizing a slot with no overlay is rejected"""
        with pytest.raises(ValidationError):
            service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=2)

    def test_wrong_entry_count(self, service, uploaded_submission, sample_document):
        """Test documents must have one entry per slot"""
        with pytest.raises(ValidationError) as exc_info:
            service.save_annotation(uploaded_submission.id, [sample_document])

        assert exc_info.value.field == "annotation_documents"

    def test_serialized_entries_accepted(self, service, uploaded_submission, sample_document):
        """Test serialized overlays are parsed"""
        service.save_annotation(uploaded_submission.id, [sample_document.serialize(), None, sample_document.to_json()])

        saved = service.get_submission(uploaded_submission.id)
        assert saved.annotation_documents == [sample_document, None, sample_document]

    def test_malformed_entry_rejected(self, service, uploaded_submission):
        """Test malformed overlays raise in strict mode"""
        with pytest.raises(MalformedAnnotationError):
            service.save_annotation(uploaded_submission.id, [{"objects": 3}, None, None])

    def test_permissive_mode_keeps_previous(self, blob_storage, submission_store, uploaded_submission, sample_document):
        """Test permissive parsing ignores unreadable entries"""
        service = SubmissionService(blob_storage, submission_store, permissive_parse=True)
        service.save_annotation(uploaded_submission.id, [sample_document, None, None])

        service.save_annotation(uploaded_submission.id, [{"legacy": True}, None, None])

        assert service.get_submission(uploaded_submission.id).annotation_documents[0] == sample_document

    def test_treatment_text_and_clinician_saved(self, service, uploaded_submission, sample_document):
        """Test recommendations and clinician name are stored"""
        service.save_annotation(
            uploaded_submission.id, [sample_document, None, None],
            treatment_text="Scaling and polishing", annotated_by="Dr. Mehta",
        )

        saved = service.get_submission(uploaded_submission.id)
        assert saved.treatment_recommendations == "Scaling and polishing"
        assert saved.annotated_by == "Dr. Mehta"

    def test_text_only_save_keeps_status(self, service, uploaded_submission):
        """Test saving only text does not mark the submission annotated"""
        status = service.save_annotation(uploaded_submission.id, [None, None, None], treatment_text="Notes")

        assert status == SubmissionStatus.UPLOADED

    def test_reported_submission_is_read_only(self, service, uploaded_submission, sample_document):
        """Test annotations cannot change after the report"""
        save_every_slot(service, uploaded_submission.id, sample_document)
        service.generate_report(uploaded_submission.id)

        with pytest.raises(ValidationError) as exc_info:
            service.save_annotation(uploaded_submission.id, [sample_document, None, None])

        assert exc_info.value.field == "status"

    def test_unknown_submission(self, service, sample_document):
        """Test unknown ids raise KeyError"""
        with pytest.raises(KeyError):
            service.save_annotation("missing", [sample_document, None, None])


class TestSaveAllAnnotations:
    """Tests for save_all_annotations() and save_session()"""

    def test_rasterizes_every_slot(self, service, uploaded_submission, sample_document, tmp_path):
        """Test every slot with an overlay gets a raster in one call"""
        status = service.save_all_annotations(
            uploaded_submission.id, [sample_document, AnnotationDocument(), sample_document],
        )

        saved = service.get_submission(uploaded_submission.id)
        assert status == SubmissionStatus.ANNOTATED
        assert saved.missing_raster_slots == []
        assert saved.is_complete
        assert len(blob_files(tmp_path, "annotated-image")) == 3

    def test_save_session_drafts(self, service, uploaded_submission):
        """Test an editor session's drafts are saved for all slots"""
        session = service.start_session(uploaded_submission)
        session.capture_stroke([(30, 30), (60, 60)])
        session.switch_slot(2)
        session.place_shape("circle")

        service.save_session(uploaded_submission.id, session, treatment_text="Check crowns")

        saved = service.get_submission(uploaded_submission.id)
        assert isinstance(saved.annotation_documents[0].objects[0], Stroke)
        assert saved.annotation_documents[1].is_empty
        assert isinstance(saved.annotation_documents[2].objects[0], Circle)
        assert saved.is_complete
        session.end()


class TestStartSession:
    """Tests for start_session()"""

    def test_surface_uses_slot_original(self, service, uploaded_submission):
        """Test each slot's surface is built from its own photograph"""
        session = service.start_session(uploaded_submission, active_slot_index=1)

        assert session.surface.base_image.getpixel((0, 0)) == Image.open(
            BytesIO(service.load_base_image(uploaded_submission, 1))
        ).convert("RGB").getpixel((0, 0))
        session.end()

    def test_seeded_with_saved_documents(self, service, uploaded_submission, sample_document):
        """Test the session starts from the saved overlays"""
        service.save_annotation(uploaded_submission.id, [sample_document, None, None])

        session = service.start_session(service.get_submission(uploaded_submission.id))

        assert session.working_document == sample_document
        session.end()


class TestGenerateReport:
    """Tests for generate_report()"""

    def test_partial_annotation_rejected(self, service, uploaded_submission, sample_document, tmp_path):
        """Test two of three rasters raise and write no report"""
        service.save_annotation(uploaded_submission.id, [sample_document, None, None], changed_slot_index=0)
        service.save_annotation(uploaded_submission.id, [None, sample_document, None], changed_slot_index=1)

        with pytest.raises(IncompleteAnnotationError) as exc_info:
            service.generate_report(uploaded_submission.id)

        assert exc_info.value.missing_slots == [2]
        assert blob_files(tmp_path, "report") == []
        assert service.get_submission(uploaded_submission.id).status == SubmissionStatus.ANNOTATED

    def test_raster_without_overlay_rejected(self, service, submission_store, uploaded_submission, sample_document, tmp_path):
        """Test a slot holding a raster but no overlay blocks the report"""
        save_every_slot(service, uploaded_submission.id, sample_document)
        submission_store.save_submission(uploaded_submission.id, {"annotation_documents": [sample_document, None, None]})

        with pytest.raises(IncompleteAnnotationError) as exc_info:
            service.generate_report(uploaded_submission.id)

        assert exc_info.value.missing_slots == [1, 2]
        assert blob_files(tmp_path, "report") == []
        saved = service.get_submission(uploaded_submission.id)
        assert saved.status == SubmissionStatus.ANNOTATED
        assert saved.report_ref is None

    def test_build_failure_writes_nothing(self, service, uploaded_submission, sample_document, tmp_path):
        """Test an error while building the PDF leaves no report behind"""
        save_every_slot(service, uploaded_submission.id, sample_document)

        with patch("app.services.submission.service.build_report", side_effect=RuntimeError("layout failed")):
            with pytest.raises(RuntimeError):
                service.generate_report(uploaded_submission.id)

        assert blob_files(tmp_path, "report") == []
        saved = service.get_submission(uploaded_submission.id)
        assert saved.status == SubmissionStatus.ANNOTATED
        assert saved.report_ref is None

    def test_store_failure_leaves_status(self, service, uploaded_submission, sample_document, tmp_path):
        """Test a failing report write keeps the submission annotated"""
        save_every_slot(service, uploaded_submission.id, sample_document)

        with patch.object(service.blobs, "store", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError):
                service.generate_report(uploaded_submission.id)

        assert blob_files(tmp_path, "report") == []
        assert service.get_submission(uploaded_submission.id).status == SubmissionStatus.ANNOTATED

    def test_uploaded_submission_rejected(self, service, uploaded_submission):
        """Test a never-annotated submission cannot be reported"""
        with pytest.raises(IncompleteAnnotationError):
            service.generate_report(uploaded_submission.id)

    def test_full_flow_reaches_reported(self, service, uploaded_submission, sample_document):
        """Test report generation stores the PDF and moves to reported"""
        save_every_slot(service, uploaded_submission.id, sample_document)

        report_ref = service.generate_report(uploaded_submission.id, generated_by="Dr. Iyer")

        saved = service.get_submission(uploaded_submission.id)
        assert saved.status == SubmissionStatus.REPORTED
        assert saved.report_ref == report_ref
        assert saved.report_generated_at is not None
        assert service.load_report(saved).startswith(b"%PDF")

    def test_second_report_rejected(self, service, uploaded_submission, sample_document):
        """Test a reported submission cannot be reported again"""
        save_every_slot(service, uploaded_submission.id, sample_document)
        service.generate_report(uploaded_submission.id)

        with pytest.raises(IncompleteAnnotationError):
            service.generate_report(uploaded_submission.id)

    def test_lost_raster_uses_placeholder(self, service, uploaded_submission, sample_document):
        """Test a raster that cannot be loaded still yields a report"""
        save_every_slot(service, uploaded_submission.id, sample_document)
        lost_ref = service.get_submission(uploaded_submission.id).annotated_image_refs[1]
        original_load = service.blobs.load

        def flaky_load(ref):
            if ref == lost_ref:
                raise StorageError("gone")
            return original_load(ref)

        with patch.object(service.blobs, "load", side_effect=flaky_load):
            report_ref = service.generate_report(uploaded_submission.id)

        assert service.blobs.load(report_ref).startswith(b"%PDF")

    def test_no_report_yet(self, service, uploaded_submission):
        """Test load_report returns None before generation"""
        assert service.load_report(uploaded_submission) is None
