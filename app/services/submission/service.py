"""
Submission Service

Operations exposed to the outer layers (pages, API adapters):

- upload_intake: create a submission from patient details and 3 photographs
- save_annotation / save_all_annotations: persist overlays and rasters
- generate_report: build and store the screening report

The service owns no locks: one editing session per submission is assumed.
"""
from datetime import datetime
from io import BytesIO
from typing import Any, List, Optional, Sequence
import logging

from PIL import Image

from app.services.annotation.editor import EditorSession, RenderSurface
from app.services.annotation.models import AnnotationDocument
from app.services.errors import StorageError, ValidationError
from app.services.rendering.rasterizer import composite, decode_image
from app.services.rendering.report import build_report, check_report_ready
from app.services.submission.models import (
    PatientInfo,
    SLOT_LABELS,
    Submission,
    SubmissionStatus,
)
from app.services.submission.storage import BlobKind, BlobStorage, SubmissionStore
from app.services.submission.validation import Upload, validate_images, validate_patient

logger = logging.getLogger(__name__)


def _image_suffix(data: bytes) -> str:
    with Image.open(BytesIO(data)) as image:
        return ".png" if image.format == "PNG" else ".jpg"


class SubmissionService:
    """
    Core operations over submissions

    Args:
        blobs: Byte store for images and reports
        store: Submission persistence
        permissive_parse: Accept unparsable annotation blobs in save calls
            by keeping the slot's previous document
    """

    def __init__(self, blobs: BlobStorage, store: SubmissionStore, permissive_parse: bool = False):
        self.blobs = blobs
        self.store = store
        self.permissive_parse = permissive_parse

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def upload_intake(self, patient: PatientInfo, images: Sequence[Upload], user_id: str) -> Submission:
        """
        Create a submission from the three intake photographs

        Args:
            patient: Patient details
            images: Uploads in fixed order (upper, front, lower)
            user_id: Identity of the uploading patient

        Returns:
            New submission with status "uploaded"

        Raises:
            ValidationError: Bad patient details or images
            StorageError: Images could not be stored
        """
        patient = validate_patient(patient)
        image_bytes = validate_images(images)

        refs = [self.blobs.store(BlobKind.ORIGINAL_IMAGE, data, _image_suffix(data)) for data in image_bytes]
        submission = Submission.from_uploads(user_id=user_id, patient=patient, original_refs=refs)
        self.store.create(submission)

        logger.info("Intake %s uploaded by user %s", submission.id, user_id)
        return submission

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_submission(self, submission_id: str) -> Submission:
        return self.store.load_submission(submission_id)

    def list_submissions(self, user_id: Optional[str] = None) -> List[Submission]:
        return self.store.list_submissions(user_id=user_id)

    def load_base_image(self, submission: Submission, slot_index: int) -> bytes:
        return self.blobs.load(submission.slots[slot_index].original_image_ref)

    def load_annotated_image(self, submission: Submission, slot_index: int) -> Optional[bytes]:
        ref = submission.slots[slot_index].annotated_image_ref
        return self.blobs.load(ref) if ref else None

    def load_report(self, submission: Submission) -> Optional[bytes]:
        return self.blobs.load(submission.report_ref) if submission.report_ref else None

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def start_session(self, submission: Submission, active_slot_index: int = 0) -> EditorSession:
        """Open an editor session seeded with the saved overlays"""

        def surface_factory(slot_index: int) -> RenderSurface:
            return RenderSurface(decode_image(self.load_base_image(submission, slot_index)))

        return EditorSession(
            documents=submission.annotation_documents,
            surface_factory=surface_factory,
            active_slot_index=active_slot_index,
        )

    def _coerce_documents(self, documents: Sequence[Any]) -> List[Optional[AnnotationDocument]]:
        documents = list(documents) if documents is not None else []
        if len(documents) != len(SLOT_LABELS):
            raise ValidationError(
                f"Expected {len(SLOT_LABELS)} annotation entries (one per slot)",
                field="annotation_documents",
            )

        result = []
        for i, entry in enumerate(documents):
            if entry is None or isinstance(entry, AnnotationDocument):
                result.append(entry)
                continue
            document = AnnotationDocument.deserialize(entry, permissive=self.permissive_parse)
            if not isinstance(document, AnnotationDocument):
                logger.warning("Slot %d: unparsable annotation ignored, keeping saved overlay", i)
                document = None
            result.append(document)
        return result

    def _check_editable(self, submission: Submission) -> None:
        if submission.status == SubmissionStatus.REPORTED:
            raise ValidationError(
                "Submission has already been reported and can no longer be annotated",
                field="status",
            )

    def _rasterize(self, submission: Submission, slot_index: int, document: AnnotationDocument) -> bytes:
        return composite(self.load_base_image(submission, slot_index), document)

    def _persist(
        self,
        submission: Submission,
        supplied: List[Optional[AnnotationDocument]],
        merged: List[Optional[AnnotationDocument]],
        refs: List[Optional[str]],
        treatment_text: Optional[str],
        annotated_by: Optional[str],
    ) -> SubmissionStatus:
        patch = {"annotation_documents": merged, "annotated_image_refs": refs}
        if treatment_text is not None:
            patch["treatment_recommendations"] = treatment_text

        if any(doc is not None for doc in supplied):
            patch["annotated_at"] = datetime.now()
            if annotated_by:
                patch["annotated_by"] = annotated_by
            if submission.status == SubmissionStatus.UPLOADED:
                submission.advance_to(SubmissionStatus.ANNOTATED)
                patch["status"] = submission.status

        updated = self.store.save_submission(submission.id, patch)
        logger.info(
            "Annotations saved for %s (%d/3 rasters, status %s)",
            updated.id,
            sum(1 for ref in refs if ref),
            updated.status.value,
        )
        return updated.status

    def save_annotation(
        self,
        submission_id: str,
        documents: Sequence[Any],
        treatment_text: Optional[str] = None,
        changed_slot_index: Optional[int] = None,
        raster_bytes: Optional[bytes] = None,
        annotated_by: Optional[str] = None,
    ) -> SubmissionStatus:
        """
        Save annotation overlays and, optionally, one slot's raster

        The stored annotation array is rebuilt as a per-slot upsert: a None
        entry in documents keeps the overlay previously saved for that slot.

        Args:
            submission_id: Submission to update
            documents: Three entries (AnnotationDocument, serialized blob or None)
            treatment_text: Clinician's free-text recommendations
            changed_slot_index: Slot whose raster is saved with this call
            raster_bytes: Flattened PNG for changed_slot_index; rendered
                server-side from the slot's overlay when omitted
            annotated_by: Name of the saving clinician

        Returns:
            Status after the save

        Raises:
            ValidationError: Bad entry count, bad slot index, no overlay for the
                raster slot, undecodable raster, or submission already reported
            MalformedAnnotationError: An entry cannot be parsed
        """
        submission = self.store.load_submission(submission_id)
        self._check_editable(submission)

        previous = submission.annotation_documents
        supplied = self._coerce_documents(documents)
        merged = [new if new is not None else old for new, old in zip(supplied, previous)]
        refs = submission.annotated_image_refs

        if changed_slot_index is not None:
            if not 0 <= changed_slot_index < len(SLOT_LABELS):
                raise ValidationError(f"Invalid slot index: {changed_slot_index}", field="changed_slot_index")
            document = merged[changed_slot_index]
            if document is None:
                raise ValidationError(
                    f"Slot {changed_slot_index} has no annotation for its raster",
                    field="annotation_documents",
                )
            if raster_bytes is None:
                raster_bytes = self._rasterize(submission, changed_slot_index, document)
            else:
                decode_image(raster_bytes)
            refs[changed_slot_index] = self.blobs.store(BlobKind.ANNOTATED_IMAGE, raster_bytes, ".png")
        elif raster_bytes is not None:
            raise ValidationError("A raster needs the slot it belongs to", field="changed_slot_index")

        return self._persist(submission, supplied, merged, refs, treatment_text, annotated_by)

    def save_all_annotations(
        self,
        submission_id: str,
        documents: Sequence[Any],
        treatment_text: Optional[str] = None,
        annotated_by: Optional[str] = None,
    ) -> SubmissionStatus:
        """
        Save every slot at once, rasterizing each overlay server-side

        Slots are rasterized strictly one after another; the submission is
        written once after all rasters are stored.
        """
        submission = self.store.load_submission(submission_id)
        self._check_editable(submission)

        previous = submission.annotation_documents
        supplied = self._coerce_documents(documents)
        merged = [new if new is not None else old for new, old in zip(supplied, previous)]
        refs = submission.annotated_image_refs

        for i, document in enumerate(merged):
            if document is None:
                continue
            refs[i] = self.blobs.store(BlobKind.ANNOTATED_IMAGE, self._rasterize(submission, i, document), ".png")

        return self._persist(submission, supplied, merged, refs, treatment_text, annotated_by)

    def save_session(
        self,
        submission_id: str,
        session: EditorSession,
        treatment_text: Optional[str] = None,
        annotated_by: Optional[str] = None,
    ) -> SubmissionStatus:
        """Save all drafts of an editor session"""
        return self.save_all_annotations(
            submission_id, session.documents(), treatment_text=treatment_text, annotated_by=annotated_by,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _load_raster(self, submission: Submission, slot_index: int) -> Optional[bytes]:
        try:
            return self.load_annotated_image(submission, slot_index)
        except StorageError as e:
            logger.warning("Raster for slot %d of %s unavailable: %s", slot_index, submission.id, e)
            return None

    def generate_report(self, submission_id: str, generated_by: Optional[str] = None) -> str:
        """
        Build and store the screening report

        Args:
            submission_id: Annotated submission
            generated_by: Name for the report footer

        Returns:
            Ref of the stored report

        Raises:
            IncompleteAnnotationError: Status is not annotated or a slot has no
                raster; nothing is written in that case
        """
        submission = self.store.load_submission(submission_id)
        check_report_ready(submission)

        rasters = [self._load_raster(submission, i) for i in range(len(submission.slots))]
        generated_at = datetime.now()
        pdf_bytes = build_report(submission, rasters, generated_at=generated_at, generated_by=generated_by)

        submission.advance_to(SubmissionStatus.REPORTED)
        report_ref = self.blobs.store(BlobKind.REPORT, pdf_bytes, ".pdf")
        self.store.save_submission(submission.id, {
            "status": submission.status,
            "report_ref": report_ref,
            "report_generated_at": generated_at,
        })

        logger.info("Report %s generated for %s", report_ref, submission.id)
        return report_ref
