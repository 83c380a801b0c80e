"""
Submission Service

Patient intakes with three fixed photograph slots, their persistence and
the operations that move them from upload to report.

Usage:
    from app.services.submission import (
        SubmissionService, LocalBlobStorage, LocalSubmissionStore, PatientInfo,
    )

    service = SubmissionService(LocalBlobStorage(blob_dir), LocalSubmissionStore(submission_dir))

    submission = service.upload_intake(
        PatientInfo(name="Asha", mobile_number="9876543210", email="asha@example.com"),
        [("upper.jpg", upper_bytes), ("front.jpg", front_bytes), ("lower.jpg", lower_bytes)],
        user_id="patient-1",
    )

    # Save slot 0 and its raster; None keeps what was saved for a slot
    service.save_annotation(submission.id, [doc0, None, None], changed_slot_index=0)

    report_ref = service.generate_report(submission.id)
"""
from .models import (
    PatientInfo,
    Slot,
    Submission,
    SubmissionStatus,
    SLOT_LABELS,
    SLOT_DISPLAY_NAMES,
)
from .identity import Caller, Role, require_role
from .storage import (
    BlobKind,
    BlobStorage,
    SubmissionStore,
    LocalBlobStorage,
    LocalSubmissionStore,
)
from .validation import validate_patient, validate_images
from .service import SubmissionService

__all__ = [
    "PatientInfo",
    "Slot",
    "Submission",
    "SubmissionStatus",
    "SLOT_LABELS",
    "SLOT_DISPLAY_NAMES",
    "Caller",
    "Role",
    "require_role",
    "BlobKind",
    "BlobStorage",
    "SubmissionStore",
    "LocalBlobStorage",
    "LocalSubmissionStore",
    "validate_patient",
    "validate_images",
    "SubmissionService",
]
