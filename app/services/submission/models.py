"""
Submission Data Models

Dataclasses for one patient intake: patient details, the three fixed image
slots (upper, front, lower), their annotation overlays and rasters, and the
status state machine uploaded -> annotated -> reported.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any
import uuid
import json

from app.services.annotation.models import AnnotationDocument

SLOT_LABELS = ("upper", "front", "lower")
SLOT_DISPLAY_NAMES = {
    "upper": "Upper Teeth",
    "front": "Front Teeth",
    "lower": "Lower Teeth",
}


class SubmissionStatus(str, Enum):
    UPLOADED = "uploaded"
    ANNOTATED = "annotated"
    REPORTED = "reported"


_STATUS_ORDER = [SubmissionStatus.UPLOADED, SubmissionStatus.ANNOTATED, SubmissionStatus.REPORTED]


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class PatientInfo:
    """Patient details captured at intake"""
    name: str
    mobile_number: str
    email: str
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "mobile_number": self.mobile_number,
            "email": self.email,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientInfo":
        return cls(
            name=data["name"],
            mobile_number=data["mobile_number"],
            email=data["email"],
            note=data.get("note", ""),
        )


@dataclass
class Slot:
    """
    One of the three fixed image positions

    Attributes:
        label: "upper", "front" or "lower"
        original_image_ref: Storage ref of the uploaded photograph
        annotation_document: Saved overlay, None until annotated
        annotated_image_ref: Storage ref of the flattened PNG, None until saved
    """
    label: str
    original_image_ref: str
    annotation_document: Optional[AnnotationDocument] = None
    annotated_image_ref: Optional[str] = None

    @property
    def display_name(self) -> str:
        return SLOT_DISPLAY_NAMES[self.label]

    @property
    def is_annotated(self) -> bool:
        return self.annotation_document is not None and self.annotated_image_ref is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "original_image_ref": self.original_image_ref,
            "annotation_document": (
                self.annotation_document.serialize() if self.annotation_document is not None else None
            ),
            "annotated_image_ref": self.annotated_image_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], permissive: bool = False) -> "Slot":
        document = data.get("annotation_document")
        if document is not None:
            document = AnnotationDocument.deserialize(document, permissive=permissive)
            if not isinstance(document, AnnotationDocument):
                # Legacy blob we could not read: treat the slot as unannotated
                document = None
        return cls(
            label=data["label"],
            original_image_ref=data["original_image_ref"],
            annotation_document=document,
            annotated_image_ref=data.get("annotated_image_ref"),
        )


@dataclass
class Submission:
    """
    One patient intake with its three image slots

    Attributes:
        id: Unique identifier
        user_id: Identity of the uploading patient
        patient: Patient details
        slots: Exactly three slots in upper, front, lower order
        status: Lifecycle state
        treatment_recommendations: Free text owned by the annotating clinician
        report_ref: Storage ref of the report, set once reported
        annotated_by: Name of the clinician who last saved annotations
    """
    user_id: str
    patient: PatientInfo
    slots: List[Slot]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SubmissionStatus = SubmissionStatus.UPLOADED
    treatment_recommendations: str = ""
    report_ref: Optional[str] = None
    annotated_by: Optional[str] = None
    uploaded_at: datetime = field(default_factory=datetime.now)
    annotated_at: Optional[datetime] = None
    report_generated_at: Optional[datetime] = None

    def __post_init__(self):
        if len(self.slots) != len(SLOT_LABELS):
            raise ValueError(f"A submission has exactly {len(SLOT_LABELS)} slots, got {len(self.slots)}")
        self.status = SubmissionStatus(self.status)

    @classmethod
    def from_uploads(cls, user_id: str, patient: PatientInfo, original_refs: List[str]) -> "Submission":
        """Create a fresh submission from the three stored originals"""
        slots = [Slot(label=label, original_image_ref=ref) for label, ref in zip(SLOT_LABELS, original_refs)]
        return cls(user_id=user_id, patient=patient, slots=slots)

    @property
    def annotation_documents(self) -> List[Optional[AnnotationDocument]]:
        return [slot.annotation_document for slot in self.slots]

    @property
    def annotated_image_refs(self) -> List[Optional[str]]:
        return [slot.annotated_image_ref for slot in self.slots]

    @property
    def missing_raster_slots(self) -> List[int]:
        return [i for i, slot in enumerate(self.slots) if slot.annotated_image_ref is None]

    @property
    def is_complete(self) -> bool:
        """All three slots have both an overlay and a raster"""
        return all(slot.is_annotated for slot in self.slots)

    def advance_to(self, status: SubmissionStatus) -> None:
        """
        Move the status one step forward

        Raises:
            ValueError: Transition skips a state or goes backward
        """
        status = SubmissionStatus(status)
        current = _STATUS_ORDER.index(self.status)
        target = _STATUS_ORDER.index(status)
        if target != current + 1:
            raise ValueError(f"Cannot move submission from {self.status.value} to {status.value}")
        if status == SubmissionStatus.REPORTED and not self.is_complete:
            raise ValueError("Cannot report a submission with unannotated slots")
        self.status = status

    def apply_patch(self, patch: Dict[str, Any]) -> None:
        """
        Apply a persistence patch

        Supported keys: annotation_documents (full three-element list),
        annotated_image_refs (full three-element list), and any plain
        attribute of the submission.
        """
        patch = dict(patch)
        documents = patch.pop("annotation_documents", None)
        if documents is not None:
            if len(documents) != len(self.slots):
                raise ValueError(f"annotation_documents needs {len(self.slots)} entries")
            for slot, document in zip(self.slots, documents):
                slot.annotation_document = document

        refs = patch.pop("annotated_image_refs", None)
        if refs is not None:
            if len(refs) != len(self.slots):
                raise ValueError(f"annotated_image_refs needs {len(self.slots)} entries")
            for slot, ref in zip(self.slots, refs):
                slot.annotated_image_ref = ref

        for key, value in patch.items():
            if key in ("id", "slots") or not hasattr(self, key):
                raise KeyError(f"Unknown or read-only submission field: {key}")
            setattr(self, key, value)

        self.status = SubmissionStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "patient": self.patient.to_dict(),
            "slots": [slot.to_dict() for slot in self.slots],
            "status": self.status.value,
            "treatment_recommendations": self.treatment_recommendations,
            "report_ref": self.report_ref,
            "annotated_by": self.annotated_by,
            "uploaded_at": _format_datetime(self.uploaded_at),
            "annotated_at": _format_datetime(self.annotated_at),
            "report_generated_at": _format_datetime(self.report_generated_at),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], permissive: bool = False) -> "Submission":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            patient=PatientInfo.from_dict(data["patient"]),
            slots=[Slot.from_dict(s, permissive=permissive) for s in data["slots"]],
            status=SubmissionStatus(data.get("status", SubmissionStatus.UPLOADED.value)),
            treatment_recommendations=data.get("treatment_recommendations") or "",
            report_ref=data.get("report_ref"),
            annotated_by=data.get("annotated_by"),
            uploaded_at=_parse_datetime(data.get("uploaded_at")) or datetime.now(),
            annotated_at=_parse_datetime(data.get("annotated_at")),
            report_generated_at=_parse_datetime(data.get("report_generated_at")),
        )

    @classmethod
    def from_json(cls, json_str: str, permissive: bool = False) -> "Submission":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str), permissive=permissive)

    def summary(self) -> Dict[str, Any]:
        """Listing view of the submission"""
        return {
            "id": self.id,
            "patient_name": self.patient.name,
            "mobile_number": self.patient.mobile_number,
            "email": self.patient.email,
            "note": self.patient.note,
            "status": self.status.value,
            "uploaded_at": _format_datetime(self.uploaded_at),
            "annotated_at": _format_datetime(self.annotated_at),
            "report_generated_at": _format_datetime(self.report_generated_at),
            "image_count": sum(1 for slot in self.slots if slot.original_image_ref),
            "annotated_image_count": sum(1 for slot in self.slots if slot.annotated_image_ref),
            "image_order": [slot.display_name for slot in self.slots],
            "has_report": self.report_ref is not None,
        }
