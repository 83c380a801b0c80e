"""
Intake validation

Checks patient details and the three uploaded photographs before a
submission is created.
"""
from typing import List, Optional, Sequence, Tuple, Union
import re

from app import config
from app.services.errors import ValidationError
from app.services.rendering.rasterizer import decode_image
from app.services.submission.models import PatientInfo, SLOT_DISPLAY_NAMES, SLOT_LABELS

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_PATTERN = re.compile(r"^[0-9]{10,15}$")
MOBILE_STRIP_PATTERN = re.compile(r"[\s\-\+\(\)]")
ALLOWED_EXTENSIONS = (".jpeg", ".jpg", ".png")

# An upload is either raw bytes or a (filename, bytes) pair
Upload = Union[bytes, Tuple[str, bytes]]


def validate_patient(patient: PatientInfo) -> PatientInfo:
    """
    Validate and normalize patient details

    Returns:
        New PatientInfo with trimmed fields and a lower-cased email

    Raises:
        ValidationError: A required field is missing or malformed
    """
    name = (patient.name or "").strip()
    mobile = (patient.mobile_number or "").strip()
    email = (patient.email or "").strip().lower()

    missing = {"name": not name, "mobile_number": not mobile, "email": not email}
    if any(missing.values()):
        fields = [k for k, v in missing.items() if v]
        raise ValidationError(
            "Patient name, mobile number, and email are required",
            field=fields[0],
            details={"missing_fields": missing},
        )

    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please provide a valid email address", field="email")

    if not MOBILE_PATTERN.match(MOBILE_STRIP_PATTERN.sub("", mobile)):
        raise ValidationError("Please provide a valid mobile number", field="mobile_number")

    return PatientInfo(name=name, mobile_number=mobile, email=email, note=(patient.note or "").strip())


def _split_upload(upload: Upload) -> Tuple[Optional[str], bytes]:
    if isinstance(upload, tuple):
        filename, data = upload
        return filename, data
    return None, upload


def validate_images(images: Sequence[Upload], max_bytes: Optional[int] = None) -> List[bytes]:
    """
    Validate the three intake photographs

    Args:
        images: Uploads in fixed order (upper, front, lower)
        max_bytes: Per-image size limit, defaults to MAX_IMAGE_BYTES

    Returns:
        Raw bytes of each image, in order

    Raises:
        ValidationError: Wrong count, oversize, bad extension or undecodable image
    """
    if max_bytes is None:
        max_bytes = config.MAX_IMAGE_BYTES

    count = len(images) if images else 0
    if count != len(SLOT_LABELS):
        raise ValidationError(
            "Exactly 3 images are required in order: 1) Upper teeth, 2) Front teeth, 3) Lower teeth",
            field="images",
            details={"current_count": count, "required_count": len(SLOT_LABELS)},
        )

    result = []
    for label, upload in zip(SLOT_LABELS, images):
        filename, data = _split_upload(upload)
        slot_name = SLOT_DISPLAY_NAMES[label]

        if filename is not None and not filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise ValidationError(
                f"{slot_name}: only JPEG, JPG, and PNG images are allowed",
                field="images",
                details={"slot": label, "filename": filename},
            )

        if not data:
            raise ValidationError(f"{slot_name}: image is empty", field="images", details={"slot": label})

        if len(data) > max_bytes:
            raise ValidationError(
                f"{slot_name}: image exceeds the {max_bytes // (1024 * 1024)}MB limit",
                field="images",
                details={"slot": label, "size": len(data)},
            )

        try:
            decode_image(data)
        except ValidationError as e:
            raise ValidationError(f"{slot_name}: {e}", field="images", details={"slot": label}) from e

        result.append(data)

    return result
