"""
Shared pytest fixtures for screening tests
"""
from io import BytesIO

import pytest
from PIL import Image, ImageDraw

from app.services.annotation.models import (
    AnnotationDocument,
    ArrowGroup,
    Circle,
    Point,
    Rectangle,
    Stroke,
)
from app.services.submission import (
    LocalBlobStorage,
    LocalSubmissionStore,
    PatientInfo,
    SubmissionService,
)

# Test photographs fit the canvas box without scaling
TEST_IMAGE_WIDTH = 400
TEST_IMAGE_HEIGHT = 300
TEST_MARGIN = 20


def make_image_bytes(color="white", size=(TEST_IMAGE_WIDTH, TEST_IMAGE_HEIGHT), image_format="PNG") -> bytes:
    """Create an encoded test photograph with a grey band"""
    image = Image.new("RGB", size, color=color)
    draw = ImageDraw.Draw(image)
    draw.rectangle([0, size[1] // 2 - 10, size[0], size[1] // 2 + 10], fill="#888888")
    buffer = BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    """Create a white PNG photograph"""
    return make_image_bytes()


@pytest.fixture
def jpeg_bytes():
    """Create a white JPEG photograph"""
    return make_image_bytes(image_format="JPEG")


@pytest.fixture
def intake_images():
    """Create the three intake uploads as (filename, bytes) pairs"""
    return [
        ("upper.png", make_image_bytes("#FFFFFF")),
        ("front.jpg", make_image_bytes("#EEEEEE", image_format="JPEG")),
        ("lower.png", make_image_bytes("#DDDDDD")),
    ]


@pytest.fixture
def patient():
    """Create valid patient details"""
    return PatientInfo(
        name="Asha Rao",
        mobile_number="+91 98765-43210",
        email="Asha@Example.com",
        note="Sensitive lower molars",
    )


@pytest.fixture
def sample_document():
    """Create a document with one object of each kind"""
    return AnnotationDocument(objects=[
        Stroke(points=[Point(x=30, y=30), Point(x=80, y=60), Point(x=120, y=40)], color="#DC2626", stroke_width=3),
        Rectangle(left=150, top=100, width=100, height=60, color="#7C3AED", stroke_width=3),
        Circle(left=60, top=180, radius=40, color="#059669", stroke_width=3),
        ArrowGroup(left=250, top=250, length=100, angle=0, head_size=16, color="#0891B2", stroke_width=3),
    ])


@pytest.fixture
def blob_storage(tmp_path):
    """Create blob storage in a temp directory"""
    return LocalBlobStorage(base_path=tmp_path / "blobs")


@pytest.fixture
def submission_store(tmp_path):
    """Create submission store in a temp directory"""
    return LocalSubmissionStore(base_path=tmp_path / "submissions")


@pytest.fixture
def service(blob_storage, submission_store):
    """Create submission service over temp storage"""
    return SubmissionService(blob_storage, submission_store)


@pytest.fixture
def uploaded_submission(service, patient, intake_images):
    """Create a submission in the uploaded state"""
    return service.upload_intake(patient, intake_images, user_id="patient-1")
