"""
Screening Report Builder

Creates the one-page A4 screening report: header band, patient info row,
a card with the three annotated views, their labels and the condition
legend, the treatment recommendation rows, and a footer.

Positions below are given top-down in points, the way the page is laid
out; _Page converts them to ReportLab's bottom-up coordinates.
"""
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Optional, Sequence, TYPE_CHECKING
import logging

from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app.services.errors import IncompleteAnnotationError, ValidationError
from app.services.rendering.rasterizer import decode_image

if TYPE_CHECKING:
    from app.services.submission.models import Submission

logger = logging.getLogger(__name__)

COLORS = {
    "purple": "#7C3AED",
    "light_section": "#F3F4F6",
    "text": "#111827",
    "muted": "#6B7280",
    "border": "#E5E7EB",
    "orange": "#F59E0B",
    "red": "#DC2626",
    "amber": "#D97706",
    "heading": "#0F3B62",
}

FONT = "Helvetica"
TITLE = ("Oral Health Screening", "Report")
DEFAULT_GENERATOR = "Healthcare Professional"
UNAVAILABLE_TEXT = "Image not available"


@dataclass(frozen=True)
class Condition:
    """Condition category shown in the legend and the recommendation rows"""
    color: str
    legend_label: str
    row_label: str
    guidance: str


# Fixed guidance per category; the clinician's free text is not rendered here
CONDITIONS = (
    Condition("#4B275A", "Inflamed / Red gums", "Inflamed or Red\ngums", "Scaling."),
    Condition("#F6C33B", "Misaligned", "Misaligned", "Braces or Clear Aligner"),
    Condition("#71B17C", "Receded gums", "Receded gums", "Gum Surgery."),
    Condition("#E65050", "Stains", "Stains", "Teeth cleaning and polishing."),
    Condition("#2AB6C9", "Attrition", "Attrition", "Filling/ Night Guard."),
    Condition(
        "#E23C83",
        "Crowns",
        "Crowns",
        "If the crown is loose or broken, better get it checked. Teeth coloured caps are the best ones.",
    ),
)

SLOT_PILL_COLORS = (COLORS["red"], COLORS["amber"], COLORS["red"])

# Layout (points, top-down)
HEADER_HEIGHT = 120
INFO_Y = 135
INFO_X = (28, 220, 420)
CARD_X = 18
CARD_Y = 158
CARD_HEIGHT = 255
CARD_RADIUS = 8
SLOT_WIDTH = 165
SLOT_HEIGHT = 120
SLOT_GAP = 24
SLOT_PADDING = 6
PILL_WIDTH = 92
PILL_HEIGHT = 20
ACCENT_HEIGHT = 6
ROW_HEIGHT = 22
FOOTER_OFFSET = 34


class _Page:
    """Thin wrapper over a ReportLab canvas taking top-down coordinates"""

    def __init__(self, c: canvas.Canvas, width: float, height: float):
        self.c = c
        self.width = width
        self.height = height

    def rect(self, x, top, w, h, fill, radius=0, stroke=None):
        self.c.saveState()
        self.c.setFillColor(HexColor(fill))
        if stroke:
            self.c.setStrokeColor(HexColor(stroke))
        y = self.height - top - h
        if radius:
            self.c.roundRect(x, y, w, h, radius, stroke=1 if stroke else 0, fill=1)
        else:
            self.c.rect(x, y, w, h, stroke=1 if stroke else 0, fill=1)
        self.c.restoreState()

    def text(self, value, x, top, size, color, width=None, align="left", leading=None):
        """Draw text whose first line starts at top; wraps when width is given"""
        leading = leading or size * 1.2
        self.c.saveState()
        self.c.setFillColor(HexColor(color) if isinstance(color, str) else color)
        self.c.setFont(FONT, size)
        lines = []
        for paragraph in str(value).split("\n"):
            lines.extend(simpleSplit(paragraph, FONT, size, width) if width else [paragraph])
        for i, line in enumerate(lines):
            baseline = self.height - top - size * 0.8 - i * leading
            if align == "center":
                self.c.drawCentredString(x + (width or 0) / 2, baseline, line)
            else:
                self.c.drawString(x, baseline, line)
        self.c.restoreState()

    def image(self, image, x, top, w, h):
        self.c.drawImage(
            ImageReader(image), x, self.height - top - h, width=w, height=h,
            preserveAspectRatio=True, anchor="c",
        )


def check_report_ready(submission: "Submission", rasters: Optional[Sequence[Optional[bytes]]] = None) -> None:
    """
    Verify the report precondition

    Raises:
        IncompleteAnnotationError: Status is not annotated, a slot lacks its
            overlay or raster ref, or the raster list does not cover every slot
    """
    from app.services.submission.models import SubmissionStatus

    if submission.status != SubmissionStatus.ANNOTATED:
        raise IncompleteAnnotationError(
            f"Submission must be annotated before generating report (status: {submission.status.value})"
        )
    missing = [i for i, slot in enumerate(submission.slots) if not slot.is_annotated]
    if missing:
        raise IncompleteAnnotationError(
            "Annotated images are required to generate the report (all three views).",
            missing_slots=missing,
        )
    if rasters is not None and len(rasters) != len(submission.slots):
        raise IncompleteAnnotationError(
            f"Expected {len(submission.slots)} rasters, got {len(rasters)}",
            missing_slots=list(range(len(rasters), len(submission.slots))),
        )


def _draw_header(page: _Page, submission: "Submission", generated_at: datetime) -> None:
    page.rect(0, 0, page.width, HEADER_HEIGHT, COLORS["purple"])
    page.text(TITLE[0], 0, 30, 26, white, width=page.width, align="center")
    page.text(TITLE[1], 0, 64, 22, white, width=page.width, align="center")

    patient = submission.patient
    fields = (
        f"Name:  {patient.name or '-'}",
        f"Phone: {patient.mobile_number or '-'}",
        f"Date:  {generated_at.strftime('%d/%m/%Y')}",
    )
    for x, value in zip(INFO_X, fields):
        page.text(value, x, INFO_Y, 10, COLORS["text"])


def _draw_slots(page: _Page, submission: "Submission", rasters: Sequence[Optional[bytes]], slot_top: float) -> None:
    first_x = (page.width - (SLOT_WIDTH * 3 + SLOT_GAP * 2)) / 2

    # Strictly one slot at a time: decode, then draw
    for i, slot in enumerate(submission.slots):
        x = first_x + i * (SLOT_WIDTH + SLOT_GAP)
        page.rect(x, slot_top, SLOT_WIDTH, SLOT_HEIGHT, "#FFFFFF", radius=CARD_RADIUS, stroke=COLORS["border"])

        image = None
        if rasters[i]:
            try:
                image = decode_image(rasters[i])
            except ValidationError as e:
                logger.warning("Slot %d raster unreadable, using placeholder: %s", i, e)

        if image is not None:
            page.image(
                image,
                x + SLOT_PADDING,
                slot_top + SLOT_PADDING,
                SLOT_WIDTH - 2 * SLOT_PADDING,
                SLOT_HEIGHT - 2 * SLOT_PADDING,
            )
        else:
            page.text(UNAVAILABLE_TEXT, x, slot_top + SLOT_HEIGHT / 2 - 5, 9, COLORS["muted"],
                      width=SLOT_WIDTH, align="center")

        pill_x = x + (SLOT_WIDTH - PILL_WIDTH) / 2
        pill_top = slot_top + SLOT_HEIGHT + 10
        page.rect(pill_x, pill_top, PILL_WIDTH, PILL_HEIGHT, SLOT_PILL_COLORS[i], radius=PILL_HEIGHT / 2)
        page.text(slot.display_name, pill_x, pill_top + (PILL_HEIGHT - 12) / 2, 10, white,
                  width=PILL_WIDTH, align="center")


def _draw_legend(page: _Page, card_width: float, legend_top: float) -> None:
    start_x = CARD_X + 20
    step = (card_width - 40) / len(CONDITIONS)
    for i, condition in enumerate(CONDITIONS):
        lx = start_x + i * step
        page.rect(lx, legend_top + 2, 10, 10, condition.color)
        page.text(condition.legend_label, lx + 16, legend_top, 8, COLORS["muted"], width=step - 20)


def _draw_recommendations(page: _Page, title_top: float) -> None:
    page.text("TREATMENT RECOMMENDATIONS:", CARD_X + 12, title_top, 11, COLORS["heading"])

    guidance_x = CARD_X + 145
    guidance_width = page.width - guidance_x - 20
    top = title_top + 20
    for condition in CONDITIONS:
        page.rect(CARD_X + 12, top + 3, 10, 10, condition.color)
        page.text(condition.row_label, CARD_X + 30, top, 8, COLORS["text"], width=90)
        page.text(":", CARD_X + 130, top, 8, COLORS["text"])
        page.text(condition.guidance, guidance_x, top, 9, COLORS["text"], width=guidance_width, leading=10)
        top += ROW_HEIGHT


def build_report(
    submission: "Submission",
    rasters: Sequence[Optional[bytes]],
    generated_at: Optional[datetime] = None,
    generated_by: Optional[str] = None,
) -> bytes:
    """
    Build the screening report PDF

    Args:
        submission: Annotated submission with all three raster refs set
        rasters: PNG bytes per slot in slot order; None or undecodable
            entries render an "Image not available" placeholder
        generated_at: Timestamp printed on the report (default: now)
        generated_by: Name for the footer (default: the annotating clinician)

    Returns:
        PDF bytes; identical inputs give identical bytes

    Raises:
        IncompleteAnnotationError: Submission is not annotated or a raster
            ref is missing; raised before anything is drawn
    """
    check_report_ready(submission, rasters)

    generated_at = generated_at or datetime.now()
    generated_by = generated_by or submission.annotated_by or DEFAULT_GENERATOR

    buffer = BytesIO()
    width, height = A4
    c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    c.setTitle(" ".join(TITLE))
    c.setAuthor(generated_by)
    page = _Page(c, width, height)

    _draw_header(page, submission, generated_at)

    card_width = width - CARD_X * 2
    page.rect(CARD_X, CARD_Y, card_width, CARD_HEIGHT, COLORS["light_section"], radius=CARD_RADIUS)
    page.text("SCREENING REPORT:", CARD_X + 14, CARD_Y + 12, 11, COLORS["text"])

    slot_top = CARD_Y + 34
    _draw_slots(page, submission, rasters, slot_top)
    _draw_legend(page, card_width, slot_top + SLOT_HEIGHT + 44)
    page.rect(CARD_X, CARD_Y + CARD_HEIGHT - ACCENT_HEIGHT, card_width, ACCENT_HEIGHT, COLORS["orange"])

    _draw_recommendations(page, CARD_Y + CARD_HEIGHT + 18)

    footer = f"Report generated by: {generated_by} | {generated_at.strftime('%d/%m/%Y, %H:%M:%S')}"
    page.text(footer, CARD_X + 12, height - FOOTER_OFFSET, 8, COLORS["muted"],
              width=width - 2 * (CARD_X + 12))

    c.showPage()
    c.save()
    return buffer.getvalue()
