"""
Annotation rasterizer

Flattens an AnnotationDocument onto its base photograph and exports a PNG.
The output depends only on the base image bytes, the document and the
layout settings, so re-running it reproduces the same bytes.
"""
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple
import math

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from app import config
from app.services.annotation.models import (
    AnnotationDocument,
    ArrowGroup,
    Circle,
    Rectangle,
    Stroke,
)
from app.services.errors import MalformedAnnotationError, ValidationError

ACCEPTED_FORMATS = ("PNG", "JPEG")


@dataclass(frozen=True)
class CanvasLayout:
    """
    Placement of a base image on the annotation canvas

    Attributes:
        scale: Downscale factor applied to the base image (never above 1)
        width: Canvas width in pixels
        height: Canvas height in pixels
        image_left: X offset of the scaled image
        image_top: Y offset of the scaled image
        image_width: Scaled image width
        image_height: Scaled image height
    """
    scale: float
    width: int
    height: int
    image_left: int
    image_top: int
    image_width: int
    image_height: int

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.width / 2, self.height / 2)


def compute_layout(
    image_size: Tuple[int, int],
    max_size: Optional[Tuple[int, int]] = None,
    margin: Optional[int] = None,
) -> CanvasLayout:
    """
    Fit an image into the annotation box without upscaling

    Args:
        image_size: (width, height) of the base image
        max_size: (width, height) of the box including margins
        margin: Border kept around the image on every side

    Returns:
        CanvasLayout sized to the scaled image plus margin
    """
    if max_size is None:
        max_size = (config.CANVAS_MAX_WIDTH, config.CANVAS_MAX_HEIGHT)
    if margin is None:
        margin = config.CANVAS_MARGIN

    img_w, img_h = image_size
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"Image size must be positive, got {image_size}")

    avail_w = max(max_size[0] - 2 * margin, 1)
    avail_h = max(max_size[1] - 2 * margin, 1)
    scale = min(avail_w / img_w, avail_h / img_h, 1)

    scaled_w = max(int(round(img_w * scale)), 1)
    scaled_h = max(int(round(img_h * scale)), 1)

    return CanvasLayout(
        scale=scale,
        width=scaled_w + 2 * margin,
        height=scaled_h + 2 * margin,
        image_left=margin,
        image_top=margin,
        image_width=scaled_w,
        image_height=scaled_h,
    )


def decode_image(data: bytes) -> Image.Image:
    """
    Decode PNG/JPEG bytes into an upright RGB image

    Raises:
        ValidationError: Bytes are not a decodable PNG or JPEG
    """
    try:
        image = Image.open(BytesIO(data))
        image_format = image.format
        image.load()
    except Image.DecompressionBombError as e:
        raise ValidationError(f"Image dimensions are too large: {e}", field="image") from e
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ValidationError(f"Image could not be decoded: {e}", field="image") from e

    if image_format not in ACCEPTED_FORMATS:
        raise ValidationError(
            f"Only JPEG, JPG, and PNG images are allowed (got {image_format})",
            field="image",
        )

    return ImageOps.exif_transpose(image).convert("RGB")


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG without metadata chunks"""
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _width(stroke_width: float) -> int:
    return max(int(round(stroke_width)), 1)


def _draw_stroke(draw: ImageDraw.ImageDraw, obj: Stroke) -> None:
    if not obj.points:
        return
    width = _width(obj.stroke_width)
    points = [(p.x, p.y) for p in obj.points]
    if len(points) > 1:
        draw.line(points, fill=obj.color, width=width, joint="curve")
    # Round caps (and single-point dots)
    r = width / 2
    for x, y in (points[0], points[-1]):
        draw.ellipse([x - r, y - r, x + r, y + r], fill=obj.color)


def _draw_rectangle(draw: ImageDraw.ImageDraw, obj: Rectangle) -> None:
    box = [obj.left, obj.top, obj.left + obj.width, obj.top + obj.height]
    draw.rectangle(box, outline=obj.color, width=_width(obj.stroke_width))


def _draw_circle(draw: ImageDraw.ImageDraw, obj: Circle) -> None:
    diameter = 2 * obj.radius
    box = [obj.left, obj.top, obj.left + diameter, obj.top + diameter]
    draw.ellipse(box, outline=obj.color, width=_width(obj.stroke_width))


def _draw_arrow(draw: ImageDraw.ImageDraw, obj: ArrowGroup) -> None:
    theta = math.radians(obj.angle)
    dx, dy = math.cos(theta), math.sin(theta)
    tail = (obj.left, obj.top)
    tip = (obj.left + obj.length * dx, obj.top + obj.length * dy)
    draw.line([tail, tip], fill=obj.color, width=_width(obj.stroke_width))

    h = obj.head_size
    base_x, base_y = tip[0] - h * dx, tip[1] - h * dy
    half = h / 2
    head = [
        tip,
        (base_x - half * dy, base_y + half * dx),
        (base_x + half * dy, base_y - half * dx),
    ]
    draw.polygon(head, fill=obj.color)


_DRAWERS = {
    Stroke: _draw_stroke,
    Rectangle: _draw_rectangle,
    Circle: _draw_circle,
    ArrowGroup: _draw_arrow,
}


def draw_document(image: Image.Image, document: AnnotationDocument) -> None:
    """Draw every object of the document onto image, in sequence order"""
    draw = ImageDraw.Draw(image)
    for obj in document.objects:
        drawer = _DRAWERS.get(type(obj))
        if drawer is None:
            raise TypeError(f"Unsupported annotation object: {type(obj).__name__}")
        try:
            drawer(draw, obj)
        except ValueError as e:
            # Unknown color strings surface here
            raise MalformedAnnotationError(f"Cannot draw {obj.kind}: {e}") from e


def render(
    base: Image.Image,
    document: Optional[AnnotationDocument],
    layout: CanvasLayout,
    background: Optional[str] = None,
) -> Image.Image:
    """
    Render base image plus overlay onto a new canvas

    Args:
        base: Decoded base photograph
        document: Overlay to draw (None for the bare base image)
        layout: Placement computed by compute_layout() for this base
        background: Canvas fill color

    Returns:
        New RGB image of layout.size
    """
    canvas = Image.new("RGB", layout.size, background or config.CANVAS_BACKGROUND)
    scaled = base
    if base.size != (layout.image_width, layout.image_height):
        scaled = base.resize((layout.image_width, layout.image_height), Image.LANCZOS)
    canvas.paste(scaled, (layout.image_left, layout.image_top))

    if document is not None:
        draw_document(canvas, document)
    return canvas


def composite(
    base_bytes: bytes,
    document: Optional[AnnotationDocument],
    max_size: Optional[Tuple[int, int]] = None,
    margin: Optional[int] = None,
    background: Optional[str] = None,
) -> bytes:
    """
    Flatten an annotation document onto its base image

    Args:
        base_bytes: PNG/JPEG bytes of the original photograph
        document: Annotation overlay
        max_size: Annotation box size, defaults to the configured canvas size
        margin: Border around the image, defaults to the configured margin
        background: Canvas fill color

    Returns:
        PNG bytes of the flattened image
    """
    base = decode_image(base_bytes)
    layout = compute_layout(base.size, max_size=max_size, margin=margin)
    return encode_png(render(base, document, layout, background=background))
