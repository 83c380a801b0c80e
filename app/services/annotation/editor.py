"""
Annotation Editor Engine

Stateful editing session over the three slot documents of a submission.
One session drives one canvas at a time; the canvas itself is an explicitly
owned RenderSurface handed out by a factory and closed when the session
switches slot or ends.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from PIL import Image

from app.services.annotation.models import (
    AnnotationDocument,
    AnnotationObject,
    ArrowGroup,
    Circle,
    Point,
    Rectangle,
    Stroke,
)
from app.services.rendering import rasterizer

logger = logging.getLogger(__name__)

SLOT_COUNT = 3

MIN_ZOOM = 0.2
MAX_ZOOM = 5.0
ZOOM_STEP = 0.1

MIN_BRUSH_WIDTH = 1
MAX_BRUSH_WIDTH = 20
DEFAULT_BRUSH_WIDTH = 3
DEFAULT_COLOR = "#DC2626"

ERASER_COLOR = "#FFFFFF"
ERASER_MIN_WIDTH = 10
ERASER_EXTRA_WIDTH = 6

SHAPE_STROKE_WIDTH = 3
DEFAULT_RECT_SIZE = (100, 60)
DEFAULT_CIRCLE_RADIUS = 40
DEFAULT_ARROW_LENGTH = 100
DEFAULT_ARROW_HEAD = 16

# (label, color) pairs offered by the drawing palette
CONDITION_PALETTE = [
    ("Inflamed / Red gums", "#7C2D12"),
    ("Malaligned", "#7C3AED"),
    ("Receded gums", "#059669"),
    ("Stains", "#DC2626"),
    ("Attrition", "#0891B2"),
    ("Crowns", "#EC4899"),
]


class Tool(str, Enum):
    """Interaction modes of the editor"""
    FREEHAND = "freehand"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    ARROW = "arrow"
    ERASER = "eraser"


class ShapeKind(str, Enum):
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    ARROW = "arrow"


class RenderSurface:
    """
    Rendering surface for one slot: the fitted base image plus its layout

    Owned by exactly one EditorSession. close() releases the decoded image;
    a closed surface must not be reused.
    """

    def __init__(self, base_image: Image.Image, layout: Optional["rasterizer.CanvasLayout"] = None):
        self.base_image = base_image
        self.layout = layout or rasterizer.compute_layout(base_image.size)
        self.closed = False

    @property
    def center(self) -> Tuple[float, float]:
        return self.layout.center

    def preview(self, document: AnnotationDocument) -> Image.Image:
        """Render the base image with the given overlay"""
        if self.closed:
            raise RuntimeError("Render surface is closed")
        return rasterizer.render(self.base_image, document, self.layout)

    def close(self) -> None:
        if not self.closed:
            self.base_image.close()
            self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


SurfaceFactory = Callable[[int], RenderSurface]


class EditorSession:
    """
    Editing session for one submission

    Attributes:
        active_slot_index: Slot currently shown on the surface
        drafts: Per-slot draft documents (flushed copies)
        tool: Active tool
        color: Active drawing color
        brush_width: Free-hand brush width
        zoom: View zoom factor (never affects documents)
        surface: Surface of the active slot, None when not attached
    """

    def __init__(
        self,
        documents: Optional[Sequence[Optional[AnnotationDocument]]] = None,
        surface_factory: Optional[SurfaceFactory] = None,
        active_slot_index: int = 0,
    ):
        documents = list(documents or [])
        if len(documents) > SLOT_COUNT:
            raise ValueError(f"Expected at most {SLOT_COUNT} documents, got {len(documents)}")
        documents += [None] * (SLOT_COUNT - len(documents))
        self._check_index(active_slot_index)

        self.drafts: List[AnnotationDocument] = [
            doc.copy() if doc is not None else AnnotationDocument() for doc in documents
        ]
        self.active_slot_index = active_slot_index
        self.tool = Tool.FREEHAND
        self.color = DEFAULT_COLOR
        self.brush_width = DEFAULT_BRUSH_WIDTH
        self.zoom = 1.0

        self._surface_factory = surface_factory
        self.surface: Optional[RenderSurface] = None
        self._working = self.drafts[active_slot_index].copy()
        self._open_surface()

    @staticmethod
    def _check_index(index: int) -> None:
        if not 0 <= index < SLOT_COUNT:
            raise ValueError(f"Slot index must be in [0, {SLOT_COUNT - 1}], got {index}")

    def _open_surface(self) -> None:
        if self._surface_factory is None:
            return
        self.surface = self._surface_factory(self.active_slot_index)

    def _close_surface(self) -> None:
        if self.surface is not None:
            self.surface.close()
            self.surface = None

    @property
    def is_active(self) -> bool:
        return self.surface is not None

    @property
    def working_document(self) -> AnnotationDocument:
        """Document being edited on the active slot"""
        return self._working

    @property
    def is_drawing_mode(self) -> bool:
        return self.tool in (Tool.FREEHAND, Tool.ERASER)

    def select_tool(self, tool) -> None:
        self.tool = Tool(tool)

    def set_color(self, color: str) -> None:
        self.color = color

    def set_brush_width(self, width: float) -> None:
        self.brush_width = min(max(width, MIN_BRUSH_WIDTH), MAX_BRUSH_WIDTH)

    def _stroke_style(self) -> Tuple[str, float]:
        if self.tool == Tool.ERASER:
            return ERASER_COLOR, max(ERASER_MIN_WIDTH, self.brush_width + ERASER_EXTRA_WIDTH)
        return self.color, self.brush_width

    def capture_stroke(self, points: Sequence) -> Optional[Stroke]:
        """
        Append a free-hand (or eraser) stroke to the active slot

        Args:
            points: Point objects or (x, y) pairs in canvas coordinates

        Returns:
            The appended Stroke, or None when nothing was captured
        """
        if not self.is_active or not self.is_drawing_mode or not points:
            return None

        color, width = self._stroke_style()
        stroke = Stroke(
            points=[p if isinstance(p, Point) else Point(x=p[0], y=p[1]) for p in points],
            color=color,
            stroke_width=width,
        )
        self._working.add_object(stroke)
        return stroke

    def place_shape(self, kind) -> Optional[int]:
        """
        Append a default-sized shape centered on the surface

        Returns:
            Index of the new object in the working document, or None when
            no surface is attached
        """
        if not self.is_active:
            return None

        kind = ShapeKind(kind)
        cx, cy = self.surface.center
        obj: AnnotationObject
        if kind == ShapeKind.RECTANGLE:
            w, h = DEFAULT_RECT_SIZE
            obj = Rectangle(left=cx - w / 2, top=cy - h / 2, width=w, height=h,
                            color=self.color, stroke_width=SHAPE_STROKE_WIDTH)
        elif kind == ShapeKind.CIRCLE:
            r = DEFAULT_CIRCLE_RADIUS
            obj = Circle(left=cx - r, top=cy - r, radius=r,
                         color=self.color, stroke_width=SHAPE_STROKE_WIDTH)
        else:
            obj = ArrowGroup(left=cx - DEFAULT_ARROW_LENGTH / 2, top=cy,
                             length=DEFAULT_ARROW_LENGTH, head_size=DEFAULT_ARROW_HEAD,
                             color=self.color, stroke_width=SHAPE_STROKE_WIDTH)

        self.tool = Tool(kind.value)
        self._working.add_object(obj)
        return len(self._working) - 1

    def undo(self) -> Optional[AnnotationObject]:
        if not self.is_active:
            return None
        return self._working.remove_last()

    def clear(self) -> None:
        if not self.is_active:
            return
        self._working.clear()

    def set_zoom(self, zoom: float) -> float:
        self.zoom = min(max(float(zoom), MIN_ZOOM), MAX_ZOOM)
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(round(self.zoom + ZOOM_STEP, 2))

    def zoom_out(self) -> float:
        return self.set_zoom(round(self.zoom - ZOOM_STEP, 2))

    def reset_zoom(self) -> float:
        return self.set_zoom(1.0)

    def replace_working(self, document: AnnotationDocument) -> None:
        """Take over the document reported back by the canvas component"""
        if not self.is_active:
            return
        self._working = document.copy()

    def flush(self) -> None:
        """Store the working document as the active slot's draft"""
        self.drafts[self.active_slot_index] = self._working.copy()

    def switch_slot(self, index: int) -> None:
        """
        Make another slot active

        The current draft is flushed before the switch; the old surface is
        closed and a new one is opened for the target slot.
        """
        self._check_index(index)
        if index == self.active_slot_index:
            return

        self.flush()
        self._close_surface()
        self.active_slot_index = index
        self._working = self.drafts[index].copy()
        self.reset_zoom()
        self._open_surface()
        logger.debug("Switched editor to slot %d", index)

    def documents(self) -> List[AnnotationDocument]:
        """Flush and return copies of all slot drafts"""
        self.flush()
        return [doc.copy() for doc in self.drafts]

    def preview(self) -> Optional[Image.Image]:
        if not self.is_active:
            return None
        return self.surface.preview(self._working)

    def end(self) -> List[AnnotationDocument]:
        """Flush drafts, release the surface and return the documents"""
        documents = self.documents()
        self._close_surface()
        self._surface_factory = None
        return documents

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.end()
