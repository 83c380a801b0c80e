"""
Annotation Service

Provides the vector overlay model, the editing session and the canvas
component used to annotate dental photographs.

Usage:
    from app.services.annotation import AnnotationDocument, Rectangle, EditorSession

    # Build an overlay by hand
    document = AnnotationDocument()
    document.add_object(Rectangle(left=10, top=20, width=100, height=60, color="#DC2626"))
    data = document.serialize()
    restored = AnnotationDocument.deserialize(data)

    # Edit the three slots of a submission
    session = EditorSession(documents=[doc0, None, None], surface_factory=factory)
    session.select_tool("freehand")
    session.capture_stroke([(10, 10), (40, 25)])
    session.switch_slot(1)           # flushes slot 0 first
    documents = session.end()

    # Use annotation canvas (in Streamlit app)
    from app.services.annotation import annotation_canvas
    result = annotation_canvas(session, key="canvas_0")
"""
from .models import (
    Point,
    Stroke,
    Rectangle,
    Circle,
    ArrowGroup,
    AnnotationObject,
    AnnotationDocument,
    object_from_dict,
)
from .editor import (
    EditorSession,
    RenderSurface,
    Tool,
    ShapeKind,
    CONDITION_PALETTE,
)

# Lazy imports for Streamlit components (avoid loading Streamlit in non-UI contexts)
_canvas_module = None


def __getattr__(name):
    """Lazy load Streamlit canvas components to avoid import warnings in services."""
    global _canvas_module
    if name in ("annotation_canvas", "parse_canvas_result"):
        if _canvas_module is None:
            from . import canvas as _canvas_module
        return getattr(_canvas_module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Point",
    "Stroke",
    "Rectangle",
    "Circle",
    "ArrowGroup",
    "AnnotationObject",
    "AnnotationDocument",
    "object_from_dict",
    "EditorSession",
    "RenderSurface",
    "Tool",
    "ShapeKind",
    "CONDITION_PALETTE",
    "annotation_canvas",
    "parse_canvas_result",
]
