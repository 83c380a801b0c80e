"""
Annotation Canvas - Streamlit component for drawing over dental photographs

Provides an interactive canvas for free-hand strokes, shapes and eraser
strokes. The component receives the fitted base image and the current
overlay, and reports the edited overlay back.
"""
import os
import streamlit.components.v1 as components
from typing import Optional, Dict, Any, Tuple
from PIL import Image
import base64
from io import BytesIO

from .models import AnnotationDocument
from .editor import EditorSession
from app import config

# Declare the custom component
_RELEASE = config.ANNOTATION_CANVAS_RELEASE_MODE

if not _RELEASE:
    _annotation_canvas = components.declare_component(
        "annotation_canvas",
        url="http://localhost:5174",  # Vite dev server
    )
else:
    parent_dir = os.path.dirname(os.path.abspath(__file__))
    build_dir = os.path.join(parent_dir, "../../../frontend/annotation_canvas/build")
    _annotation_canvas = components.declare_component(
        "annotation_canvas",
        path=build_dir
    )


def image_to_base64(image: Image.Image) -> str:
    """
    Convert PIL Image to base64 string

    Args:
        image: PIL Image object

    Returns:
        Base64-encoded data URL string
    """
    buffered = BytesIO()
    image.save(buffered, format="PNG")
    img_str = base64.b64encode(buffered.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"


def annotation_canvas(
    session: EditorSession,
    key: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Display the interactive canvas for the session's active slot

    The base image is sent already fitted to the surface layout, so object
    coordinates on both sides share the same canvas space. The front end is
    not part of this package: it is served by a Vite dev server on
    localhost:5174, or built into frontend/annotation_canvas/build when
    ANNOTATION_CANVAS_RELEASE=true. It must report every edit as
    {"document", "action", "actionTimestamp"} with a timestamp that
    changes per edit.

    Args:
        session: Editor session with an attached surface
        key: Streamlit component key

    Returns:
        Dict with updated state:
        - document: Serialized overlay
        - action: What the user did ('stroke', 'shape', 'move', 'undo', 'clear', None)
        - actionTimestamp: Milliseconds of the edit (None until the first edit)
        None when the session has no surface.
    """
    if not session.is_active:
        return None

    surface = session.surface
    layout = surface.layout
    document_data = session.working_document.serialize()

    component_value = _annotation_canvas(
        imageUrl=image_to_base64(surface.preview(AnnotationDocument())),
        width=layout.width,
        height=layout.height,
        document=document_data,
        tool=session.tool.value,
        color=session.color,
        brushWidth=session.brush_width,
        zoom=session.zoom,
        key=key,
        default={
            "document": document_data,
            "action": None,
            "actionTimestamp": None,
        },
    )

    return component_value


def parse_canvas_result(result: Optional[Dict[str, Any]]) -> Tuple[Optional[AnnotationDocument], Optional[str]]:
    """
    Parse the result from annotation_canvas component

    Args:
        result: Raw result dict from component

    Returns:
        Tuple of (document: AnnotationDocument | None, action: str | None)

    Raises:
        MalformedAnnotationError: Component sent an unparsable overlay
    """
    if result is None:
        return None, None

    document_data = result.get("document")
    document = AnnotationDocument.deserialize(document_data) if document_data is not None else None
    action = result.get("action")

    return document, action
