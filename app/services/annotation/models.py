"""
Annotation Data Models

Dataclasses for the vector overlay drawn over one dental photograph.

The overlay is an ordered sequence of annotation objects (free-hand strokes,
rectangles, circles and arrows). The base photograph is never part of the
document: image layers coming from a canvas are stripped on the way in and
on the way out.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import copy
import json
import logging

from app.services.errors import MalformedAnnotationError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Object types a canvas may emit for its background layer
IMAGE_TYPES = ("image",)


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def _check_stroke_width(value: float) -> None:
    if value <= 0:
        raise ValueError(f"stroke_width must be positive, got {value}")


@dataclass
class Point:
    """2D point with x, y coordinates"""
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Point":
        return cls(x=data["x"], y=data["y"])


@dataclass
class Stroke:
    """
    Free-hand stroke

    Attributes:
        points: Ordered stroke points in canvas coordinates
        color: Hex stroke color
        stroke_width: Line width in canvas pixels
    """
    points: List[Point] = field(default_factory=list)
    color: str = "#DC2626"
    stroke_width: float = 3

    kind = "stroke"

    def __post_init__(self):
        _check_stroke_width(self.stroke_width)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "color": self.color,
            "stroke_width": self.stroke_width,
            "points": [p.to_dict() for p in self.points],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stroke":
        return cls(
            points=[Point.from_dict(p) for p in data["points"]],
            color=data["color"],
            stroke_width=data["stroke_width"],
        )


@dataclass
class Rectangle:
    """Axis-aligned rectangle outline, positioned by its top-left corner"""
    left: float
    top: float
    width: float
    height: float
    color: str = "#DC2626"
    stroke_width: float = 3

    kind = "rectangle"

    def __post_init__(self):
        _check_non_negative("width", self.width)
        _check_non_negative("height", self.height)
        _check_stroke_width(self.stroke_width)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "color": self.color,
            "stroke_width": self.stroke_width,
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rectangle":
        return cls(
            left=data["left"],
            top=data["top"],
            width=data["width"],
            height=data["height"],
            color=data["color"],
            stroke_width=data["stroke_width"],
        )


@dataclass
class Circle:
    """Circle outline; left/top is the corner of its bounding box"""
    left: float
    top: float
    radius: float
    color: str = "#DC2626"
    stroke_width: float = 3

    kind = "circle"

    def __post_init__(self):
        _check_non_negative("radius", self.radius)
        _check_stroke_width(self.stroke_width)

    @property
    def center(self) -> tuple:
        return (self.left + self.radius, self.top + self.radius)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "color": self.color,
            "stroke_width": self.stroke_width,
            "left": self.left,
            "top": self.top,
            "radius": self.radius,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Circle":
        return cls(
            left=data["left"],
            top=data["top"],
            radius=data["radius"],
            color=data["color"],
            stroke_width=data["stroke_width"],
        )


@dataclass
class ArrowGroup:
    """
    Arrow made of a line and a triangular head sharing one transform

    Attributes:
        left: X of the arrow tail
        top: Y of the arrow tail
        length: Line length from tail to tip
        angle: Rotation in degrees, clockwise from the +x axis
        head_size: Side of the triangular head
    """
    left: float
    top: float
    length: float = 100
    angle: float = 0
    head_size: float = 16
    color: str = "#DC2626"
    stroke_width: float = 3

    kind = "arrow_group"

    def __post_init__(self):
        _check_non_negative("length", self.length)
        _check_non_negative("head_size", self.head_size)
        _check_stroke_width(self.stroke_width)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "color": self.color,
            "stroke_width": self.stroke_width,
            "left": self.left,
            "top": self.top,
            "length": self.length,
            "angle": self.angle,
            "head_size": self.head_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArrowGroup":
        return cls(
            left=data["left"],
            top=data["top"],
            length=data["length"],
            angle=data.get("angle", 0),
            head_size=data.get("head_size", 16),
            color=data["color"],
            stroke_width=data["stroke_width"],
        )


AnnotationObject = Union[Stroke, Rectangle, Circle, ArrowGroup]

# Closed set of serializable kinds
OBJECT_KINDS = {
    Stroke.kind: Stroke,
    Rectangle.kind: Rectangle,
    Circle.kind: Circle,
    ArrowGroup.kind: ArrowGroup,
}


def is_image_entry(data: Any) -> bool:
    """True for background image layers that must never be persisted"""
    return isinstance(data, dict) and (
        data.get("type") in IMAGE_TYPES or data.get("kind") in IMAGE_TYPES
    )


def object_from_dict(data: Dict[str, Any]) -> AnnotationObject:
    """
    Build an annotation object from its serialized form

    Raises:
        MalformedAnnotationError: Unknown kind, missing field or bad geometry
    """
    if not isinstance(data, dict):
        raise MalformedAnnotationError(f"Annotation object must be a mapping, got {type(data).__name__}")

    kind = data.get("kind")
    object_cls = OBJECT_KINDS.get(kind)
    if object_cls is None:
        raise MalformedAnnotationError(f"Unknown annotation kind: {kind!r}")

    try:
        return object_cls.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedAnnotationError(f"Invalid {kind} object: {e}") from e


@dataclass
class AnnotationDocument:
    """
    Vector overlay for one image slot

    Attributes:
        objects: Annotation objects; z-order is insertion order
    """
    objects: List[AnnotationObject] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.objects)

    @property
    def is_empty(self) -> bool:
        return not self.objects

    def add_object(self, obj: AnnotationObject) -> None:
        """Append an object on top of the existing ones"""
        self.objects.append(obj)

    def remove_last(self) -> Optional[AnnotationObject]:
        """
        Remove the most recently added object

        Returns:
            The removed object, or None if the document is empty
        """
        if not self.objects:
            return None
        return self.objects.pop()

    def clear(self) -> None:
        """Remove every annotation object"""
        self.objects.clear()

    def copy(self) -> "AnnotationDocument":
        return AnnotationDocument(objects=copy.deepcopy(self.objects))

    def serialize(self) -> Dict[str, Any]:
        """Canonical dict form with image entries filtered out"""
        entries = [obj.to_dict() for obj in self.objects]
        return {
            "version": SCHEMA_VERSION,
            "objects": [e for e in entries if not is_image_entry(e)],
        }

    def to_json(self) -> str:
        """Serialize to a byte-stable JSON string"""
        return json.dumps(self.serialize(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def deserialize(cls, blob: Any, permissive: bool = False) -> Union["AnnotationDocument", Any]:
        """
        Inverse of serialize()

        Accepts a dict with an "objects" list, a JSON string of one, or a bare
        list of objects. Image entries are dropped.

        Args:
            blob: Serialized document
            permissive: Return the blob unchanged instead of raising on parse
                failure (legacy stored data)

        Returns:
            AnnotationDocument, or the untouched blob in permissive mode when
            parsing failed

        Raises:
            MalformedAnnotationError: Blob is not an object sequence (strict mode)
        """
        try:
            return cls._parse(blob)
        except MalformedAnnotationError:
            if not permissive:
                raise
            logger.warning("Keeping unparsable annotation blob as-is (%s)", type(blob).__name__)
            return blob

    @classmethod
    def from_json(cls, json_str: str) -> "AnnotationDocument":
        return cls._parse(json_str)

    @classmethod
    def _parse(cls, blob: Any) -> "AnnotationDocument":
        data = blob
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise MalformedAnnotationError(f"Annotation blob is not valid JSON: {e}") from e

        if isinstance(data, dict):
            entries = data.get("objects")
        else:
            entries = data

        if not isinstance(entries, list):
            raise MalformedAnnotationError("Annotation blob has no object sequence")

        return cls(objects=[object_from_dict(e) for e in entries if not is_image_entry(e)])
