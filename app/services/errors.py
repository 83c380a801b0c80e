"""
Error taxonomy for the screening pipeline

All errors raised by the core services derive from ScreeningError so that
page handlers can catch them in one place and show a message.
"""
from typing import Any, Dict, List, Optional


class ScreeningError(Exception):
    """Base class for all screening pipeline errors"""


class ValidationError(ScreeningError):
    """
    Bad input shape, count or size

    Attributes:
        field: Name of the missing/invalid field (e.g. "email", "images")
        details: Extra context for the caller (e.g. which fields are missing)
    """

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.field = field
        self.details = details or {}


class MalformedAnnotationError(ScreeningError):
    """Annotation blob cannot be parsed as an object sequence"""


class IncompleteAnnotationError(ScreeningError):
    """Report requested before all three annotated rasters exist"""

    def __init__(self, message: str, missing_slots: Optional[List[int]] = None):
        super().__init__(message)
        self.missing_slots = missing_slots or []


class StorageError(ScreeningError):
    """Underlying byte store is unreachable or a write failed"""
