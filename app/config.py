"""
Application configuration settings for the screening UI and services

Values come from environment variables, optionally layered on a YAML file
named by ORALSCREEN_CONFIG (keys are the lower-case setting names, e.g.
``max_image_bytes: 5242880``). Environment variables win over the file.
"""
import logging
import os
from pathlib import Path

from app.utils import load_config

_CONFIG_PATH = os.getenv('ORALSCREEN_CONFIG')
_FILE_SETTINGS = load_config(Path(_CONFIG_PATH)) if _CONFIG_PATH else {}


def _setting(name: str, default):
    """Resolve a setting from env, then the YAML file, then the default"""
    value = os.getenv(f"ORALSCREEN_{name}")
    if value is None:
        value = _FILE_SETTINGS.get(name.lower(), default)
    if isinstance(default, bool):
        return value if isinstance(value, bool) else str(value).lower() == 'true'
    if isinstance(default, int):
        return int(value)
    return value


# Project directories
# Support bundled mode via environment variable override
PROJECT_ROOT = Path(os.environ.get('ORALSCREEN_ROOT', Path(__file__).parent.parent))
DATA_DIR = Path(_setting("DATA_DIR", PROJECT_ROOT / "data"))
BLOB_DIR = DATA_DIR / "blobs"
SUBMISSIONS_DIR = DATA_DIR / "submissions"
LOG_DIR = DATA_DIR / "logs"
LOG_LEVEL = getattr(logging, str(_setting("LOG_LEVEL", "INFO")).upper(), logging.INFO)

# Intake limits
MAX_IMAGE_BYTES = _setting("MAX_IMAGE_BYTES", 10 * 1024 * 1024)  # 10MB per photograph

# Annotation surface: base image is fitted (downscale only) into this box
CANVAS_MAX_WIDTH = _setting("CANVAS_MAX_WIDTH", 900)
CANVAS_MAX_HEIGHT = _setting("CANVAS_MAX_HEIGHT", 600)
CANVAS_MARGIN = _setting("CANVAS_MARGIN", 20)
CANVAS_BACKGROUND = _setting("CANVAS_BACKGROUND", "#f8f9fa")

# Annotation Canvas Configuration
# Development mode connects to Vite dev server at http://localhost:5174
# Production mode loads pre-built component from frontend/annotation_canvas/build/
ANNOTATION_CANVAS_RELEASE_MODE = os.getenv('ANNOTATION_CANVAS_RELEASE', 'false').lower() == 'true'

# Keep unparsable stored annotation blobs instead of failing (legacy data only)
ANNOTATION_PARSE_PERMISSIVE = _setting("ANNOTATION_PARSE_PERMISSIVE", False)
