"""
Oral Screening Application Package

Contains the Streamlit application organized into:
- config.py: Settings
- main.py: Main entry point with sidebar navigation
- backend/: Session state and page modules
- services/: Annotation, rendering and submission services
"""


def __getattr__(name):
    """Lazy load the Streamlit entry point so services import without the UI."""
    if name == "main":
        from app.main import main
        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["main"]
