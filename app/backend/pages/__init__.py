"""
Streamlit pages for the screening application
"""
from .intake import render_intake_page
from .annotate import render_annotation_page

__all__ = ["render_intake_page", "render_annotation_page"]
