"""
Rendering Service

Turns annotation documents into flattened rasters and builds the
screening report PDF.

Usage:
    from app.services.rendering import composite, build_report

    png_bytes = composite(base_bytes, document)
    pdf_bytes = build_report(submission, [png0, png1, png2])
"""
from .rasterizer import (
    CanvasLayout,
    compute_layout,
    composite,
    decode_image,
    encode_png,
    render,
)
from .report import build_report, check_report_ready, CONDITIONS, SLOT_PILL_COLORS

__all__ = [
    "CanvasLayout",
    "compute_layout",
    "composite",
    "decode_image",
    "encode_png",
    "render",
    "build_report",
    "check_report_ready",
    "CONDITIONS",
    "SLOT_PILL_COLORS",
]
