"""
Layered image compositing engine for intel posts.

Modules:
- core: render requests/results and the render service
- layout: text placement (pure, no pixels)
- render: compositing layers and PNG encoding
- safety: classification gate over source images
- fonts: process-wide font registry
- sources: fetching and decoding source references
- storage: artifact upload backends
- recipe: persisted image settings and record replay
"""

from .core import RenderRequest, RenderResult, RenderService
from .errors import DecodeError, EncodeError, FetchError, RenderError, SafetyBlocked, UploadError
from .layout import ColorClass, GradientPosition, LayoutRun, Point
from .recipe import ImageSettings
from .safety import Classification

__all__ = [
    "RenderRequest",
    "RenderResult",
    "RenderService",
    "RenderError",
    "FetchError",
    "DecodeError",
    "SafetyBlocked",
    "EncodeError",
    "UploadError",
    "ColorClass",
    "GradientPosition",
    "LayoutRun",
    "Point",
    "ImageSettings",
    "Classification",
]
