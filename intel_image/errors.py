"""
Failure taxonomy for the render pipeline.

Each error carries a machine-readable `reason` string (what callers log or
return) and a `code` for JSON error payloads.
"""
from typing import Any, Dict, Optional


class RenderError(Exception):
    """Base class for every failure the render pipeline reports."""

    code = "RENDER_ERROR"
    reason = "render failed"
    retryable = True

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.reason)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "reason": self.reason,
            "message": str(self),
            "details": self.details,
        }


class FetchError(RenderError):
    """Source unreachable, non-2xx, or a local file that does not exist."""

    code = "FETCH_ERROR"
    reason = "fetch failed"


class DecodeError(RenderError):
    """Fetched bytes are not a decodable image."""

    code = "DECODE_ERROR"
    reason = "decode failed"


class SafetyBlocked(RenderError):
    """Classification gate tripped and the caller did not bypass it."""

    code = "SAFETY_BLOCKED"
    reason = "unsafe/unknown source, bypass not set"
    retryable = False


class EncodeError(RenderError):
    code = "ENCODE_ERROR"
    reason = "encode failed"


class UploadError(RenderError):
    code = "UPLOAD_ERROR"
    reason = "upload failed"
