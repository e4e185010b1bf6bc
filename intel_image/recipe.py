"""
Persisted render recipes.

A content record keeps the untouched source (`background_image`) apart from
the rendered artifact (`image`) plus an `image_settings` blob. Every edit
replays the recipe against the original source, so edits never stack on an
already-rendered bitmap.
"""
import copy
import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .core import RenderRequest, RenderResult, RenderService
from .layout import GradientPosition, Point, value_or
from .safety import Classification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageSettings:
    image_scale: float = 1.0
    image_position: Point = Point()
    is_apply_text: bool = True
    is_apply_gradient: bool = True
    is_apply_watermark: bool = True
    gradient_position: GradientPosition = GradientPosition.BOTTOM
    text_scale: float = 1.0
    text_position: Optional[Point] = None
    purple_word_indices: Tuple[int, ...] = ()
    watermark_position: Optional[Point] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImageSettings":
        data = data or {}
        return cls(
            image_scale=float(value_or(data, "imageScale", 1)),
            image_position=Point.from_dict(data.get("imagePosition")) or Point(),
            is_apply_text=bool(value_or(data, "isApplyText", True)),
            is_apply_gradient=bool(value_or(data, "isApplyGradient", True)),
            is_apply_watermark=bool(value_or(data, "isApplyWatermark", True)),
            gradient_position=GradientPosition(data.get("gradientPosition") or "bottom"),
            text_scale=float(value_or(data, "textScale", 1)),
            text_position=Point.from_dict(data.get("textPosition")),
            purple_word_indices=tuple(int(i) for i in data.get("purpleWordIndices") or ()),
            watermark_position=Point.from_dict(data.get("watermarkPosition")),
        )

    @classmethod
    def from_request(cls, request: RenderRequest) -> "ImageSettings":
        return cls(
            image_scale=request.scale,
            image_position=request.position,
            is_apply_text=request.apply_text,
            is_apply_gradient=request.apply_gradient,
            is_apply_watermark=request.apply_watermark,
            gradient_position=GradientPosition(request.gradient_position),
            text_scale=request.text_scale,
            text_position=request.text_position,
            purple_word_indices=tuple(request.purple_word_indices),
            watermark_position=request.watermark_position,
        )

    @classmethod
    def from_result(cls, request: RenderRequest, result: RenderResult) -> "ImageSettings":
        """
        Recipe that reproduces `result`: the zone the engine actually used
        replaces the requested one, so an automatically picked text zone is
        pinned and replays without re-running the detection.
        """
        settings = cls.from_request(request)
        return replace(settings, gradient_position=GradientPosition(result.zone))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "imageScale": self.image_scale,
            "imagePosition": self.image_position.to_dict(),
            "isApplyText": self.is_apply_text,
            "isApplyGradient": self.is_apply_gradient,
            "isApplyWatermark": self.is_apply_watermark,
            "gradientPosition": GradientPosition(self.gradient_position).value,
            "textScale": self.text_scale,
            "purpleWordIndices": list(self.purple_word_indices),
        }
        if self.text_position is not None:
            data["textPosition"] = self.text_position.to_dict()
        if self.watermark_position is not None:
            data["watermarkPosition"] = self.watermark_position.to_dict()
        return data

    def to_request(
        self,
        source_url: str,
        anime_title: str = "",
        headline: str = "",
        slug: str = "",
        skip_upload: bool = False,
        classification: Optional[Classification] = None,
        bypass_safety: bool = False,
    ) -> RenderRequest:
        return RenderRequest(
            source_url=source_url,
            anime_title=anime_title,
            headline=headline,
            slug=slug,
            scale=self.image_scale,
            position=self.image_position,
            apply_text=self.is_apply_text,
            apply_gradient=self.is_apply_gradient,
            apply_watermark=self.is_apply_watermark,
            gradient_position=self.gradient_position,
            text_scale=self.text_scale,
            text_position=self.text_position,
            purple_word_indices=self.purple_word_indices,
            watermark_position=self.watermark_position,
            classification=classification,
            bypass_safety=bypass_safety,
            skip_upload=skip_upload,
        )


def request_from_record(record: Dict[str, Any], skip_upload: bool = False) -> RenderRequest:
    """
    Rebuild the render request for a stored content record.

    Records are edited by trusted staff, so the safety gate is bypassed and
    the source is declared CLEAN.
    """
    source_url = record.get("background_image") or record.get("image")
    if not source_url:
        raise ValueError("record has no background_image or image to render from")

    settings = ImageSettings.from_dict(record.get("image_settings"))
    return settings.to_request(
        source_url=source_url,
        anime_title=record.get("title") or "",
        headline=str(record.get("excerpt") or ""),
        slug=record.get("slug") or f"post-{record.get('id')}",
        skip_upload=skip_upload,
        classification=Classification.CLEAN,
        bypass_safety=True,
    )


def rerender_record(service: RenderService, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Replay a record's recipe and return an updated copy whose `image` is the
    new artifact. Returns None when the engine produced nothing; the input
    record is never modified.
    """
    request = request_from_record(record, skip_upload=False)
    result = service.render(request)
    if result is None:
        return None
    return apply_result(record, request, result)


def apply_result(record: Dict[str, Any], request: RenderRequest, result: RenderResult) -> Dict[str, Any]:
    """Copy of `record` pointing at the new artifact, with the recipe that produced it."""
    updated = copy.deepcopy(record)
    if not updated.get("background_image"):
        # Keep the unrendered source so later edits replay from it.
        updated["background_image"] = request.source_url
    updated["image"] = result.processed_image
    updated["image_settings"] = ImageSettings.from_result(request, result).to_dict()
    return updated


def load_record(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_record(path: Path, record: Dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(record, f, indent=2, ensure_ascii=False)
