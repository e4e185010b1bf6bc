import base64
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import EngineConfig
from .errors import EncodeError, RenderError, SafetyBlocked
from .fonts import FontRegistry, get_font_registry
from .layout import (
    LINE_HEIGHT_FACTOR,
    GradientPosition,
    Point,
    TextLayout,
    compute_layout,
    default_anchor,
    font_size_for,
    split_lines,
    value_or,
)
from .render import CANVAS_SIZE, compose, pick_text_zone
from .safety import (
    Classification,
    HeuristicSafetyClassifier,
    SafetyClassifier,
    passes_gate,
    resolve_classification,
)
from .sources import SourceFetcher, decode_image
from .storage import AzureBlobStorage, LocalDirectoryStorage, ObjectStorage, artifact_name

logger = logging.getLogger(__name__)

_DASHES = str.maketrans({"—": "-", "–": "-", "‒": "-", "―": "-"})


@dataclass(frozen=True)
class RenderRequest:
    source_url: str
    anime_title: str = ""
    headline: str = ""
    slug: str = ""
    scale: float = 1.0
    # Background pan, in fractions of the canvas width/height.
    position: Point = Point()
    apply_text: bool = True
    apply_gradient: bool = True
    apply_watermark: bool = True
    gradient_position: GradientPosition = GradientPosition.BOTTOM
    text_scale: float = 1.0
    # Canvas pixels; None means the zone default for `gradient_position`.
    text_position: Optional[Point] = None
    purple_word_indices: Tuple[int, ...] = ()
    watermark_position: Optional[Point] = None
    disable_auto_scaling: bool = False
    classification: Optional[Classification] = None
    bypass_safety: bool = False
    skip_upload: bool = False
    auto_text_zone: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RenderRequest":
        """Build from the camelCase payload admin tools send."""
        classification = data.get("classification")
        return cls(
            source_url=data["sourceUrl"],
            anime_title=data.get("animeTitle") or "",
            headline=data.get("headline") or "",
            slug=data.get("slug") or "",
            scale=float(value_or(data, "scale", 1)),
            position=Point.from_dict(data.get("position")) or Point(),
            apply_text=bool(value_or(data, "applyText", True)),
            apply_gradient=bool(value_or(data, "applyGradient", True)),
            apply_watermark=bool(value_or(data, "applyWatermark", True)),
            gradient_position=GradientPosition(data.get("gradientPosition") or "bottom"),
            text_scale=float(value_or(data, "textScale", 1)),
            text_position=Point.from_dict(data.get("textPosition")),
            purple_word_indices=tuple(int(i) for i in data.get("purpleWordIndices") or ()),
            watermark_position=Point.from_dict(data.get("watermarkPosition")),
            disable_auto_scaling=bool(value_or(data, "disableAutoScaling", False)),
            classification=Classification(classification) if classification else None,
            bypass_safety=bool(value_or(data, "bypassSafety", False)),
            skip_upload=bool(value_or(data, "skipUpload", False)),
            auto_text_zone=bool(value_or(data, "autoTextZone", False)),
        )


@dataclass(frozen=True)
class RenderResult:
    # Public URL, or a data URI when the upload was skipped.
    processed_image: str
    layout: TextLayout
    zone: GradientPosition = GradientPosition.BOTTOM
    image_bytes: Optional[bytes] = field(default=None, repr=False)

    @property
    def is_inline(self) -> bool:
        return self.processed_image.startswith("data:")

    def to_dict(self) -> Dict[str, Any]:
        layout = self.layout.to_dict()
        layout["zone"] = "HEADER" if self.zone == GradientPosition.TOP else "FOOTER"
        return {"processedImage": self.processed_image, "layout": layout}


def clean_text(text: Optional[str]) -> str:
    return (text or "").upper().strip().translate(_DASHES)


def prepare_text(headline: Optional[str], title: Optional[str]) -> Tuple[List[str], List[str]]:
    """
    Normalize overlay copy into (headline lines, title lines).

    Text is upper-cased and fancy dashes flattened; a headline identical to
    the title is dropped so the title is not printed twice. Explicit
    newlines split a field into several lines.
    """
    cleaned_headline = clean_text(headline)
    cleaned_title = clean_text(title)
    if cleaned_headline and cleaned_headline == cleaned_title:
        cleaned_headline = ""
    return _lines(cleaned_headline), _lines(cleaned_title)


def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


class RenderService:
    """
    Single entry point of the engine:
    - fetch and decode the source
    - gate it on its safety classification
    - lay out the overlay text
    - composite every enabled layer and encode PNG
    - return the bytes inline or upload them under a slug-derived name

    Holds no per-render state, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        fetcher: Optional[SourceFetcher] = None,
        classifier: Optional[SafetyClassifier] = None,
        storage: Optional[ObjectStorage] = None,
        fonts: Optional[FontRegistry] = None,
        canvas_size: Tuple[int, int] = CANVAS_SIZE,
    ) -> None:
        self.fetcher = fetcher or SourceFetcher()
        self.classifier = classifier or HeuristicSafetyClassifier()
        self.storage = storage or LocalDirectoryStorage(Path("outputs") / "intel")
        self._fonts = fonts
        self.canvas_size = canvas_size

    @classmethod
    def from_config(cls, config: EngineConfig, classifier: Optional[SafetyClassifier] = None) -> "RenderService":
        if config.blob_connection_string:
            storage: ObjectStorage = AzureBlobStorage(config.blob_connection_string, config.blob_container)
        else:
            storage = LocalDirectoryStorage(config.output_dir, config.public_base_url)
        return cls(
            fetcher=SourceFetcher(public_dir=config.public_dir, timeout=config.fetch_timeout),
            classifier=classifier,
            storage=storage,
            fonts=get_font_registry(config.fonts_dir),
        )

    @property
    def fonts(self) -> FontRegistry:
        if self._fonts is None:
            self._fonts = get_font_registry()
        return self._fonts

    def render(self, request: RenderRequest) -> Optional[RenderResult]:
        result, _ = self.render_with_reason(request)
        return result

    def render_with_reason(self, request: RenderRequest) -> Tuple[Optional[RenderResult], Optional[str]]:
        try:
            return self.try_render(request), None
        except RenderError as e:
            logger.warning("Render of '%s' returned no image: %s (%s)", request.slug, e.reason, e)
            return None, e.reason

    def try_render(self, request: RenderRequest) -> RenderResult:
        """Like `render`, but raises the RenderError subclass that stopped it."""
        raw = self.fetcher.fetch(request.source_url)
        source = decode_image(raw)

        classification = resolve_classification(source, self.classifier, request.classification)
        if not passes_gate(classification, request.bypass_safety):
            raise SafetyBlocked(
                f"source classified {classification.value}",
                details={"classification": classification.value},
            )

        zone = GradientPosition(request.gradient_position)
        if request.auto_text_zone and request.text_position is None:
            zone = pick_text_zone(source)

        text_layout = self.layout_for(request, zone)
        framed_request = replace(request, gradient_position=zone)
        try:
            png = compose(source, text_layout, framed_request, self.fonts)
        except (OSError, ValueError) as e:
            raise EncodeError(f"compositing failed: {e}") from e

        logger.info(
            "Rendered '%s': %s, %.0fpx, %d line(s)",
            request.slug,
            classification.value,
            text_layout.font_size,
            len(text_layout.lines),
        )

        if request.skip_upload:
            data_uri = "data:image/png;base64," + base64.b64encode(png).decode("ascii")
            return RenderResult(processed_image=data_uri, layout=text_layout, zone=zone, image_bytes=png)

        url = self.storage.upload(artifact_name(request.slug or "intel"), png, content_type="image/png")
        return RenderResult(processed_image=url, layout=text_layout, zone=zone)

    def layout_for(self, request: RenderRequest, zone: GradientPosition = GradientPosition.BOTTOM) -> TextLayout:
        width, height = self.canvas_size
        headline_lines, title_lines = prepare_text(request.headline, request.anime_title)
        spacing = font_size_for(request.text_scale) * LINE_HEIGHT_FACTOR
        anchor = request.text_position
        if anchor is None:
            line_count = len(split_lines(headline_lines, title_lines))
            anchor = default_anchor(width, height, line_count, spacing, zone)

        return compute_layout(
            headline_lines,
            title_lines,
            width,
            height,
            text_scale=request.text_scale,
            base_position=anchor,
            line_spacing=spacing,
            purple_word_indices=request.purple_word_indices,
            disable_auto_scaling=request.disable_auto_scaling,
            metrics=self.fonts,
        )
