import io
import logging
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFilter

from .errors import EncodeError
from .fonts import FontRegistry
from .layout import ColorClass, GradientPosition, Point, TextLayout

logger = logging.getLogger(__name__)

# 4:5 portrait, the feed-friendly social aspect.
CANVAS_SIZE: Tuple[int, int] = (1080, 1350)
CANVAS_BACKGROUND = (10, 10, 10)

ACCENT_COLOR = "#9D7BFF"
TEXT_COLOR = (255, 255, 255)

GRADIENT_HEIGHT_RATIO = 0.4
# (offset into the band from the canvas edge inwards, opacity)
GRADIENT_STOPS: Sequence[Tuple[float, float]] = (
    (0.0, 1.0),
    (0.15, 0.95),
    (0.4, 0.6),
    (0.6, 0.2),
    (1.0, 0.0),
)

SHADOW_BLUR_RADIUS = 8
SHADOW_OFFSET = (0, 4)

HANDLE_TEXT = "@KumoLabAnime"
WATERMARK_FONT_SIZE = 24
WATERMARK_BOTTOM_OFFSET = 40
WATERMARK_FILL = (255, 255, 255, 178)


def frame_source(
    img: Image.Image,
    scale: float = 1.0,
    position: Optional[Point] = None,
    size: Tuple[int, int] = CANVAS_SIZE,
) -> Image.Image:
    """
    Crop-to-fill the source onto the canvas, then zoom by `scale` and pan by
    `position` (fractions of the canvas width/height) around the centre.
    Areas the source no longer covers show the canvas background.
    """
    width, height = size
    position = position or Point()
    canvas = Image.new("RGB", (width, height), color=CANVAS_BACKGROUND)

    src = img.convert("RGB")
    factor = max(width / src.width, height / src.height) * scale
    if factor <= 0:
        return canvas

    draw_w = src.width * factor
    draw_h = src.height * factor
    dx = (width - draw_w) / 2 + position.x * width
    dy = (height - draw_h) / 2 + position.y * height

    left = max(0, int(round(dx)))
    top = max(0, int(round(dy)))
    right = min(width, int(round(dx + draw_w)))
    bottom = min(height, int(round(dy + draw_h)))
    if right <= left or bottom <= top:
        return canvas

    box = (
        max(0.0, (left - dx) / factor),
        max(0.0, (top - dy) / factor),
        min(float(src.width), (right - dx) / factor),
        min(float(src.height), (bottom - dy) / factor),
    )
    region = src.resize((right - left, bottom - top), Image.LANCZOS, box=box)
    canvas.paste(region, (left, top))
    return canvas


def _gradient_alpha(t: float) -> float:
    for (t0, a0), (t1, a1) in zip(GRADIENT_STOPS, GRADIENT_STOPS[1:]):
        if t <= t1:
            span = t1 - t0
            return a0 if span <= 0 else a0 + (a1 - a0) * (t - t0) / span
    return GRADIENT_STOPS[-1][1]


def apply_gradient(img: Image.Image, position: GradientPosition = GradientPosition.BOTTOM) -> Image.Image:
    """Darken the top or bottom band so overlay text stays readable."""
    base = img.convert("RGBA")
    w, h = base.size
    band = int(h * GRADIENT_HEIGHT_RATIO)

    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    at_top = GradientPosition(position) == GradientPosition.TOP
    for i in range(band):
        alpha = int(round(255 * _gradient_alpha(i / band)))
        row = i if at_top else h - 1 - i
        draw.line([(0, row), (w, row)], fill=(0, 0, 0, alpha))

    return Image.alpha_composite(base, overlay)


def draw_text(img: Image.Image, text_layout: TextLayout, fonts: FontRegistry) -> Image.Image:
    """Draw each run left-aligned at its top-left, over a blurred black shadow."""
    base = img.convert("RGBA")
    if not text_layout.runs:
        return base

    font = fonts.font(int(round(text_layout.font_size)))
    accent = _parse_color(ACCENT_COLOR)

    shadow = Image.new("RGBA", base.size, (0, 0, 0, 0))
    sd = ImageDraw.Draw(shadow)
    for run in text_layout.runs:
        sd.text(
            (run.x + SHADOW_OFFSET[0], run.y + SHADOW_OFFSET[1]),
            run.word,
            font=font,
            fill=(0, 0, 0, 255),
            anchor="la",
        )
    shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR_RADIUS))
    base = Image.alpha_composite(base, shadow)

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    od = ImageDraw.Draw(overlay)
    for run in text_layout.runs:
        fill = accent if run.color_class == ColorClass.ACCENT else TEXT_COLOR
        od.text((run.x, run.y), run.word, font=font, fill=fill + (255,), anchor="la")
    return Image.alpha_composite(base, overlay)


def draw_watermark(
    img: Image.Image,
    fonts: FontRegistry,
    position: Optional[Point] = None,
    handle: str = HANDLE_TEXT,
) -> Image.Image:
    """Brand handle centred on `position` (default: bottom centre)."""
    base = img.convert("RGBA")
    w, h = base.size
    position = position or Point(w / 2, h - WATERMARK_BOTTOM_OFFSET)
    font = fonts.font(WATERMARK_FONT_SIZE)

    shadow = Image.new("RGBA", base.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text((position.x, position.y), handle, font=font, fill=(0, 0, 0, 204), anchor="mm")
    base = Image.alpha_composite(base, shadow.filter(ImageFilter.GaussianBlur(2)))

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    ImageDraw.Draw(overlay).text((position.x, position.y), handle, font=font, fill=WATERMARK_FILL, anchor="mm")
    return Image.alpha_composite(base, overlay)


def pick_text_zone(img: Image.Image) -> GradientPosition:
    """
    Edge with less visual detail (lower entropy in its outer 30%), where
    overlay text competes least with the artwork.
    """
    gray = img.convert("L")
    w, h = gray.size
    band = max(1, int(h * 0.3))
    top = gray.crop((0, 0, w, band)).entropy()
    bottom = gray.crop((0, h - band, w, h)).entropy()
    return GradientPosition.TOP if top < bottom else GradientPosition.BOTTOM


def compose_image(
    source: Image.Image,
    text_layout: Optional[TextLayout],
    request,
    fonts: FontRegistry,
) -> Image.Image:
    """
    Paint every enabled layer in fixed order: framed background, gradient,
    text, watermark. Returns an RGB image the size of the canvas.
    """
    img = frame_source(source, scale=request.scale, position=request.position)
    if request.apply_gradient:
        img = apply_gradient(img, request.gradient_position)
    if request.apply_text and text_layout is not None:
        img = draw_text(img, text_layout, fonts)
    if request.apply_watermark:
        img = draw_watermark(img, fonts, request.watermark_position)
    return img.convert("RGB")


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    try:
        img.save(buf, format="PNG")
    except (OSError, ValueError) as e:
        raise EncodeError(f"PNG encoding failed: {e}") from e
    return buf.getvalue()


def compose(
    source: Image.Image,
    text_layout: Optional[TextLayout],
    request,
    fonts: FontRegistry,
) -> bytes:
    """Composite all enabled layers and encode the result as PNG."""
    return encode_png(compose_image(source, text_layout, request, fonts))


def _parse_color(color_str: str) -> Tuple[int, int, int]:
    """
    Parse hex color strings like '#FF0000' or 'FF0000' into RGB tuple.
    Fallbacks to white if parsing fails.
    """
    s = color_str.strip().lstrip("#")
    if len(s) == 6:
        try:
            return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
        except ValueError:
            pass
    return TEXT_COLOR
