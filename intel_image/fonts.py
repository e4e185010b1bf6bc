import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from PIL import ImageFont

logger = logging.getLogger(__name__)

BRAND_FONT_FILE = "Outfit-Black.ttf"

# Bold sans-serif faces tried when the brand typeface is unavailable.
SYSTEM_FONTS: List[str] = [
    # macOS
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "/System/Library/Fonts/HelveticaNeue.ttc",
    # Linux
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    # Windows
    "C:/Windows/Fonts/arialbd.ttf",
]


def default_fonts_dir() -> Path:
    return Path(__file__).parent.parent / "fonts"


class FontRegistry:
    """
    Resolves the typeface used for overlay text and hands out sized fonts.

    The brand face is looked up in `fonts_dir` first, then a list of system
    bold sans-serif faces. Without any of those the registry draws with
    Pillow's built-in font. That face is scalable and measurable when Pillow
    has FreeType; otherwise `can_measure` is False and layout switches to
    its fallback metrics.
    """

    def __init__(self, fonts_dir: Optional[Path] = None, candidates: Optional[List[str]] = None) -> None:
        self.fonts_dir = fonts_dir if fonts_dir is not None else default_fonts_dir()
        self._candidates = candidates if candidates is not None else SYSTEM_FONTS
        self._cache: Dict[int, ImageFont.ImageFont] = {}
        self._lock = threading.Lock()
        self.font_path: Optional[str] = self._resolve_font_path()
        # Pillow built with FreeType ships a scalable default face; widths
        # measured from it match what gets drawn.
        self._builtin_scalable = self.font_path is None and isinstance(
            ImageFont.load_default(size=12), ImageFont.FreeTypeFont
        )

        if self.font_path:
            logger.info("Font registry using %s", self.font_path)
        elif self._builtin_scalable:
            logger.warning("No TrueType font found; using Pillow's built-in face")
        else:
            logger.warning("No scalable font available; text will use fallback metrics")

    @property
    def can_measure(self) -> bool:
        return self.font_path is not None or self._builtin_scalable

    def font(self, size: int) -> ImageFont.ImageFont:
        size = max(1, int(round(size)))
        with self._lock:
            cached = self._cache.get(size)
            if cached is None:
                if self.font_path:
                    cached = ImageFont.truetype(self.font_path, size=size)
                else:
                    cached = ImageFont.load_default(size=size)
                self._cache[size] = cached
        return cached

    def measure(self, text: str, size: float) -> float:
        """Advance width of `text` in pixels at `size`."""
        return float(self.font(int(round(size))).getlength(text))

    def _resolve_font_path(self) -> Optional[str]:
        brand = self.fonts_dir / BRAND_FONT_FILE
        candidates = [str(brand)] if brand.exists() else []
        if self.fonts_dir.exists():
            for extra in sorted(self.fonts_dir.glob("*.ttf")) + sorted(self.fonts_dir.glob("*.otf")):
                if str(extra) not in candidates:
                    candidates.append(str(extra))
        candidates.extend(self._candidates)

        for path in candidates:
            try:
                ImageFont.truetype(path, size=12)
            except OSError:
                continue
            return path
        return None


_registry: Optional[FontRegistry] = None
_registry_lock = threading.Lock()


def get_font_registry(fonts_dir: Optional[Path] = None) -> FontRegistry:
    """
    Process-wide registry, created on first use.

    `fonts_dir` only matters for the first caller; later calls get the
    already-initialized instance.
    """
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = FontRegistry(fonts_dir)
    return _registry
