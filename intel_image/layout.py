"""
Text layout for the overlay: turns lines of words into positioned runs.

Nothing in here touches pixels. Word widths come from a metrics object
(anything with `can_measure` and `measure(text, size)`, such as the font
registry) or, when none can measure, from fixed per-character estimates so
layout stays computable on hosts without a usable typeface.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

BASE_FONT_SIZE = 100
MIN_FONT_SIZE = 30
LINE_HEIGHT_FACTOR = 0.9
FALLBACK_CHAR_WIDTH = 0.45
FALLBACK_SPACE_WIDTH = 0.2
AUTOSCALE_STEP = 0.05

TEXT_ZONE_RATIO = 0.35
SAFE_MARGIN = 15


def value_or(data: Dict[str, Any], key: str, default: Any) -> Any:
    """`data[key]`, with a missing key and an explicit null both meaning `default`."""
    value = data.get(key)
    return default if value is None else value


@dataclass(frozen=True)
class Point:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Point"]:
        if not data:
            return None
        return cls(x=float(value_or(data, "x", 0)), y=float(value_or(data, "y", 0)))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


class GradientPosition(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class ColorClass(str, Enum):
    NORMAL = "normal"
    ACCENT = "accent"


@dataclass(frozen=True)
class LayoutRun:
    """One word, positioned and colour-tagged, ready to draw."""

    line: int
    word: str
    x: float
    y: float
    width_px: float
    color_class: ColorClass = ColorClass.NORMAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "word": self.word,
            "x": self.x,
            "y": self.y,
            "widthPx": self.width_px,
            "colorClass": self.color_class.value,
        }


@dataclass(frozen=True)
class TextLayout:
    runs: List[LayoutRun]
    font_size: float
    line_spacing: float
    text_scale: float
    lines: List[str] = field(default_factory=list)
    line_widths: List[float] = field(default_factory=list)

    @property
    def final_scale(self) -> float:
        return self.font_size / BASE_FONT_SIZE

    @property
    def total_height(self) -> float:
        return len(self.lines) * self.line_spacing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fontSize": self.font_size,
            "lineSpacing": self.line_spacing,
            "finalScale": self.final_scale,
            "numLines": len(self.lines),
            "totalHeight": self.total_height,
            "lines": list(self.lines),
            "runs": [run.to_dict() for run in self.runs],
        }


def font_size_for(text_scale: float) -> float:
    return max(MIN_FONT_SIZE, BASE_FONT_SIZE * text_scale)


def split_lines(headline_lines: Sequence[str], title_lines: Sequence[str]) -> List[List[str]]:
    """Headline lines then title lines, each as a word list; wordless lines dropped."""
    words_per_line = []
    for line in list(headline_lines) + list(title_lines):
        words = line.split()
        if words:
            words_per_line.append(words)
    return words_per_line


def word_width(word: str, font_size: float, metrics: Any = None) -> float:
    if metrics is not None and metrics.can_measure:
        return metrics.measure(word, font_size)
    return len(word) * font_size * FALLBACK_CHAR_WIDTH


def space_width(font_size: float, metrics: Any = None) -> float:
    if metrics is not None and metrics.can_measure:
        return metrics.measure(" ", font_size)
    return font_size * FALLBACK_SPACE_WIDTH


def default_anchor(
    canvas_width: float,
    canvas_height: float,
    line_count: int,
    line_spacing: float,
    zone: GradientPosition = GradientPosition.BOTTOM,
) -> Point:
    """
    Anchor that centres a block of `line_count` lines inside the text zone
    at the given edge, kept SAFE_MARGIN away from the top and bottom.
    """
    zone_height = canvas_height * TEXT_ZONE_RATIO
    if GradientPosition(zone) == GradientPosition.TOP:
        zone_center = zone_height / 2
    else:
        zone_center = canvas_height - zone_height / 2

    block_height = line_count * line_spacing
    lowest = SAFE_MARGIN + block_height / 2
    highest = canvas_height - SAFE_MARGIN - block_height / 2
    center = max(lowest, min(highest, zone_center))
    return Point(canvas_width / 2, center - block_height / 2)


def _place(
    lines: List[List[str]],
    text_scale: float,
    base_position: Point,
    line_spacing: Optional[float],
    accent: Iterable[int],
    metrics: Any,
) -> TextLayout:
    font_size = font_size_for(text_scale)
    spacing = line_spacing if line_spacing is not None else font_size * LINE_HEIGHT_FACTOR
    gap = space_width(font_size, metrics)
    accent_set = set(accent)

    runs: List[LayoutRun] = []
    line_widths: List[float] = []
    index = 0
    for line_no, words in enumerate(lines):
        widths = [word_width(w, font_size, metrics) for w in words]
        total = sum(widths) + (len(words) - 1) * gap
        line_widths.append(total)

        x = base_position.x - total / 2
        y = base_position.y + line_no * spacing
        for word, width in zip(words, widths):
            color = ColorClass.ACCENT if index in accent_set else ColorClass.NORMAL
            runs.append(LayoutRun(line=line_no, word=word, x=x, y=y, width_px=width, color_class=color))
            x += width + gap
            index += 1

    return TextLayout(
        runs=runs,
        font_size=font_size,
        line_spacing=spacing,
        text_scale=text_scale,
        lines=[" ".join(words) for words in lines],
        line_widths=line_widths,
    )


def compute_layout(
    headline_lines: Sequence[str],
    title_lines: Sequence[str],
    canvas_width: float,
    canvas_height: float,
    text_scale: float = 1.0,
    base_position: Optional[Point] = None,
    line_spacing: Optional[float] = None,
    purple_word_indices: Iterable[int] = (),
    disable_auto_scaling: bool = False,
    metrics: Any = None,
) -> TextLayout:
    """
    Lay out headline lines followed by title lines.

    Each line is centred as a whole on `base_position.x`; words are then
    placed left to right from that start. Word indices count across all
    lines, and indices listed in `purple_word_indices` are tagged ACCENT.

    Unless `disable_auto_scaling` is set, a line wider than the canvas
    makes the text scale step down until every line fits or the font hits
    MIN_FONT_SIZE. Lines still too wide are left as they are; words are
    never dropped. `line_spacing=None` derives spacing from each attempt's
    font size.
    """
    lines = split_lines(headline_lines, title_lines)
    accent = list(purple_word_indices or ())
    if base_position is None:
        spacing = line_spacing if line_spacing is not None else font_size_for(text_scale) * LINE_HEIGHT_FACTOR
        base_position = default_anchor(canvas_width, canvas_height, len(lines), spacing)

    scale = text_scale
    result = _place(lines, scale, base_position, line_spacing, accent, metrics)
    if disable_auto_scaling:
        return result

    floor_scale = MIN_FONT_SIZE / BASE_FONT_SIZE
    while result.line_widths and max(result.line_widths) > canvas_width:
        next_scale = max(floor_scale, scale - AUTOSCALE_STEP)
        if next_scale >= scale:
            logger.debug("Text still overflows at the minimum font size; leaving it wide")
            break
        scale = next_scale
        result = _place(lines, scale, base_position, line_spacing, accent, metrics)

    if scale != text_scale:
        logger.debug("Auto-scaled text from %.2f to %.2f (%.0fpx)", text_scale, scale, result.font_size)
    return result


def layout(
    headline_lines: Sequence[str],
    title_lines: Sequence[str],
    canvas_width: float,
    canvas_height: float,
    text_scale: float,
    base_position: Point,
    line_spacing: float,
    purple_word_indices: Iterable[int] = (),
    disable_auto_scaling: bool = False,
    metrics: Any = None,
) -> List[LayoutRun]:
    """Positioned runs only; see `compute_layout` for the full result."""
    return compute_layout(
        headline_lines,
        title_lines,
        canvas_width,
        canvas_height,
        text_scale=text_scale,
        base_position=base_position,
        line_spacing=line_spacing,
        purple_word_indices=purple_word_indices,
        disable_auto_scaling=disable_auto_scaling,
        metrics=metrics,
    ).runs
