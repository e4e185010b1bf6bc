import base64
import io
import json
import logging
from enum import Enum
from typing import Any, Optional

from PIL import Image

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    CLEAN = "CLEAN"
    UNSAFE = "UNSAFE"
    UNKNOWN = "UNKNOWN"


# A 4:5 crop of anything outside this range loses the subject.
MIN_ASPECT_RATIO = 0.5
MAX_ASPECT_RATIO = 2.0
# Tall posters are usually key art with their own typography.
PORTRAIT_POSTER_RATIO = 0.85
MIN_SHORT_EDGE = 200


def passes_gate(classification: Classification, bypass_safety: bool) -> bool:
    """Only CLEAN sources render unless the caller explicitly bypasses the gate."""
    return bypass_safety or classification == Classification.CLEAN


class SafetyClassifier:
    """Interface: inspect a decoded image, never raise."""

    def classify(self, image: Image.Image) -> Classification:
        raise NotImplementedError


class HeuristicSafetyClassifier(SafetyClassifier):
    """
    Geometry-only verdicts; needs no network and is fully deterministic.
    """

    def classify(self, image: Image.Image) -> Classification:
        try:
            width, height = image.size
            if width <= 0 or height <= 0:
                return Classification.UNKNOWN
            ratio = width / height
        except Exception as e:
            logger.warning("Heuristic classifier could not inspect image: %s", e)
            return Classification.UNKNOWN

        if ratio > MAX_ASPECT_RATIO or ratio < MIN_ASPECT_RATIO:
            logger.info("Source ratio %.2f violates the subject-safe crop range", ratio)
            return Classification.UNSAFE
        if min(width, height) < MIN_SHORT_EDGE:
            return Classification.UNKNOWN
        if ratio < PORTRAIT_POSTER_RATIO:
            return Classification.UNKNOWN
        return Classification.CLEAN


class VisionSafetyClassifier(SafetyClassifier):
    """
    Adapter that asks a multimodal chat model for a verdict.

    `llm` is any LangChain chat model (e.g. `ChatOpenAI`). Anything other
    than a well-formed JSON verdict maps to UNKNOWN.
    """

    MAX_EDGE = 512

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def classify(self, image: Image.Image) -> Classification:
        from langchain_core.messages import HumanMessage

        if self.llm is None:
            return Classification.UNKNOWN

        message = HumanMessage(
            content=[
                {"type": "text", "text": self._build_prompt()},
                {"type": "image_url", "image_url": {"url": self._to_data_url(image)}},
            ]
        )

        try:
            raw = self.llm.invoke([message])
        except Exception as e:
            logger.warning("Vision classifier call failed: %s", e)
            return Classification.UNKNOWN

        text = getattr(raw, "content", None) or str(raw)
        return self._parse_verdict(text)

    @classmethod
    def _to_data_url(cls, image: Image.Image) -> str:
        thumb = image.convert("RGB")
        thumb.thumbnail((cls.MAX_EDGE, cls.MAX_EDGE), Image.LANCZOS)
        buf = io.BytesIO()
        thumb.save(buf, format="JPEG", quality=85)
        return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

    @staticmethod
    def _parse_verdict(text: str) -> Classification:
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.strip("`")
            if cleaned.lower().startswith("json"):
                cleaned = cleaned[4:]
        try:
            payload = json.loads(cleaned)
        except (TypeError, ValueError):
            return Classification.UNKNOWN
        if not isinstance(payload, dict):
            return Classification.UNKNOWN

        verdict = str(payload.get("classification") or "").strip().upper()
        try:
            return Classification(verdict)
        except ValueError:
            return Classification.UNKNOWN

    @staticmethod
    def _build_prompt() -> str:
        return (
            "You review background images for a news account's social graphics.\n"
            "Decide whether the image is safe to publish with a headline overlaid.\n"
            "- CLEAN: artwork or photography with no nudity, gore, hate symbols, "
            "watermarks from other outlets, or large blocks of existing text.\n"
            "- UNSAFE: any of the above is clearly present.\n"
            "- UNKNOWN: you cannot tell with confidence.\n\n"
            "Return ONLY a JSON object with this exact shape and no commentary:\n"
            '{"classification": "CLEAN" | "UNSAFE" | "UNKNOWN", "reason": "string"}\n'
        )


def resolve_classification(
    image: Image.Image,
    classifier: SafetyClassifier,
    override: Optional[Classification] = None,
) -> Classification:
    """Caller-supplied classification wins; otherwise ask the classifier."""
    if override is not None:
        return Classification(override)
    try:
        return classifier.classify(image)
    except Exception as e:
        logger.warning("Classifier raised, treating source as UNKNOWN: %s", e)
        return Classification.UNKNOWN
