import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_VISION_MODEL = "gpt-4o-mini"


@dataclass
class EngineConfig:
    """
    Runtime settings for the image engine.

    Values come from the process environment; call `load_dotenv()` first
    if a local .env file should be honoured.
    """

    fonts_dir: Path = Path("fonts")
    public_dir: Path = Path("public")
    output_dir: Path = Path("outputs") / "intel"
    public_base_url: Optional[str] = None
    blob_connection_string: Optional[str] = None
    blob_container: str = "blog-images"
    openai_api_key: Optional[str] = None
    vision_model: str = DEFAULT_VISION_MODEL
    fetch_timeout: float = 20.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        env = os.environ
        return cls(
            fonts_dir=Path(env.get("INTEL_FONTS_DIR", "fonts")),
            public_dir=Path(env.get("INTEL_PUBLIC_DIR", "public")),
            output_dir=Path(env.get("INTEL_OUTPUT_DIR", str(Path("outputs") / "intel"))),
            public_base_url=env.get("INTEL_PUBLIC_BASE_URL") or None,
            blob_connection_string=env.get("PUBLIC_BLOB_CONNECTION_STRING") or None,
            blob_container=env.get("INTEL_BLOB_CONTAINER", "blog-images"),
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            vision_model=env.get("INTEL_VISION_MODEL", DEFAULT_VISION_MODEL),
            fetch_timeout=float(env.get("INTEL_FETCH_TIMEOUT", "20")),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


def setup_logging(level: str = "INFO") -> None:
    """Send log records to stdout in a single pipe-delimited format."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)
