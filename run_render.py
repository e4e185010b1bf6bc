import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv
from langchain_openai import ChatOpenAI

from intel_image.config import EngineConfig, setup_logging
from intel_image.core import RenderRequest, RenderService
from intel_image.recipe import (
    ImageSettings,
    apply_result,
    load_record,
    request_from_record,
    save_record,
)
from intel_image.safety import HeuristicSafetyClassifier, VisionSafetyClassifier


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render a branded 4:5 social graphic from a source image and overlay copy."
    )
    parser.add_argument("--source", help="Source image URL, data URI, or local path.")
    parser.add_argument("--title", default="", help="Anime title (second text group).")
    parser.add_argument("--headline", default="", help="Headline (first text group).")
    parser.add_argument("--slug", default="", help="Artifact name stem.")
    parser.add_argument(
        "--settings",
        type=Path,
        help="Path to an image settings JSON file (imageScale, textScale, ...).",
    )
    parser.add_argument(
        "--record",
        type=Path,
        help="Re-render a stored content record JSON and write its new image back.",
    )
    parser.add_argument(
        "--preview",
        type=Path,
        help="Skip the upload and write the PNG to this path instead.",
    )
    parser.add_argument(
        "--layout-json",
        type=Path,
        help="Write the computed layout to this path.",
    )
    parser.add_argument(
        "--save-settings",
        type=Path,
        help="Write the image settings that reproduce this render to this path.",
    )
    parser.add_argument(
        "--auto-text-zone",
        action="store_true",
        help="Put the text on whichever edge of the source is calmer.",
    )
    parser.add_argument(
        "--bypass-safety",
        action="store_true",
        help="Render even if the source is not classified CLEAN.",
    )
    args = parser.parse_args()
    if not args.source and not args.record:
        parser.error("either --source or --record is required")
    return args


def build_request(args: argparse.Namespace) -> RenderRequest:
    skip_upload = args.preview is not None
    if args.record:
        return request_from_record(load_record(args.record), skip_upload=skip_upload)

    settings = ImageSettings()
    if args.settings:
        with args.settings.open("r", encoding="utf-8") as f:
            settings = ImageSettings.from_dict(json.load(f))
    request = settings.to_request(
        source_url=args.source,
        anime_title=args.title,
        headline=args.headline,
        slug=args.slug or args.title or "intel",
        skip_upload=skip_upload,
        bypass_safety=args.bypass_safety,
    )
    return replace(request, auto_text_zone=args.auto_text_zone)


def main() -> int:
    # Load environment variables from a local .env file if present.
    load_dotenv()

    args = parse_args()
    config = EngineConfig.from_env()
    setup_logging(config.log_level)

    # With an API key, a vision model reviews sources; otherwise the
    # deterministic geometry heuristic runs locally.
    if config.openai_api_key:
        llm = ChatOpenAI(model=config.vision_model, temperature=0, api_key=config.openai_api_key)
        classifier = VisionSafetyClassifier(llm=llm)
    else:
        classifier = HeuristicSafetyClassifier()

    service = RenderService.from_config(config, classifier=classifier)

    request = build_request(args)
    result, reason = service.render_with_reason(request)
    if result is None:
        print(f"No image rendered: {reason}", file=sys.stderr)
        return 1

    if args.layout_json:
        args.layout_json.write_text(json.dumps(result.to_dict()["layout"], indent=2), encoding="utf-8")
    if args.save_settings:
        settings = ImageSettings.from_result(request, result)
        args.save_settings.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")

    if args.record and not args.preview:
        # Committed edit: the record now points at the new artifact.
        updated = apply_result(load_record(args.record), request, result)
        save_record(args.record, updated)
        print(updated["image"])
        return 0

    if args.preview:
        args.preview.parent.mkdir(parents=True, exist_ok=True)
        args.preview.write_bytes(result.image_bytes or b"")
        print(f"Preview written to {args.preview}")
    else:
        print(result.processed_image)
    return 0


if __name__ == "__main__":
    sys.exit(main())
