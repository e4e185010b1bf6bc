import json
from dataclasses import replace

import pytest

from intel_image.layout import GradientPosition, Point
from intel_image.recipe import (
    ImageSettings,
    apply_result,
    load_record,
    request_from_record,
    rerender_record,
    save_record,
)
from intel_image.safety import Classification

KEY_VISUAL = "https://img.example.com/key-visual.png"


@pytest.fixture
def record():
    return {
        "id": 42,
        "slug": "frieren-season-2",
        "title": "Frieren",
        "excerpt": "Season 2 confirmed",
        "image": "https://cdn.example.com/blog-images/old-render.png",
        "background_image": KEY_VISUAL,
        "image_settings": {
            "imageScale": 1.2,
            "imagePosition": {"x": 0.1, "y": 0},
            "isApplyGradient": False,
            "gradientPosition": "top",
            "textScale": 0.9,
            "purpleWordIndices": [0],
        },
    }


class TestImageSettings:

    def test_defaults_for_missing_settings(self):
        settings = ImageSettings.from_dict(None)
        assert settings == ImageSettings()
        assert settings.is_apply_text and settings.is_apply_watermark

    def test_camel_case_round_trip(self, record):
        settings = ImageSettings.from_dict(record["image_settings"])
        assert settings.image_position == Point(0.1, 0)
        assert settings.gradient_position == GradientPosition.TOP
        assert ImageSettings.from_dict(settings.to_dict()) == settings

    def test_optional_positions_omitted(self):
        assert "textPosition" not in ImageSettings().to_dict()


class TestRequestFromRecord:

    def test_replays_from_untouched_source(self, record):
        request = request_from_record(record)
        assert request.source_url == KEY_VISUAL
        assert request.headline == "Season 2 confirmed"
        assert request.anime_title == "Frieren"
        assert request.scale == 1.2
        assert request.apply_gradient is False
        assert request.purple_word_indices == (0,)

    def test_staff_edits_bypass_the_gate(self, record):
        request = request_from_record(record)
        assert request.classification == Classification.CLEAN
        assert request.bypass_safety is True

    def test_falls_back_to_image(self, record):
        del record["background_image"]
        assert request_from_record(record).source_url == record["image"]

    def test_slug_from_id(self, record):
        del record["slug"]
        assert request_from_record(record).slug == "post-42"

    def test_record_without_any_image(self):
        with pytest.raises(ValueError):
            request_from_record({"id": 1, "title": "Frieren"})


class TestRerenderRecord:

    def test_updates_image_only(self, service, storage, record):
        updated = rerender_record(service, record)

        assert updated["image"] == "https://cdn.example.com/blog-images/frieren-season-2-social.png"
        assert updated["background_image"] == KEY_VISUAL
        saved = ImageSettings.from_dict(updated["image_settings"])
        assert saved == ImageSettings.from_dict(record["image_settings"])
        assert record["image"].endswith("old-render.png")
        assert len(storage.uploads) == 1

    def test_remembers_source_when_missing(self, service, record):
        del record["background_image"]
        record["image"] = KEY_VISUAL
        updated = rerender_record(service, record)
        assert updated["background_image"] == KEY_VISUAL

    def test_failed_render_leaves_record_alone(self, service, storage, record):
        record["background_image"] = "https://img.example.com/broken.png"
        assert rerender_record(service, record) is None
        assert storage.uploads == []


class TestRecordFiles:

    def test_save_then_load(self, tmp_path, record):
        path = tmp_path / "post.json"
        save_record(path, record)
        assert load_record(path) == record
        assert json.loads(path.read_text(encoding="utf-8"))["id"] == 42


class TestNullSettings:

    def test_null_numbers_use_defaults(self):
        settings = ImageSettings.from_dict({"imageScale": None, "textScale": None})
        assert settings.image_scale == 1.0
        assert settings.text_scale == 1.0

    @pytest.mark.parametrize("key", ["isApplyText", "isApplyGradient", "isApplyWatermark"])
    def test_null_toggle_keeps_layer_on(self, key):
        assert ImageSettings.from_dict({key: None}) == ImageSettings()

    def test_null_point_coordinates(self):
        settings = ImageSettings.from_dict({"imagePosition": {"x": 0.2, "y": None}})
        assert settings.image_position == Point(0.2, 0)

    def test_record_with_null_settings_renders(self, service, record):
        record["image_settings"] = {
            "imageScale": None,
            "textScale": None,
            "isApplyText": None,
            "gradientPosition": None,
            "purpleWordIndices": None,
        }
        updated = rerender_record(service, record)
        assert updated is not None
        assert ImageSettings.from_dict(updated["image_settings"]) == ImageSettings()


class TestReplayOfDetectedZone:

    BUSY = "https://img.example.com/busy-bottom.png"

    def test_saved_settings_pin_the_detected_zone(self, service):
        request = ImageSettings().to_request(source_url=self.BUSY, headline="New visual", skip_upload=True,
                                             classification=Classification.CLEAN)
        first = service.render(replace(request, auto_text_zone=True))
        assert first.zone == GradientPosition.TOP

        settings = ImageSettings.from_result(replace(request, auto_text_zone=True), first)
        assert settings.gradient_position == GradientPosition.TOP

        replayed = service.render(
            settings.to_request(source_url=self.BUSY, headline="New visual", skip_upload=True,
                                classification=Classification.CLEAN)
        )
        assert replayed.zone == first.zone
        assert replayed.layout == first.layout
        assert replayed.image_bytes == first.image_bytes

    def test_apply_result_stores_the_rendered_recipe(self, service, record):
        record["background_image"] = self.BUSY
        record["image_settings"]["gradientPosition"] = "bottom"
        request = replace(request_from_record(record), auto_text_zone=True)
        result = service.render(request)

        updated = apply_result(record, request, result)
        assert updated["image_settings"]["gradientPosition"] == "top"
        assert request_from_record(updated).gradient_position == GradientPosition.TOP
        assert record["image_settings"]["gradientPosition"] == "bottom"
