import threading

import pytest
from PIL import ImageFont

from intel_image import fonts as fonts_module
from intel_image.fonts import SYSTEM_FONTS, FontRegistry, get_font_registry
from intel_image.layout import Point, layout


class TestFontRegistry:

    def test_no_typeface_file(self, plain_fonts):
        assert plain_fonts.font_path is None

    def test_can_measure_follows_builtin_face(self, plain_fonts):
        scalable = isinstance(ImageFont.load_default(size=12), ImageFont.FreeTypeFont)
        assert plain_fonts.can_measure is scalable

    def test_measured_widths_match_drawn_glyphs(self, plain_fonts):
        if not plain_fonts.can_measure:
            pytest.skip("Pillow built without FreeType")
        drawn = plain_fonts.font(80).getlength("KATSUYUKI")
        assert plain_fonts.measure("KATSUYUKI", 80) == drawn

    def test_builtin_face_keeps_lines_centred(self, plain_fonts):
        if not plain_fonts.can_measure:
            pytest.skip("Pillow built without FreeType")
        runs = layout(["UMEHARA, KATSUYUKI"], [], 1080, 1350, 0.8, Point(540, 1000), 72,
                      disable_auto_scaling=True, metrics=plain_fonts)
        font = plain_fonts.font(80)
        left = runs[0].x
        drawn_right = runs[-1].x + font.getlength(runs[-1].word)
        assert (left + drawn_right) / 2 == pytest.approx(540)

    def test_still_draws_with_builtin_font(self, plain_fonts):
        font = plain_fonts.font(24)
        assert font.getbbox("@KUMOLABANIME")[2] > 0

    def test_fonts_are_cached_per_size(self, plain_fonts):
        assert plain_fonts.font(40) is plain_fonts.font(40)
        assert plain_fonts.font(40) is not plain_fonts.font(41)

    def test_unloadable_candidates_are_skipped(self, tmp_path):
        bogus = tmp_path / "broken.ttf"
        bogus.write_bytes(b"not a font")
        registry = FontRegistry(fonts_dir=tmp_path, candidates=[str(tmp_path / "missing.ttf")])
        assert registry.font_path is None

    def test_system_face_measures(self, tmp_path):
        registry = FontRegistry(fonts_dir=tmp_path, candidates=SYSTEM_FONTS)
        if not registry.can_measure:
            pytest.skip("no bold system font installed")
        assert registry.measure("WW", 100) > registry.measure("W", 100) > 0


class TestGlobalRegistry:

    def test_single_instance_across_threads(self, monkeypatch, tmp_path):
        monkeypatch.setattr(fonts_module, "_registry", None)
        seen = []

        def worker():
            seen.append(get_font_registry(tmp_path))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 8
        assert all(r is seen[0] for r in seen)
        assert get_font_registry() is seen[0]
