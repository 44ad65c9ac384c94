import pytest

from app.core.config import settings
from app.services.prompts import (
    base_mockup_url,
    build_angle_prompt,
    build_concept_prompt,
    build_dtf_prompt,
    build_ghost_mannequin_prompt,
    build_mockup_prompt,
)
from app.services.replicate_client import image_model_input


class TestDtfPrompt:

    def test_realistic_by_default(self):
        prompt = build_dtf_prompt("a wolf howling at the moon")
        assert prompt.startswith("CREATE THIS DESIGN: a wolf howling at the moon")
        assert "HYPER-REALISTIC" in prompt
        assert "Avoid pure black" in prompt

    def test_cartoon_requests_are_respected(self):
        prompt = build_dtf_prompt("a cute Cartoon cat", shirt_color="white")
        assert "stylized/cartoon" in prompt
        assert "Avoid pure white" in prompt

    def test_texture_hints(self):
        assert "halftone" in build_dtf_prompt("x", print_style="halftone")
        assert "distressed" in build_dtf_prompt("x", print_style="grunge")


class TestMockupPrompts:

    def test_base_mockup_url(self):
        url = base_mockup_url("hoodie", "white", "front-center")
        assert url == f"{settings.FRONTEND_URL.rstrip('/')}/mr-imagine/mockups/mr-imagine-hoodie-white-front.png"

    def test_back_placement_uses_back_photo(self):
        assert base_mockup_url("tshirt", "gray", "back-only").endswith("mr-imagine-tshirt-gray-back.png")

    def test_unknown_combinations_fall_back(self):
        assert base_mockup_url("tank", "white", "back-only").endswith("mr-imagine-tank-white-front.png")
        assert base_mockup_url("mug", "purple").endswith("mr-imagine-tshirt-black-front.png")

    def test_templates(self):
        flat = build_mockup_prompt("flat_lay", "tshirt", "black", "left-pocket")
        lifestyle = build_mockup_prompt("mr_imagine", "hoodie", "white")
        assert flat.startswith("Create a professional product mockup")
        assert "left chest pocket" in flat
        assert lifestyle.startswith("Create a lifestyle product mockup")
        assert "white hoodie" in lifestyle

    def test_ghost_mannequin(self):
        assert "heather gray tank top" in build_ghost_mannequin_prompt("tank", "gray")


class TestFigurinePrompts:

    def test_concept_cleans_subject(self):
        prompt = build_concept_prompt("  a   knight!!  with <sword> ", "low_poly")
        assert prompt.startswith("A low polygon geometric style")
        assert "figurine of a knight with sword" in prompt

    def test_unknown_style_is_realistic(self):
        assert "photorealistic" in build_concept_prompt("a cat", "baroque")

    @pytest.mark.parametrize("angle", ["front", "back", "left", "right"])
    def test_angle_views(self, angle):
        assert angle in build_angle_prompt("anime", angle)


class TestImageModelInput:

    def test_flux(self):
        params = image_model_input("black-forest-labs/flux-1.1-pro-ultra", "p", True)
        assert params == {
            "prompt": "p",
            "raw": False,
            "aspect_ratio": "1:1",
            "output_format": "png",
            "safety_tolerance": 2,
        }

    def test_leonardo_uses_dimensions(self):
        params = image_model_input("leonardoai/lucid-origin", "p", True)
        assert params["width"] == settings.DEFAULT_IMAGE_WIDTH

    def test_async_models(self):
        assert image_model_input("recraft-ai/recraft-v3", "p", False)["style"] == "realistic_image"
        assert image_model_input("ideogram-ai/ideogram-v3", "p", False)["output_quality"] == 90
