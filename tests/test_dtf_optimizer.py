import io

import numpy as np
import pytest
from PIL import Image

from app.services.dtf_optimizer import optimize_for_dtf, remove_black_areas


def image_bytes(pixels: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def decode(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as image:
        assert image.format == "PNG"
        return np.array(image.convert("RGBA"))


@pytest.fixture
def black_square():
    """White 32x32 canvas with a solid black 20x20 block and a thin black line."""
    pixels = np.full((32, 32, 4), 255, dtype=np.uint8)
    pixels[6:26, 6:26, :3] = 0
    pixels[1, :, :3] = 0
    return pixels


class TestRemoveBlackAreas:

    def test_large_fill_removed_thin_line_kept(self, black_square):
        pixels = black_square.copy()
        removed = remove_black_areas(pixels)

        assert removed > 0
        assert pixels[16, 16, 3] == 0
        assert pixels[1, 16, 3] == 255
        assert pixels[30, 30, 3] == 255

    def test_edges_are_feathered(self, black_square):
        pixels = black_square.copy()
        remove_black_areas(pixels)
        # Border pixels of the block sit next to kept pixels
        assert 0 < pixels[6, 16, 3] < 255

    def test_dark_colours_are_not_black(self):
        pixels = np.full((32, 32, 4), 255, dtype=np.uint8)
        pixels[..., :3] = (40, 0, 0)
        assert remove_black_areas(pixels) == 0
        assert (pixels[..., 3] == 255).all()


class TestOptimizeForDtf:

    def test_black_shirt_knockout(self, black_square):
        result = decode(optimize_for_dtf(image_bytes(black_square), "black", "clean"))
        assert result.shape == (32, 32, 4)
        assert result[16, 16, 3] == 0

    def test_white_shirt_keeps_black(self, black_square):
        result = decode(optimize_for_dtf(image_bytes(black_square), "white", "clean"))
        assert result[16, 16, 3] == 255

    def test_print_boost_increases_saturation(self):
        pixels = np.zeros((8, 8, 4), dtype=np.uint8)
        pixels[...] = (180, 90, 90, 255)
        result = decode(optimize_for_dtf(image_bytes(pixels), "white", "clean"))
        r, g, b = result[4, 4, :3].astype(int)
        assert r - g > 90

    @pytest.mark.parametrize("style", ["halftone", "grunge"])
    def test_textures(self, style):
        pixels = np.zeros((24, 24, 4), dtype=np.uint8)
        pixels[...] = (200, 200, 200, 255)
        plain = decode(optimize_for_dtf(image_bytes(pixels), "white", "clean"))
        textured = decode(optimize_for_dtf(image_bytes(pixels), "white", style, seed=3))
        assert not np.array_equal(plain, textured)

    def test_grunge_seed_is_reproducible(self):
        pixels = np.zeros((24, 24, 4), dtype=np.uint8)
        pixels[...] = (120, 160, 200, 255)
        data = image_bytes(pixels)
        assert optimize_for_dtf(data, "color", "grunge", seed=5) == optimize_for_dtf(data, "color", "grunge", seed=5)

    def test_accepts_jpeg(self):
        buffer = io.BytesIO()
        Image.new("RGB", (16, 16), (10, 200, 30)).save(buffer, format="JPEG")
        result = decode(optimize_for_dtf(buffer.getvalue(), "grey", "clean"))
        assert result.shape == (16, 16, 4)
