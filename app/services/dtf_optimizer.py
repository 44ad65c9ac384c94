"""
DTF Print Optimizer
Turns a generated image into a print-ready direct-to-film transfer.

Pipeline:
    1. RGBA decode
    2. Black knockout (black shirts only): large near-black fills become
       transparent, thin outlines are kept
    3. Print boost: +12% saturation and a gentle S-curve on lightness
    4. Sharpen
    5. Optional halftone or grunge texture
    6. PNG export
"""

import io
import logging
from typing import Optional

import numpy as np
from PIL import Image, ImageFilter

logger = logging.getLogger(__name__)

BLACK_THRESHOLD = 45
NEUTRAL_TOLERANCE = 12
CLUSTER_RADIUS = 6
FEATHER_RADIUS = 2
SATURATION_BOOST = 1.12

HALFTONE_SPACING = 8
HALFTONE_DOT_RADIUS = 3
HALFTONE_OPACITY = 0.3


def _box_sum(mask: np.ndarray, radius: int) -> np.ndarray:
    """Number of set pixels in the (2r+1)^2 window around each pixel (clipped at edges)."""
    padded = np.pad(mask.astype(np.int32), radius + 1, mode="constant")
    integral = padded.cumsum(axis=0).cumsum(axis=1)
    size = 2 * radius + 1
    h, w = mask.shape
    bottom_right = integral[size:size + h, size:size + w]
    top_right = integral[:h, size:size + w]
    bottom_left = integral[size:size + h, :w]
    top_left = integral[:h, :w]
    return bottom_right - top_right - bottom_left + top_left


def _shift(mask: np.ndarray, dy: int, dx: int, fill: bool) -> np.ndarray:
    """mask[y + dy, x + dx] for every (y, x); out-of-bounds reads return `fill`."""
    h, w = mask.shape
    out = np.full_like(mask, fill)
    ys_dst = slice(max(0, -dy), min(h, h - dy))
    xs_dst = slice(max(0, -dx), min(w, w - dx))
    ys_src = slice(max(0, dy), min(h, h + dy))
    xs_src = slice(max(0, dx), min(w, w + dx))
    out[ys_dst, xs_dst] = mask[ys_src, xs_src]
    return out


def remove_black_areas(pixels: np.ndarray) -> int:
    """
    Knock out large near-black regions in place (uint8 RGBA array).

    Returns:
        Number of pixels made (partly) transparent
    """
    rgb = pixels[..., :3].astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    black = (
        (r < BLACK_THRESHOLD) & (g < BLACK_THRESHOLD) & (b < BLACK_THRESHOLD)
        & (np.abs(r - g) < NEUTRAL_TOLERANCE)
        & (np.abs(r - b) < NEUTRAL_TOLERANCE)
        & (np.abs(g - b) < NEUTRAL_TOLERANCE)
    )

    # Only fills, thin outlines never reach the cluster size
    min_cluster = np.pi * CLUSTER_RADIUS * CLUSTER_RADIUS * 0.5
    remove = black & (_box_sum(black, CLUSTER_RADIUS) > min_cluster)
    if not remove.any():
        return 0

    # Feather by distance to the nearest kept pixel in a small window
    distance = np.full(remove.shape, float(CLUSTER_RADIUS))
    for dy in range(-FEATHER_RADIUS, FEATHER_RADIUS + 1):
        for dx in range(-FEATHER_RADIUS, FEATHER_RADIUS + 1):
            kept_neighbour = ~_shift(remove, dy, dx, fill=True)
            distance = np.where(kept_neighbour, np.minimum(distance, np.hypot(dx, dy)), distance)

    feather = np.clip(distance / 2.0, 0.0, 1.0)
    alpha = pixels[..., 3].astype(np.float64)
    pixels[..., 3] = np.where(remove, np.floor(alpha * (1.0 - feather)), alpha).astype(np.uint8)

    removed = int(remove.sum())
    logger.info(f"[DTF] Black knockout: {removed} pixels made transparent")
    return removed


def _rgb_to_hsl(rgb: np.ndarray):
    maxc = rgb.max(axis=-1)
    minc = rgb.min(axis=-1)
    light = (maxc + minc) / 2.0
    delta = maxc - minc
    chromatic = delta > 0
    safe_delta = np.where(chromatic, delta, 1.0)

    denom = np.where(light > 0.5, 2.0 - maxc - minc, maxc + minc)
    sat = np.where(chromatic, delta / np.where(denom == 0, 1.0, denom), 0.0)

    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    hue = np.where(
        maxc == r,
        ((g - b) / safe_delta + np.where(g < b, 6.0, 0.0)),
        np.where(maxc == g, (b - r) / safe_delta + 2.0, (r - g) / safe_delta + 4.0),
    ) / 6.0
    hue = np.where(chromatic, hue, 0.0)
    return hue, sat, light


def _hue_to_rgb(p, q, t):
    t = np.mod(t, 1.0)
    return np.select(
        [t < 1 / 6, t < 1 / 2, t < 2 / 3],
        [p + (q - p) * 6 * t, q, p + (q - p) * (2 / 3 - t) * 6],
        default=p,
    )


def _hsl_to_rgb(hue, sat, light) -> np.ndarray:
    q = np.where(light < 0.5, light * (1 + sat), light + sat - light * sat)
    p = 2 * light - q
    rgb = np.stack(
        [_hue_to_rgb(p, q, hue + 1 / 3), _hue_to_rgb(p, q, hue), _hue_to_rgb(p, q, hue - 1 / 3)],
        axis=-1,
    )
    grey = np.repeat(light[..., None], 3, axis=-1)
    return np.where((sat == 0)[..., None], grey, rgb)


def _s_curve(value: np.ndarray) -> np.ndarray:
    curve = np.where(value < 0.5, 2 * value * value, 1 - 2 * (1 - value) * (1 - value))
    return value * 0.7 + curve * 0.3


def apply_print_boost(pixels: np.ndarray) -> None:
    """Saturation and contrast boost on visible pixels, in place."""
    visible = pixels[..., 3] > 0
    rgb = pixels[..., :3].astype(np.float64) / 255.0

    hue, sat, light = _rgb_to_hsl(rgb)
    boosted = _hsl_to_rgb(hue, np.minimum(1.0, sat * SATURATION_BOOST), _s_curve(light))
    boosted = np.clip(np.round(boosted * 255.0), 0, 255).astype(np.uint8)

    pixels[..., :3] = np.where(visible[..., None], boosted, pixels[..., :3])


def apply_halftone(pixels: np.ndarray) -> None:
    """Overlay a regular dot grid."""
    h, w = pixels.shape[:2]
    ys, xs = np.mgrid[0:h, 0:w]
    centre = HALFTONE_SPACING / 2.0
    dots = (
        (np.mod(xs, HALFTONE_SPACING) + 0.5 - centre) ** 2
        + (np.mod(ys, HALFTONE_SPACING) + 0.5 - centre) ** 2
    ) <= HALFTONE_DOT_RADIUS ** 2

    base = pixels[..., :3].astype(np.float64) / 255.0
    # Overlay blend with a black layer
    overlay = np.where(base < 0.5, 0.0, 1.0 - 2.0 * (1.0 - base))
    mixed = base * (1 - HALFTONE_OPACITY) + overlay * HALFTONE_OPACITY
    result = np.where(dots[..., None], mixed, base)
    pixels[..., :3] = np.clip(np.round(result * 255.0), 0, 255).astype(np.uint8)


def apply_grunge(pixels: np.ndarray, seed: Optional[int] = None) -> None:
    """Multiply with blurred random speckle."""
    h, w = pixels.shape[:2]
    rng = np.random.default_rng(seed)
    noise = np.where(rng.random((h, w)) > 0.7, 0, 255).astype(np.uint8)
    noise = Image.fromarray(noise).filter(ImageFilter.GaussianBlur(1.5))
    factor = np.asarray(noise, dtype=np.float64)[..., None] / 255.0
    pixels[..., :3] = np.round(pixels[..., :3].astype(np.float64) * factor).astype(np.uint8)


def optimize_for_dtf(
    image_bytes: bytes,
    shirt_color: str = "black",
    print_style: str = "clean",
    seed: Optional[int] = None,
) -> bytes:
    """
    Produce a print-ready PNG.

    Args:
        image_bytes: Source image (any Pillow-readable format)
        shirt_color: black | white | grey | color
        print_style: clean | halftone | grunge
        seed: Grunge noise seed (random when None)

    Returns:
        Optimized PNG bytes
    """
    with Image.open(io.BytesIO(image_bytes)) as source:
        image = source.convert("RGBA")
    logger.info(
        f"[DTF] Optimizing {image.width}x{image.height} for {shirt_color} shirt, {print_style} style"
    )

    pixels = np.array(image, dtype=np.uint8)

    if shirt_color == "black":
        remove_black_areas(pixels)

    apply_print_boost(pixels)

    image = Image.fromarray(pixels).filter(
        ImageFilter.UnsharpMask(radius=0.8, percent=100, threshold=2)
    )

    if print_style in ("halftone", "grunge"):
        pixels = np.array(image, dtype=np.uint8)
        if print_style == "halftone":
            apply_halftone(pixels)
        else:
            apply_grunge(pixels, seed=seed)
        image = Image.fromarray(pixels)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True, compress_level=9)
    optimized = buffer.getvalue()

    logger.info(f"[DTF] Optimization complete: {len(image_bytes)} -> {len(optimized)} bytes")
    return optimized
