"""
Prompt Builders
Text prompts for image synthesis, mockup compositing, ghost mannequins and 3D figurines.
"""

import re
from typing import Dict

from app.core.config import settings


# --- DTF artwork ---

CARTOON_HINTS = re.compile(
    r"cartoon|animated|anime|illustration|comic|drawn|stylized|vector|flat|simple|cute|kawaii"
)


def build_dtf_prompt(user_prompt: str, shirt_color: str = "black", print_style: str = "clean") -> str:
    """
    Wrap a user prompt with print rules for a direct-to-film transfer.

    Hyper-realistic unless the user asked for a cartoon look.
    """
    if CARTOON_HINTS.search(user_prompt.lower()):
        style = "STYLE: Create in a stylized/cartoon illustration style as requested."
    else:
        style = (
            "STYLE: Create in HYPER-REALISTIC style with photorealistic details, dramatic lighting, "
            "and professional quality. Make it look like a real photograph or 3D render."
        )

    parts = [
        f"CREATE THIS DESIGN: {user_prompt}\n\n{style}\n\n"
        "Generate EXACTLY what was described. Follow the description precisely.",
        "OUTPUT: Isolated artwork on TRANSPARENT background. No t-shirt or mockup - just the design. "
        "Centered, high resolution.",
    ]

    if shirt_color == "black":
        parts.append("COLORS: Avoid pure black (won't show on black fabric). Use bright, vibrant colors.")
    elif shirt_color == "white":
        parts.append("COLORS: Avoid pure white. Use colors with good contrast.")

    if print_style == "halftone":
        parts.append("TEXTURE: Leave room for a halftone dot finish; prefer bold shapes.")
    elif print_style == "grunge":
        parts.append("TEXTURE: A distressed, worn print look suits this design.")

    return "\n\n".join(parts)


# --- Mockups ---

# Base photos of the mascot wearing blank garments, served by the storefront
MR_IMAGINE_MOCKUPS: Dict[str, Dict[str, Dict[str, str]]] = {
    "tshirt": {
        "front": {
            "black": "/mr-imagine/mockups/mr-imagine-tshirt-black-front.png",
            "white": "/mr-imagine/mockups/mr-imagine-tshirt-white-front.png",
            "gray": "/mr-imagine/mockups/mr-imagine-tshirt-gray-front.png",
        },
        "back": {
            "black": "/mr-imagine/mockups/mr-imagine-tshirt-black-back.png",
            "white": "/mr-imagine/mockups/mr-imagine-tshirt-white-back.png",
            "gray": "/mr-imagine/mockups/mr-imagine-tshirt-gray-back.png",
        },
    },
    "hoodie": {
        "front": {
            "black": "/mr-imagine/mockups/mr-imagine-hoodie-black-front.png",
            "white": "/mr-imagine/mockups/mr-imagine-hoodie-white-front.png",
        },
        "back": {
            "black": "/mr-imagine/mockups/mr-imagine-hoodie-black-back.png",
            "white": "/mr-imagine/mockups/mr-imagine-hoodie-white-back.png",
        },
    },
    "tank": {
        "front": {
            "black": "/mr-imagine/mockups/mr-imagine-tank-black-front.png",
            "white": "/mr-imagine/mockups/mr-imagine-tank-white-front.png",
        },
    },
}

FABRIC_COLORS = {
    "black": "black",
    "white": "white",
    "gray": "heather gray",
    "grey": "heather grey",
    "color": "colored",
}

PRODUCT_NAMES = {
    "tshirt": "t-shirt",
    "hoodie": "hoodie",
    "tank": "tank top",
    "shirts": "t-shirt",
    "hoodies": "hoodie",
}

PLACEMENTS = {
    "front-center": "centered on the chest area of the shirt",
    "left-pocket": "small, positioned on the left chest pocket area",
    "back-only": "large, centered on the back of the shirt",
    "pocket-front-back-full": "small on the front left pocket and large on the back",
}


def base_mockup_url(product_type: str = "tshirt", shirt_color: str = "black",
                    print_placement: str = "front-center") -> str:
    """Absolute URL of the base mockup photo for a garment, side and colour."""
    side = "back" if print_placement == "back-only" else "front"
    garment = MR_IMAGINE_MOCKUPS.get(product_type) or MR_IMAGINE_MOCKUPS["tshirt"]
    path = (
        garment.get(side, {}).get(shirt_color)
        or garment.get("front", {}).get(shirt_color)
        or MR_IMAGINE_MOCKUPS["tshirt"]["front"]["black"]
    )
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}"


def build_mockup_prompt(template: str, product_type: str = "tshirt", shirt_color: str = "black",
                        print_placement: str = "front-center") -> str:
    """Instructions for compositing a design onto the base mockup (first image) from the second image."""
    fabric = FABRIC_COLORS.get(shirt_color, "black")
    product = PRODUCT_NAMES.get(product_type, "t-shirt")
    placement = PLACEMENTS.get(print_placement, PLACEMENTS["front-center"])

    if template == "flat_lay":
        return (
            f"Create a professional product mockup: Take the graphic design from the SECOND input image "
            f"and apply it {placement} on the {fabric} {product} shown in the FIRST input image.\n\n"
            "CRITICAL INSTRUCTIONS:\n"
            f"1. The FIRST image shows Mr. Imagine (a friendly purple furry character) wearing the {fabric} {product} - keep Mr. Imagine exactly as shown\n"
            f"2. The SECOND image is the graphic design to apply to the {product}\n"
            f"3. Apply the design {placement}, making it look like a real printed DTF transfer\n"
            f"4. Preserve Mr. Imagine's pose and the {product}'s original {fabric} color\n"
            "5. Do NOT modify, distort, or change the design - copy it EXACTLY\n"
            "6. Professional studio lighting, clean background, high quality product photography"
        )

    return (
        f"Create a lifestyle product mockup featuring Mr. Imagine: The FIRST input image shows Mr. Imagine "
        f"(a friendly purple furry character) wearing a {fabric} {product}. "
        "The SECOND input image is a graphic design.\n\n"
        "CRITICAL INSTRUCTIONS:\n"
        "1. Keep Mr. Imagine exactly as shown in the FIRST image\n"
        f"2. Apply the design from the SECOND image {placement} on the {product}\n"
        "3. The design should look like a real DTF printed graphic on the fabric\n"
        f"4. Preserve Mr. Imagine's character, pose, and the {fabric} color of the {product}\n"
        "5. Copy the graphic EXACTLY as it appears - same colors, same design elements\n"
        "6. Professional lifestyle photography style with natural lighting"
    )


# --- Ghost mannequin ---

GHOST_MANNEQUIN_PRODUCT_TYPES = ("tshirt", "hoodie", "tank")


def build_ghost_mannequin_prompt(product_type: str, shirt_color: str) -> str:
    product = PRODUCT_NAMES.get(product_type, "t-shirt")
    fabric = FABRIC_COLORS.get(shirt_color, "black")
    return (
        f"Generate a ghost mannequin photograph of this {fabric} {product} with the printed design "
        "exactly as shown in the input image.\n\n"
        "REQUIREMENTS:\n"
        "- Show the garment as a 3D volume with realistic fabric draping\n"
        "- The garment should appear as if worn by an invisible mannequin\n"
        "- No visible mannequin, support structure, or model - just the floating garment\n"
        "- Pure white background (RGB 255,255,255)\n"
        "- Professional e-commerce studio lighting\n"
        "- Preserve the printed design exactly as it appears in the input image\n"
        "- Show natural fabric folds, seams, and construction details\n"
        "- The interior neckline and collar structure should be visible"
    )


# --- 3D figurines ---

STYLES_3D = {
    "realistic": "photorealistic, highly detailed, professional 3D sculpture, museum quality, smooth surfaces",
    "cartoon": "stylized cartoon style, smooth rounded surfaces, bright vibrant colors, clean lines",
    "low_poly": "low polygon geometric style, faceted angular surfaces, minimalist 3D art, crisp edges",
    "anime": "anime style, cel-shaded appearance, expressive features, clean bold lines",
}

ANGLE_VIEWS = {
    "front": ("directly from the front", "front view, facing camera"),
    "back": ("directly from the back", "back view, turned away from camera"),
    "left": ("from the left side at 90 degrees", "left profile view, perpendicular to camera"),
    "right": ("from the right side at 90 degrees", "right profile view, perpendicular to camera"),
}


def build_concept_prompt(user_prompt: str, style: str = "realistic") -> str:
    """Text-to-image prompt for a printable figurine concept."""
    descriptor = STYLES_3D.get(style, STYLES_3D["realistic"])
    subject = re.sub(r"[^\w\s,.-]", "", re.sub(r"\s+", " ", user_prompt.strip()))
    return ", ".join([
        f"A {descriptor} 3D-printable figurine of {subject}",
        "centered composition on pure white background",
        "product photography lighting, soft shadows",
        "solid stable base for standing",
        "suitable for 3D printing, no thin fragile parts",
        "single subject, clean isolated view",
        "high detail, sharp focus",
        "front view perspective",
    ])


def build_angle_prompt(style: str, angle: str) -> str:
    """Image-to-image prompt that re-renders the concept from another side."""
    descriptor = STYLES_3D.get(style, STYLES_3D["realistic"])
    direction, camera = ANGLE_VIEWS[angle]
    return ", ".join([
        f"Same figurine viewed {direction}",
        camera,
        descriptor,
        "pure white background",
        "consistent lighting and scale",
        "same level of detail and style",
        "no perspective distortion",
        "maintain original design and proportions",
    ])
