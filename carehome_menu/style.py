"""Locked visual style for meal photographs.

Every generated image shares the same camera angle, lighting and plating so
that a printed menu looks consistent from week to week. Change these values
only together with clearing the image cache.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ImageStyle:
    camera_angle: str = "45-degree overhead angle"
    lighting: str = "Soft natural lighting, bright and inviting"
    background: str = "White ceramic dinner plate on light wood table"
    composition: str = "Centered, professional food photography"
    quality: str = "High quality, sharp focus, photorealistic"
    color_balance: str = "Natural food colors, no artistic filters or oversaturation"
    context: str = "Care home dining, institutional but appealing quality"
    plating: str = "Traditional British plating style"
    portion_size: str = "Appropriate elderly care portions"
    additional_context: str = (
        "This is for an elderly care home menu. The presentation should be "
        "appetizing but realistic, clean and professional, not restaurant-fancy "
        "but appealing. Easy to identify each food item."
    )
    prohibited: tuple[str, ...] = (
        "text overlays",
        "logos",
        "watermarks",
        "hands",
        "people",
        "cutlery in shot",
        "garnishes unless explicitly mentioned",
        "artistic styling",
        "restaurant-style fancy presentation",
        "abstract compositions",
    )


DEFAULT_STYLE = ImageStyle()

_MEAL_PHRASES: dict[str, str] = {
    "breakfast": "a traditional care home breakfast",
    "lunch": "a hearty main lunch course",
    "dessert": "a comforting dessert served in a bowl",
    "evening": "a light evening meal",
}


def build_prompt(
    description: str, meal_type: str, style: ImageStyle = DEFAULT_STYLE
) -> str:
    """Merge a meal description with the locked style into one prompt."""
    phrase = _MEAL_PHRASES.get(meal_type, "a main meal")
    return (
        f"Professional food photography of {phrase}: {description.strip()}.\n"
        f"{style.composition}, {style.camera_angle}, {style.lighting}, "
        f"{style.background}.\n"
        f"{style.plating}, {style.portion_size}. {style.quality}. "
        f"{style.color_balance}.\n"
        f"{style.context}. {style.additional_context}\n"
        f"Do NOT include: {', '.join(style.prohibited)}."
    )
