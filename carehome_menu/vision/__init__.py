"""Vision (OCR) backend base class, shared prompt, and factory."""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import AppConfig

MENU_PROMPT = """\
Extract the complete menu text from this image exactly as written.

CRITICAL RULES:
1. Extract ALL text exactly as it appears - do not modify, rephrase, or correct anything
2. Preserve the exact structure and formatting
3. Include ALL sections: Breakfast, Lunch, Dessert, Evening Meal, Supper, etc.
4. Include ALL meal options and items
5. Preserve separator lines and spacing where important for structure
6. If text is unclear, use your best judgment but flag it with [?]

Return the extracted text in this format:

HEADER:
[Care home name and date line]

SECTION NAME:
[Items exactly as written]

And so on for all sections present in the menu.
"""


class OCRError(RuntimeError):
    """Menu text could not be read from an uploaded image."""


class VisionBackend(ABC):
    """Abstract base for reading menu text out of a photo."""

    @abstractmethod
    async def extract_menu_text(self, image_path: str) -> str:
        """Return the menu text visible in the image."""
        ...


def guess_media_type(path: str) -> str:
    return mimetypes.guess_type(path)[0] or "image/jpeg"


def clean_response(text: str) -> str:
    """Strip markdown fences that models sometimes wrap around the text."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def create_backend(config: AppConfig) -> VisionBackend:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "openai":
            from .gpt import OpenAIVisionBackend

            return OpenAIVisionBackend(
                api_key=config.vision.openai.api_key,
                model=config.vision.openai.model,
            )
        case "claude":
            from .claude import ClaudeVisionBackend

            return ClaudeVisionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case "gemini":
            from .gemini import GeminiVisionBackend

            return GeminiVisionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case _:
            raise ValueError(
                f"Unknown vision backend: {backend_name!r} "
                f"(choose from: openai, claude, gemini)"
            )
