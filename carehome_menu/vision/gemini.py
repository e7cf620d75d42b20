"""Gemini API vision backend for menu OCR."""

from __future__ import annotations

from pathlib import Path

from . import MENU_PROMPT, VisionBackend, clean_response, guess_media_type


class GeminiVisionBackend(VisionBackend):
    """Read menu photos using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def extract_menu_text(self, image_path: str) -> str:
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not configured. "
                "Set it in the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        data = Path(image_path).read_bytes()
        parts = [
            {"mime_type": guess_media_type(image_path), "data": data},
            MENU_PROMPT,
        ]

        response = await model.generate_content_async(parts)
        return clean_response(response.text)
