"""Claude API vision backend for menu OCR."""

from __future__ import annotations

import base64
from pathlib import Path

from . import MENU_PROMPT, VisionBackend, clean_response, guess_media_type


class ClaudeVisionBackend(VisionBackend):
    """Read menu photos using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def extract_menu_text(self, image_path: str) -> str:
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not configured. "
                "Set it in the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        data = Path(image_path).read_bytes()
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": guess_media_type(image_path),
                    "data": base64.standard_b64encode(data).decode(),
                },
            },
            {"type": "text", "text": MENU_PROMPT},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=4096,
            messages=[{"role": "user", "content": content}],
        )

        return clean_response(response.content[0].text)
