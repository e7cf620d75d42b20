"""OpenAI GPT-4o vision backend for menu OCR."""

from __future__ import annotations

import base64
from pathlib import Path

from . import MENU_PROMPT, VisionBackend, clean_response, guess_media_type


class OpenAIVisionBackend(VisionBackend):
    """Read menu photos with an OpenAI vision-capable chat model."""

    def __init__(self, api_key: str = "", model: str = "gpt-4o") -> None:
        self._api_key = api_key
        self._model = model

    async def extract_menu_text(self, image_path: str) -> str:
        if not self._api_key:
            raise ValueError(
                "OpenAI API key is not configured. "
                "Set it in the config file or the OPENAI_API_KEY environment variable."
            )

        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai SDK is required: pip install openai"
            ) from None

        data = Path(image_path).read_bytes()
        media_type = guess_media_type(image_path)
        encoded = base64.standard_b64encode(data).decode()

        client = openai.AsyncOpenAI(api_key=self._api_key)
        response = await client.chat.completions.create(
            model=self._model,
            max_tokens=2000,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{media_type};base64,{encoded}",
                                "detail": "high",
                            },
                        },
                        {"type": "text", "text": MENU_PROMPT},
                    ],
                }
            ],
        )

        return clean_response(response.choices[0].message.content or "")
