"""OpenAI DALL·E image generation backend."""

from __future__ import annotations

import base64

from . import GeneratedImage, ImageBackend


class DalleImageBackend(ImageBackend):
    """Generate meal photographs with the OpenAI Images API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        style: str = "natural",
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._size = size
        self._quality = quality
        self._style = style

    async def generate(self, prompt: str) -> GeneratedImage:
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

        client = openai.AsyncOpenAI(api_key=self._api_key)
        response = await client.images.generate(
            model=self._model,
            prompt=prompt,
            size=self._size,
            quality=self._quality,
            style=self._style,
            n=1,
        )

        image = response.data[0]
        b64 = getattr(image, "b64_json", None)
        if b64:
            return GeneratedImage(url=image.url, data=base64.b64decode(b64))
        if not image.url:
            raise RuntimeError("Image API returned neither a URL nor image data")
        return GeneratedImage(url=image.url)
