"""Image generation backend base class, data types, and factory."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import AppConfig


@dataclass
class GeneratedImage:
    url: str | None = None
    data: bytes | None = None  # set when the API returns the image inline


class ImageBackend(ABC):
    """Abstract base for text-to-image services."""

    @abstractmethod
    async def generate(self, prompt: str) -> GeneratedImage:
        """Generate one image for *prompt*."""
        ...


async def download_image(url: str, timeout: float = 30.0) -> bytes:
    """Fetch a generated image from its temporary URL.

    *timeout* bounds the whole download, not each network phase.

    Raises:
        asyncio.TimeoutError: If the download takes longer than *timeout*.
        httpx.HTTPError: On connection failures or non-2xx responses.
    """
    import httpx

    async def fetch() -> bytes:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    return await asyncio.wait_for(fetch(), timeout=timeout)


def create_image_backend(config: AppConfig) -> ImageBackend:
    """Create an image generation backend based on configuration."""
    backend_name = config.images.backend

    match backend_name:
        case "openai":
            from .dalle import DalleImageBackend

            cfg = config.images.openai
            return DalleImageBackend(
                api_key=cfg.api_key,
                model=cfg.model,
                size=cfg.size,
                quality=cfg.quality,
                style=cfg.style,
            )
        case _:
            raise ValueError(
                f"Unknown image backend: {backend_name!r} (choose from: openai)"
            )
