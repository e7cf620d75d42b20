"""Pick what to photograph for each menu section and make sure it exists."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from .imagegen import ImageBackend, download_image
from .menu import ParsedMenu, Section
from .storage.cache import CacheEntry, ImageCache, cache_key
from .style import DEFAULT_STYLE, ImageStyle, build_prompt
from .validator import section_options

logger = logging.getLogger(__name__)

COMBINED = "combined"
FIRST_OPTION = "first_option"
JOINED = "joined"
NO_IMAGE = "none"


@dataclass(frozen=True)
class SectionPolicy:
    output_key: str | None
    meal_type: str | None
    mode: str
    keywords: tuple[str, ...]


# Priority order; the first row whose keyword occurs in the section name wins
POLICY_TABLE: tuple[SectionPolicy, ...] = (
    SectionPolicy("breakfast", "breakfast", COMBINED, ("breakfast",)),
    SectionPolicy("lunch", "lunch", FIRST_OPTION, ("lunch",)),
    SectionPolicy("dessert", "dessert", FIRST_OPTION, ("dessert",)),
    SectionPolicy("eveningMeal", "evening", JOINED, ("evening", "tea")),
    SectionPolicy(None, None, NO_IMAGE, ("supper",)),
    SectionPolicy(None, None, NO_IMAGE, ("drinks",)),
    SectionPolicy(None, None, NO_IMAGE, ("available", "request")),
)

OUTPUT_ORDER = ("breakfast", "lunch", "dessert", "dessert2", "eveningMeal")


def classify(section_name: str) -> SectionPolicy | None:
    """Return the image policy for a section, or None if it gets no image."""
    normalized = section_name.lower()
    for policy in POLICY_TABLE:
        if any(k in normalized for k in policy.keywords):
            return None if policy.mode == NO_IMAGE else policy
    return None


@dataclass
class MealRequest:
    section: str
    description: str
    meal_type: str


def describe(section: Section, policy: SectionPolicy) -> str:
    """Build the meal description sent to the image generator."""
    options = section_options(section)
    match policy.mode:
        case "combined":
            return ", ".join(options.all_items)
        case "first_option":
            if options.first_option:
                return options.first_option
            return ", ".join(i.text for i in section.items)
        case "joined":
            return " and ".join(options.all_items)
        case _:
            return ""


def select_descriptions(menu: ParsedMenu) -> dict[str, MealRequest]:
    """Apply the policy table to every section of *menu*.

    Keys are output keys (``breakfast``, ``lunch``, ``dessert``,
    ``dessert2``, ``eveningMeal``) in that order. Sections whose description
    would be empty are skipped.
    """
    found: dict[str, MealRequest] = {}
    evening: MealRequest | None = None
    evening_is_tea = False

    for name, section in menu.sections.items():
        policy = classify(name)
        if policy is None:
            continue
        description = describe(section, policy).strip()
        if not description:
            continue
        request = MealRequest(name, description, policy.meal_type)

        key = policy.output_key
        if key == "eveningMeal":
            # An "Evening Meal" section replaces a duplicate "Tea" section
            is_tea = "evening" not in name.lower()
            if evening is None or (evening_is_tea and not is_tea):
                evening, evening_is_tea = request, is_tea
            continue
        if key == "dessert" and "dessert" in found:
            key = "dessert2"
        if key not in found:
            found[key] = request

    if evening is not None:
        found["eveningMeal"] = evening

    return {k: found[k] for k in OUTPUT_ORDER if k in found}


@dataclass
class ImageReady:
    meal_description: str
    meal_type: str
    cache_key: str
    local_path: str | None
    url: str | None = None
    prompt: str = ""
    cached: bool = False
    generated_at: str = ""
    usage_count: int = 1

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "meal_description": self.meal_description,
            "meal_type": self.meal_type,
            "cache_key": self.cache_key,
            "local_path": self.local_path,
            "url": self.url,
            "cached": self.cached,
            "generated_at": self.generated_at,
            "usage_count": self.usage_count,
        }


@dataclass
class ImageFailed:
    meal_description: str
    meal_type: str
    error: str

    @property
    def ok(self) -> bool:
        return False

    @property
    def cached(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "meal_description": self.meal_description,
            "meal_type": self.meal_type,
            "error": self.error,
        }


ImageResult = Union[ImageReady, ImageFailed]


class MealImageSelector:
    """Produces one image per photographed section, reusing cached ones.

    Concurrent requests for the same normalized description share a lock, so
    the external generator is called at most once per description.
    """

    def __init__(
        self,
        cache: ImageCache,
        backend: ImageBackend,
        *,
        style: ImageStyle = DEFAULT_STYLE,
        cache_enabled: bool = True,
        generation_timeout: float = 150.0,
        download_timeout: float = 30.0,
    ) -> None:
        self._cache = cache
        self._backend = backend
        self._style = style
        self._cache_enabled = cache_enabled
        self._generation_timeout = generation_timeout
        self._download_timeout = download_timeout
        self._inflight: dict[str, asyncio.Lock] = {}
        self._inflight_users: dict[str, int] = {}

    async def select_and_ensure_images(self, menu: ParsedMenu) -> dict[str, ImageResult]:
        requests = select_descriptions(menu)
        logger.info("Ensuring %d meal images", len(requests))
        results = await asyncio.gather(
            *(self.ensure_image(r.description, r.meal_type) for r in requests.values())
        )
        return dict(zip(requests, results))

    async def ensure_image(self, description: str, meal_type: str) -> ImageResult:
        """Return a cached image or generate one. Failures are returned, not raised."""
        key = cache_key(description)
        lock = self._inflight.setdefault(key, asyncio.Lock())
        self._inflight_users[key] = self._inflight_users.get(key, 0) + 1

        try:
            async with lock:
                if self._cache_enabled:
                    entry = await asyncio.to_thread(self._cache.lookup, key)
                    if entry is not None:
                        logger.info("Cache hit for %s (%s)", meal_type, key)
                        return ImageReady(
                            meal_description=entry.meal_description or description,
                            meal_type=entry.meal_type or meal_type,
                            cache_key=key,
                            local_path=entry.local_path,
                            url=entry.url,
                            prompt=entry.prompt,
                            cached=True,
                            generated_at=entry.generated_at,
                            usage_count=entry.usage_count,
                        )

                return await self._generate(key, description, meal_type)
        finally:
            # Drop the lock once nobody else is queued on it
            self._inflight_users[key] -= 1
            if not self._inflight_users[key]:
                del self._inflight_users[key]
                self._inflight.pop(key, None)

    async def _generate(self, key: str, description: str, meal_type: str) -> ImageResult:
        prompt = build_prompt(description, meal_type, self._style)
        logger.info("Generating %s image: %s", meal_type, description)

        def failed(error: str) -> ImageFailed:
            return ImageFailed(
                meal_description=description, meal_type=meal_type, error=error
            )

        try:
            image = await asyncio.wait_for(
                self._backend.generate(prompt), timeout=self._generation_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Image generation for %s timed out", meal_type)
            return failed(
                f"Image generation timed out after {self._generation_timeout:g}s"
            )
        except Exception as e:
            logger.exception("Image generation failed for %s", meal_type)
            return failed(str(e))

        data = image.data
        if data is None:
            try:
                data = await download_image(image.url, timeout=self._download_timeout)
            except asyncio.TimeoutError:
                logger.error("Image download for %s timed out", meal_type)
                return failed(
                    f"Image download timed out after {self._download_timeout:g}s"
                )
            except Exception as e:
                logger.exception("Image download failed for %s", meal_type)
                return failed(str(e))

        generated_at = datetime.now(timezone.utc).isoformat()
        entry = CacheEntry(
            meal_description=description,
            meal_type=meal_type,
            prompt=prompt,
            generated_at=generated_at,
            url=image.url,
        )
        local_path = await asyncio.to_thread(self._store, key, data, entry)

        return ImageReady(
            meal_description=description,
            meal_type=meal_type,
            cache_key=key,
            local_path=local_path,
            url=image.url,
            prompt=prompt,
            cached=False,
            generated_at=generated_at,
            usage_count=1,
        )

    def _store(self, key: str, data: bytes, entry: CacheEntry) -> str | None:
        """Write the image and index it. Returns the image path, or None."""
        try:
            path = str(self._cache.save_image(key, data, entry.meal_description))
        except OSError:
            logger.warning("Could not store image %s, continuing uncached", key, exc_info=True)
            return None
        if self._cache_enabled:
            entry.local_path = path
            try:
                self._cache.put(key, entry)
            except OSError:
                logger.warning("Could not index image %s", key, exc_info=True)
        return path
