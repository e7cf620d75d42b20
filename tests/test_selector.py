"""Tests for meal description selection and cached image generation."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from carehome_menu.imagegen import GeneratedImage, ImageBackend
from carehome_menu.menu import ParsedMenu
from carehome_menu.parser import parse_menu
from carehome_menu.selector import (
    ImageFailed,
    ImageReady,
    MealImageSelector,
    classify,
    select_descriptions,
)
from carehome_menu.storage.cache import ImageCache, cache_key

PNG = b"\x89PNG\r\n\x1a\nfake"


class FakeBackend(ImageBackend):
    def __init__(self, data=PNG, url=None, delay=0.0, error=None):
        self.data = data
        self.url = url
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GeneratedImage(url=self.url, data=self.data)


@pytest.fixture
def cache(tmp_path):
    return ImageCache(tmp_path / "cache")


class TestClassify:
    @pytest.mark.parametrize(
        "name, key, meal_type",
        [
            ("Breakfast", "breakfast", "breakfast"),
            ("Lunch", "lunch", "lunch"),
            ("Dessert", "dessert", "dessert"),
            ("Evening Meal", "eveningMeal", "evening"),
            ("Tea", "eveningMeal", "evening"),
        ],
    )
    def test_photographed_sections(self, name, key, meal_type):
        policy = classify(name)
        assert policy.output_key == key
        assert policy.meal_type == meal_type

    @pytest.mark.parametrize(
        "name", ["Supper", "Drinks", "Available on Request", "Specials"]
    )
    def test_sections_without_images(self, name):
        assert classify(name) is None


class TestSelectDescriptions:
    def test_scenario(self):
        menu = parse_menu(
            "Breakfast\nPorridge\nOr Cornflakes\n"
            "Lunch\nRoast chicken\nOr Vegetable bake\n"
        )
        requests = select_descriptions(menu)
        assert list(requests) == ["breakfast", "lunch"]
        assert requests["breakfast"].description == "Porridge"
        assert requests["lunch"].description == "Roast chicken"

    def test_breakfast_combines_plain_items(self):
        menu = parse_menu("Breakfast\nPorridge\nOr Cornflakes\nToast\nBoiled egg")
        assert select_descriptions(menu)["breakfast"].description == (
            "Porridge, Toast, Boiled egg"
        )

    def test_lunch_first_group_only(self):
        menu = parse_menu(
            "Lunch\nRoast chicken\nRoast potatoes\nOr Vegetable bake\nChips"
        )
        assert select_descriptions(menu)["lunch"].description == (
            "Roast chicken, Roast potatoes"
        )

    def test_first_option_falls_back_to_all_items(self):
        menu = parse_menu("Dessert\nOr Jelly\nOr Ice cream")
        assert select_descriptions(menu)["dessert"].description == (
            "Or Jelly, Or Ice cream"
        )

    def test_evening_joined_with_and(self):
        menu = parse_menu("Evening Meal\nSandwiches\nSoup\nOr Omelette")
        request = select_descriptions(menu)["eveningMeal"]
        assert request.description == "Sandwiches and Soup"
        assert request.meal_type == "evening"

    def test_evening_meal_beats_tea(self):
        menu = parse_menu("Tea\nScones\nEvening Meal\nSoup")
        request = select_descriptions(menu)["eveningMeal"]
        assert request.section == "Evening Meal"
        assert request.description == "Soup"

    def test_tea_used_when_no_evening_meal(self):
        menu = parse_menu("Tea\nScones\nJam")
        assert select_descriptions(menu)["eveningMeal"].description == (
            "Scones and Jam"
        )

    def test_second_dessert(self):
        menu = ParsedMenu.from_dict({
            "sections": {
                "Dessert": {"items": [{"type": "item", "text": "Crumble"}]},
                "Dessert (Evening)": {"items": [{"type": "item", "text": "Jelly"}]},
            }
        })
        requests = select_descriptions(menu)
        assert requests["dessert"].description == "Crumble"
        assert requests["dessert2"].description == "Jelly"

    def test_empty_and_unphotographed_sections_skipped(self):
        menu = parse_menu(
            "Breakfast\nLunch\nOr Salad\nSupper\nBiscuits\nDrinks\nCoffee or squash"
        )
        requests = select_descriptions(menu)
        # Lunch has only an option line, which the fallback still describes
        assert list(requests) == ["lunch"]

    def test_output_order_is_fixed(self):
        menu = parse_menu(
            "Evening Meal\nSoup\nDessert\nJelly\nLunch\nPie\nBreakfast\nEggs"
        )
        assert list(select_descriptions(menu)) == [
            "breakfast", "lunch", "dessert", "eveningMeal",
        ]

    def test_no_sections(self):
        assert select_descriptions(ParsedMenu()) == {}


class TestMealImageSelector:
    @pytest.mark.asyncio
    async def test_generates_and_caches(self, cache):
        backend = FakeBackend()
        selector = MealImageSelector(cache, backend)

        result = await selector.ensure_image("Porridge", "breakfast")

        assert isinstance(result, ImageReady)
        assert result.cached is False
        assert result.cache_key == cache_key("porridge")
        assert result.usage_count == 1
        assert cache.image_path(result.cache_key).read_bytes() == PNG
        assert backend.prompts[0].startswith(
            "Professional food photography of a traditional care home breakfast: "
            "Porridge."
        )

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, cache):
        backend = FakeBackend()
        selector = MealImageSelector(cache, backend)

        await selector.ensure_image("Roast chicken", "lunch")
        second = await selector.ensure_image("  ROAST CHICKEN ", "lunch")

        assert len(backend.prompts) == 1
        assert second.cached is True
        assert second.usage_count == 2
        assert second.meal_description == "Roast chicken"

    @pytest.mark.asyncio
    async def test_concurrent_requests_generate_once(self, cache):
        backend = FakeBackend(delay=0.05)
        selector = MealImageSelector(cache, backend)

        results = await asyncio.gather(
            *(selector.ensure_image("Fish pie", "lunch") for _ in range(5))
        )

        assert len(backend.prompts) == 1
        assert all(r.ok for r in results)
        assert sum(1 for r in results if not r.cached) == 1

    @pytest.mark.asyncio
    async def test_stale_entry_is_regenerated(self, cache):
        backend = FakeBackend()
        selector = MealImageSelector(cache, backend)

        first = await selector.ensure_image("Soup", "evening")
        cache.image_path(first.cache_key).unlink()
        again = await selector.ensure_image("Soup", "evening")

        assert len(backend.prompts) == 2
        assert again.cached is False
        assert cache.image_path(again.cache_key).exists()

    @pytest.mark.asyncio
    async def test_backend_error_becomes_failed_result(self, cache):
        backend = FakeBackend(error=RuntimeError("content policy violation"))
        selector = MealImageSelector(cache, backend)

        result = await selector.ensure_image("Trifle", "dessert")

        assert isinstance(result, ImageFailed)
        assert result.ok is False
        assert result.error == "content policy violation"
        assert cache.lookup(cache_key("Trifle")) is None

    @pytest.mark.asyncio
    async def test_timeout_becomes_failed_result(self, cache):
        backend = FakeBackend(delay=1.0)
        selector = MealImageSelector(cache, backend, generation_timeout=0.01)

        result = await selector.ensure_image("Trifle", "dessert")

        assert isinstance(result, ImageFailed)
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_downloads_when_only_url_returned(self, cache):
        backend = FakeBackend(data=None, url="https://images.example/abc.png")
        selector = MealImageSelector(cache, backend, download_timeout=5.0)

        with patch(
            "carehome_menu.selector.download_image",
            new=AsyncMock(return_value=PNG),
        ) as download:
            result = await selector.ensure_image("Scones", "evening")

        download.assert_awaited_once_with("https://images.example/abc.png", timeout=5.0)
        assert result.url == "https://images.example/abc.png"
        assert cache.image_path(result.cache_key).read_bytes() == PNG

    @pytest.mark.asyncio
    async def test_download_failure_becomes_failed_result(self, cache):
        backend = FakeBackend(data=None, url="https://images.example/gone.png")
        selector = MealImageSelector(cache, backend)

        with patch(
            "carehome_menu.selector.download_image",
            new=AsyncMock(side_effect=OSError("connection reset")),
        ):
            result = await selector.ensure_image("Scones", "evening")

        assert result.ok is False
        assert result.error == "connection reset"

    @pytest.mark.asyncio
    async def test_cache_disabled_always_generates(self, cache):
        backend = FakeBackend()
        selector = MealImageSelector(cache, backend, cache_enabled=False)

        await selector.ensure_image("Soup", "evening")
        result = await selector.ensure_image("Soup", "evening")

        assert len(backend.prompts) == 2
        assert result.cached is False
        assert cache.list_entries() == []

    @pytest.mark.asyncio
    async def test_select_and_ensure_images(self, cache):
        backend = FakeBackend()
        selector = MealImageSelector(cache, backend)
        menu = parse_menu(
            "Breakfast\nPorridge\nOr Cornflakes\n"
            "Lunch\nRoast chicken\nOr Vegetable bake\n"
            "Supper\nBiscuits\n"
        )

        results = await selector.select_and_ensure_images(menu)

        assert list(results) == ["breakfast", "lunch"]
        assert results["breakfast"].meal_description == "Porridge"
        assert results["lunch"].meal_description == "Roast chicken"
        assert len(backend.prompts) == 2

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, cache):
        class PickyBackend(FakeBackend):
            async def generate(self, prompt):
                if "Roast chicken" in prompt:
                    raise RuntimeError("rate limited")
                return await super().generate(prompt)

        selector = MealImageSelector(cache, PickyBackend())
        menu = parse_menu("Breakfast\nPorridge\nLunch\nRoast chicken\n")

        results = await selector.select_and_ensure_images(menu)

        assert results["breakfast"].ok is True
        assert results["lunch"].ok is False
        assert results["lunch"].error == "rate limited"

    @pytest.mark.asyncio
    async def test_download_timeout_becomes_failed_result(self, cache):
        backend = FakeBackend(data=None, url="https://images.example/slow.png")
        selector = MealImageSelector(cache, backend, download_timeout=2.0)

        with patch(
            "carehome_menu.selector.download_image",
            new=AsyncMock(side_effect=asyncio.TimeoutError()),
        ):
            result = await selector.ensure_image("Scones", "evening")

        assert result.ok is False
        assert result.error == "Image download timed out after 2s"

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self, cache):
        selector = MealImageSelector(cache, FakeBackend(delay=0.01))

        for n in range(20):
            await selector.ensure_image(f"Dish {n}", "lunch")
        await asyncio.gather(
            *(selector.ensure_image("Fish pie", "lunch") for _ in range(5))
        )

        assert selector._inflight == {}
        assert selector._inflight_users == {}
