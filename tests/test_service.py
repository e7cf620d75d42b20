"""Tests for the menu service orchestration."""

import threading
from unittest.mock import AsyncMock, patch

import pytest

from carehome_menu.config import AppConfig, StorageConfig
from carehome_menu.imagegen import GeneratedImage
from carehome_menu.menu import ParsedMenu
from carehome_menu.pdf import generate_pdf
from carehome_menu.service import MenuInputError, MenuService, NoMenuTextError
from carehome_menu.vision import OCRError

MENU_TEXT = """\
Chichester Court Care Home
Breakfast
Porridge
Or Cornflakes
Lunch
Roast chicken
Or Vegetable bake
Dessert
Apple crumble
Evening Meal
Tomato soup
Sandwiches
"""


def _service(tmp_path, vision=None, images=None) -> MenuService:
    config = AppConfig(storage=StorageConfig(root_dir=str(tmp_path)))
    if images is None:
        images = AsyncMock()
        images.generate = AsyncMock(return_value=GeneratedImage(data=b"png"))
    return MenuService(config, vision=vision, images=images)


class TestValidateText:
    def test_valid_menu(self, tmp_path):
        result = _service(tmp_path).validate_text(MENU_TEXT)
        assert result.report.valid is True
        assert result.menu.header == "Chichester Court Care Home"
        assert result.text == MENU_TEXT.strip()

    def test_blank_text_rejected(self, tmp_path):
        service = _service(tmp_path)
        for text in (None, "", "   \n"):
            with pytest.raises(MenuInputError):
                service.validate_text(text)

    def test_config_rules_applied(self, tmp_path):
        service = _service(tmp_path)
        service.config.menu.required_sections = ["Supper"]
        service.config.menu.allow_unknown_sections = False
        result = service.validate_text("Lunch\nSoup\nSpecials\nCurry")
        # "Specials" is not a recognised header so it never becomes a section
        assert result.report.errors == ["Missing required section: Supper"]

    def test_optional_sections_are_expected(self, tmp_path):
        service = _service(tmp_path)
        service.config.menu.required_sections = ["Lunch"]
        service.config.menu.optional_sections = ["Specials"]
        menu = ParsedMenu.from_dict(
            {"sections": {
                "Lunch": {"items": [{"type": "item", "text": "Soup"}]},
                "Specials": {"items": [{"type": "item", "text": "Curry"}]},
            }}
        )
        report = service.validate(menu)
        assert report.warnings == []
        assert report.valid is True

    def test_to_dict(self, tmp_path):
        data = _service(tmp_path).validate_text("Lunch\nSoup").to_dict()
        assert data["extracted_text"] == "Lunch\nSoup"
        assert data["parsed_menu"]["sections"]["Lunch"]["items"] == [
            {"type": "item", "text": "Soup"}
        ]
        assert data["validation"]["valid"] is False


class TestExtract:
    @pytest.mark.asyncio
    async def test_from_text(self, tmp_path):
        result = await _service(tmp_path).extract(text=MENU_TEXT)
        assert list(result.menu.sections) == [
            "Breakfast", "Lunch", "Dessert", "Evening Meal",
        ]

    @pytest.mark.asyncio
    async def test_requires_input(self, tmp_path):
        with pytest.raises(MenuInputError):
            await _service(tmp_path).extract()

    @pytest.mark.asyncio
    async def test_from_image(self, tmp_path):
        vision = AsyncMock()
        vision.extract_menu_text = AsyncMock(return_value=MENU_TEXT)
        service = _service(tmp_path, vision=vision)

        result = await service.extract(image_path=tmp_path / "menu.jpg")

        vision.extract_menu_text.assert_awaited_once_with(str(tmp_path / "menu.jpg"))
        assert result.report.valid is True

    @pytest.mark.asyncio
    async def test_ocr_failure(self, tmp_path):
        vision = AsyncMock()
        vision.extract_menu_text = AsyncMock(side_effect=RuntimeError("quota"))
        service = _service(tmp_path, vision=vision)

        with pytest.raises(OCRError, match="OCR extraction failed: quota"):
            await service.extract(image_path=tmp_path / "menu.jpg")

    @pytest.mark.asyncio
    async def test_ocr_returns_blank(self, tmp_path):
        vision = AsyncMock()
        vision.extract_menu_text = AsyncMock(return_value="   ")
        service = _service(tmp_path, vision=vision)

        with pytest.raises(NoMenuTextError, match="No menu text found in image"):
            await service.extract(image_path=tmp_path / "menu.jpg")


class TestGenerate:
    @pytest.fixture(autouse=True)
    def _need_reportlab(self):
        pytest.importorskip("reportlab")

    @pytest.mark.asyncio
    async def test_generate(self, tmp_path):
        service = _service(tmp_path)
        menu = service.parse(MENU_TEXT)

        result = await service.generate(menu, menu_date="2026-10-19")

        assert result.pdf.path.parent == tmp_path / "outputs"
        assert result.pdf.path.read_bytes()[:4] == b"%PDF"
        assert list(result.images) == ["breakfast", "lunch", "dessert", "eveningMeal"]
        assert all(i.ok for i in result.images.values())
        assert result.images["eveningMeal"].meal_description == (
            "Tomato soup and Sandwiches"
        )

        [logged] = service.history()
        assert logged["id"] == result.audit_entry.id
        assert logged["menu_date"] == "2026-10-19"
        assert logged["image_count"] == 4

    @pytest.mark.asyncio
    async def test_second_generation_uses_cache(self, tmp_path):
        service = _service(tmp_path)
        menu = service.parse(MENU_TEXT)

        await service.generate(menu)
        result = await service.generate(menu)

        assert service._images.generate.await_count == 4
        assert all(i.cached for i in result.images.values())
        stats = service.statistics()
        assert stats["total_generations"] == 2
        assert stats["cache_hit_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_image_failure_still_renders(self, tmp_path):
        images = AsyncMock()
        images.generate = AsyncMock(side_effect=RuntimeError("rate limited"))
        service = _service(tmp_path, images=images)

        result = await service.generate(service.parse(MENU_TEXT))

        assert result.pdf.path.exists()
        assert not any(i.ok for i in result.images.values())
        assert result.images["lunch"].error == "rate limited"

    @pytest.mark.asyncio
    async def test_to_dict(self, tmp_path):
        service = _service(tmp_path)
        result = await service.generate(service.parse("Lunch\nSoup"))

        data = result.to_dict()
        assert data["pdf"]["download_url"] == (
            f"/api/files/outputs/{result.pdf.filename}"
        )
        assert data["images"]["lunch"]["ok"] is True
        assert data["audit_log"]["id"] == result.audit_entry.id
        assert data["generation_time"] >= 0

    @pytest.mark.asyncio
    async def test_pdf_rendered_off_event_loop(self, tmp_path):
        service = _service(tmp_path)
        threads = []

        def render(*args, **kwargs):
            threads.append(threading.get_ident())
            return generate_pdf(*args, **kwargs)

        with patch("carehome_menu.service.generate_pdf", new=render):
            result = await service.generate(service.parse("Lunch\nSoup"))

        assert result.pdf.path.exists()
        assert threads and threads[0] != threading.get_ident()
