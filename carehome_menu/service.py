"""Request-level orchestration: OCR → parse → validate → images → PDF → audit."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from .config import AppConfig
from .imagegen import ImageBackend, create_image_backend
from .menu import ParsedMenu
from .parser import parse_menu
from .pdf import RenderedPDF, generate_pdf
from .selector import ImageResult, MealImageSelector
from .storage import AuditLog, AuditLogEntry, ImageCache
from .validator import ValidationReport, ValidationRules, validate_menu
from .vision import OCRError, VisionBackend, create_backend

logger = logging.getLogger(__name__)


class MenuInputError(ValueError):
    """The request carried no usable menu content."""


class NoMenuTextError(MenuInputError):
    """OCR succeeded but found no text in the uploaded image."""


@dataclass
class Extraction:
    text: str
    menu: ParsedMenu
    report: ValidationReport

    def to_dict(self) -> dict:
        return {
            "extracted_text": self.text,
            "parsed_menu": self.menu.to_dict(),
            "validation": self.report.to_dict(),
        }


@dataclass
class Generation:
    pdf: RenderedPDF
    images: dict[str, ImageResult] = field(default_factory=dict)
    audit_entry: AuditLogEntry | None = None
    generation_time: float = 0.0

    def to_dict(self) -> dict:
        return {
            "pdf": {
                **self.pdf.to_dict(),
                "download_url": f"/api/files/outputs/{self.pdf.filename}",
            },
            "images": {k: v.to_dict() for k, v in self.images.items()},
            "audit_log": (
                {"id": self.audit_entry.id, "timestamp": self.audit_entry.timestamp}
                if self.audit_entry
                else None
            ),
            "generation_time": round(self.generation_time, 2),
        }


class MenuService:
    """Entry point shared by the HTTP API and the CLI.

    Backends are created lazily from the config so that text-only use never
    needs API keys.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        vision: VisionBackend | None = None,
        images: ImageBackend | None = None,
        cache: ImageCache | None = None,
        audit: AuditLog | None = None,
    ) -> None:
        self._config = config
        self._vision = vision
        self._images = images
        self._selector: MealImageSelector | None = None
        self.cache = cache or ImageCache(config.storage.cache_dir)
        self.audit = audit or AuditLog(config.storage.audit_path)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def selector(self) -> MealImageSelector:
        if self._selector is None:
            if self._images is None:
                self._images = create_image_backend(self._config)
            self._selector = MealImageSelector(
                self.cache,
                self._images,
                cache_enabled=self._config.images.cache_enabled,
                generation_timeout=self._config.images.generation_timeout,
                download_timeout=self._config.images.download_timeout,
            )
        return self._selector

    def parse(self, text: str) -> ParsedMenu:
        return parse_menu(text, repeated_sections=self._config.menu.repeated_sections)

    def validate(self, menu: ParsedMenu) -> ValidationReport:
        cfg = self._config.menu
        return validate_menu(
            menu,
            cfg.required_sections,
            rules=ValidationRules(
                warn_on_empty_sections=cfg.warn_on_empty_sections,
                allow_unknown_sections=cfg.allow_unknown_sections,
                min_items_per_section=cfg.min_items_per_section,
                known_sections=[*cfg.required_sections, *cfg.optional_sections],
            ),
        )

    def validate_text(self, text: str | None) -> Extraction:
        if not text or not text.strip():
            raise MenuInputError("menu_text is required")
        text = text.strip()
        menu = self.parse(text)
        report = self.validate(menu)
        logger.info(
            "Validation %s: %d sections, %d items",
            "passed" if report.valid else "failed",
            report.section_count,
            report.total_items,
        )
        return Extraction(text=text, menu=menu, report=report)

    async def extract(
        self, *, image_path: str | Path | None = None, text: str | None = None
    ) -> Extraction:
        """Read menu text from a photo (OCR) or pasted text, then parse and validate.

        Raises:
            MenuInputError: If neither an image nor non-blank text is given.
            NoMenuTextError: If the image contains no readable text.
            OCRError: If the vision backend fails.
        """
        if image_path is not None:
            text = await self.read_image(image_path)
            if not text or not text.strip():
                raise NoMenuTextError("No menu text found in image")
        elif not text or not text.strip():
            raise MenuInputError("Either a menu image or menu text is required")
        return self.validate_text(text)

    async def read_image(self, image_path: str | Path) -> str:
        if self._vision is None:
            self._vision = create_backend(self._config)
        logger.info("Running OCR on %s", image_path)
        try:
            text = await self._vision.extract_menu_text(str(image_path))
        except Exception as e:
            logger.exception("OCR extraction failed")
            raise OCRError(f"OCR extraction failed: {e}") from e
        logger.info("OCR extracted %d characters", len(text))
        return text

    async def generate(
        self, menu: ParsedMenu, *, menu_date: str | None = None
    ) -> Generation:
        """Generate meal images, render the PDF and record the run."""
        started = time.monotonic()

        images = await self.selector.select_and_ensure_images(menu)
        failed = [k for k, v in images.items() if not v.ok]
        logger.info(
            "Images ready: %d (%d failed)", len(images) - len(failed), len(failed)
        )

        pdf = await asyncio.to_thread(
            generate_pdf,
            menu,
            images,
            self._config.storage.output_dir,
            care_home_name=self._config.menu.care_home_name,
            menu_date=menu_date,
        )
        logger.info("PDF saved: %s", pdf.path)

        elapsed = time.monotonic() - started
        entry = await asyncio.to_thread(
            self.audit.log_generation,
            menu,
            images,
            generation_time_ms=int(elapsed * 1000),
            menu_date=menu_date,
            pdf_path=pdf.path,
        )
        return Generation(
            pdf=pdf, images=images, audit_entry=entry, generation_time=elapsed
        )

    def history(self, limit: int = 10) -> list[dict]:
        return self.audit.history(limit)

    def statistics(self) -> dict:
        return self.audit.statistics()
