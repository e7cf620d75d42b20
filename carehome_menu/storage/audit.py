"""Append-only record of menu generations."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from .document import JsonDocument

if TYPE_CHECKING:
    from ..menu import ParsedMenu
    from ..selector import ImageResult

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100


@dataclass
class AuditImage:
    section: str
    meal_description: str | None
    cached: bool


@dataclass
class AuditLogEntry:
    id: str
    timestamp: str
    menu_date: str = ""
    generation_time_ms: int = 0
    pdf_path: str | None = None
    sections: list[str] = field(default_factory=list)
    section_count: int = 0
    image_count: int = 0
    images: list[AuditImage] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["error"] is None:
            del data["error"]
        return data


class AuditLog:
    """Most-recent-first list of generation events, capped in length."""

    def __init__(self, path: str | Path, max_entries: int = MAX_ENTRIES) -> None:
        self._doc = JsonDocument(path, default=list)
        self._max_entries = max_entries

    def log_generation(
        self,
        menu: ParsedMenu,
        images: dict[str, ImageResult],
        *,
        generation_time_ms: int,
        menu_date: str | None = None,
        pdf_path: str | Path | None = None,
    ) -> AuditLogEntry:
        """Record one generation.

        Never raises: a failure to persist is logged and the returned entry
        carries an ``error`` message instead.
        """
        now = datetime.now(timezone.utc).isoformat()
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            timestamp=now,
            menu_date=menu_date or now,
            generation_time_ms=generation_time_ms,
            pdf_path=str(pdf_path) if pdf_path else None,
            sections=list(menu.sections),
            section_count=menu.section_count,
            image_count=len(images),
            images=[
                AuditImage(
                    section=key,
                    meal_description=result.meal_description,
                    cached=bool(getattr(result, "cached", False)),
                )
                for key, result in images.items()
            ],
        )

        try:
            with self._doc.edit() as logs:
                logs.insert(0, entry.to_dict())
                del logs[self._max_entries:]
        except Exception:
            logger.exception("Failed to save audit log (non-critical)")
            entry.error = "Failed to save audit log"
            return entry

        logger.info("Audit log saved: %s", entry.id)
        return entry

    def history(self, limit: int = 10) -> list[dict]:
        return self._doc.load()[:limit]

    def statistics(self) -> dict:
        logs = self.history(limit=self._max_entries)
        total = len(logs)
        total_images = sum(log.get("image_count", 0) for log in logs)
        cached_images = sum(
            1
            for log in logs
            for img in log.get("images", [])
            if img.get("cached")
        )
        avg_seconds = (
            round(
                sum(log.get("generation_time_ms", 0) for log in logs) / total / 1000,
                2,
            )
            if total
            else 0
        )
        hit_rate = round(cached_images / total_images * 100, 1) if total_images else 0
        return {
            "total_generations": total,
            "avg_generation_time": avg_seconds,
            "total_images": total_images,
            "cached_images": cached_images,
            "cache_hit_rate": hit_rate,
        }
