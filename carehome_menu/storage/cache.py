"""Content-addressed store of generated meal images."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from .document import JsonDocument

logger = logging.getLogger(__name__)

INDEX_FILENAME = "cache-index.json"


def normalize_description(description: str) -> str:
    return description.strip().lower()


def cache_key(description: str) -> str:
    """Return the 16-hex-digit key for a meal description."""
    normalized = normalize_description(description)
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()[:16]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CacheEntry:
    meal_description: str
    meal_type: str
    prompt: str
    generated_at: str
    usage_count: int = 1
    last_used: str = ""
    url: str | None = None
    local_path: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> CacheEntry:
        return cls(
            meal_description=data.get("meal_description", ""),
            meal_type=data.get("meal_type", ""),
            prompt=data.get("prompt", ""),
            generated_at=data.get("generated_at", ""),
            usage_count=int(data.get("usage_count") or 1),
            last_used=data.get("last_used", ""),
            url=data.get("url"),
            local_path=data.get("local_path", ""),
        )


@dataclass
class DeleteResult:
    found: bool
    deleted: bool


class ImageCache:
    """Stores one PNG and one metadata file per key plus a shared index.

    Entries live until explicitly deleted; there is no expiry.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._dir = Path(cache_dir).expanduser()
        self._index = JsonDocument(self._dir / INDEX_FILENAME, default=dict)

    @property
    def directory(self) -> Path:
        return self._dir

    def image_path(self, key: str) -> Path:
        return self._dir / f"{key}.png"

    def metadata_path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the entry for *key* and count the use, or None on a miss.

        An index entry whose image has disappeared is dropped and reported as
        a miss. Storage errors are logged and also reported as a miss.
        """
        try:
            if key not in self._index.load():
                return None
            with self._index.edit() as index:
                raw = index.get(key)
                if raw is None:
                    return None
                path = self.image_path(key)
                if not path.exists():
                    logger.info("Dropping stale cache entry %s (image missing)", key)
                    del index[key]
                    return None
                entry = CacheEntry.from_dict(raw)
                entry.usage_count += 1
                entry.last_used = _now()
                entry.local_path = str(path)
                index[key] = entry.to_dict()
                return entry
        except OSError:
            logger.warning("Cache lookup failed for %s", key, exc_info=True)
            return None

    def save_image(self, key: str, data: bytes, description: str) -> Path:
        """Write the image bytes and their metadata file."""
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self.image_path(key)
        path.write_bytes(data)
        self.metadata_path(key).write_text(
            json.dumps(
                {"description": description, "filename": path.name},
                ensure_ascii=False,
                indent=2,
            ),
            encoding="utf-8",
        )
        return path

    def put(self, key: str, entry: CacheEntry) -> None:
        """Record *entry* in the index with a fresh usage count."""
        entry.usage_count = 1
        entry.last_used = _now()
        with self._index.edit() as index:
            index[key] = entry.to_dict()

    def delete(self, key: str) -> DeleteResult:
        """Remove an entry and its files, tolerating files already gone."""
        with self._index.edit() as index:
            if key not in index:
                return DeleteResult(found=False, deleted=False)
            self.image_path(key).unlink(missing_ok=True)
            self.metadata_path(key).unlink(missing_ok=True)
            del index[key]
        logger.info("Deleted cached image %s", key)
        return DeleteResult(found=True, deleted=True)

    def clear(self) -> int:
        """Delete every entry. Returns the number actually removed."""
        deleted = 0
        for key in list(self._index.load()):
            if self.delete(key).deleted:
                deleted += 1
        return deleted

    def list_entries(self) -> list[dict]:
        index = self._index.load()
        return [
            {
                "cache_key": key,
                "meal_description": data.get("meal_description"),
                "meal_type": data.get("meal_type"),
                "usage_count": data.get("usage_count"),
                "generated_at": data.get("generated_at"),
                "last_used": data.get("last_used"),
            }
            for key, data in index.items()
        ]

    def stats(self) -> dict:
        entries = list(self._index.load().values())
        total_images = len(entries)
        total_usage = sum(e.get("usage_count") or 1 for e in entries)
        avg = round(total_usage / total_images, 2) if total_images else 0

        total_size = 0
        if self._dir.exists():
            for png in self._dir.glob("*.png"):
                try:
                    total_size += png.stat().st_size
                except OSError:
                    continue

        most_used = sorted(
            entries, key=lambda e: e.get("usage_count") or 1, reverse=True
        )[:5]

        return {
            "total_images": total_images,
            "total_usage": total_usage,
            "avg_usage_per_image": avg,
            "cache_size_mb": round(total_size / (1024 * 1024), 2),
            "most_used": [
                {
                    "meal_description": e.get("meal_description"),
                    "usage_count": e.get("usage_count"),
                    "last_used": e.get("last_used"),
                }
                for e in most_used
            ],
        }
