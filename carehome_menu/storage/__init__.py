"""File-backed persistence for the image cache and the audit log."""

from .audit import AuditImage, AuditLog, AuditLogEntry
from .cache import CacheEntry, DeleteResult, ImageCache, cache_key
from .document import JsonDocument

__all__ = [
    "AuditImage",
    "AuditLog",
    "AuditLogEntry",
    "CacheEntry",
    "DeleteResult",
    "ImageCache",
    "JsonDocument",
    "cache_key",
]
