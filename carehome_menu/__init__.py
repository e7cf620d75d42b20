"""Care home menu to illustrated PDF generator."""

from .config import (
    AppConfig,
    ImageConfig,
    MenuConfig,
    ServerConfig,
    StorageConfig,
    VisionConfig,
    load_config,
)
from .menu import Item, ParsedMenu, Section
from .parser import detect_section, parse_items, parse_menu
from .selector import (
    ImageFailed,
    ImageReady,
    MealImageSelector,
    classify,
    select_descriptions,
)
from .service import MenuInputError, MenuService
from .validator import ValidationReport, ValidationRules, validate_menu
from .vision import OCRError

__all__ = [
    "AppConfig",
    "StorageConfig",
    "VisionConfig",
    "ImageConfig",
    "MenuConfig",
    "ServerConfig",
    "load_config",
    "Item",
    "Section",
    "ParsedMenu",
    "parse_menu",
    "detect_section",
    "parse_items",
    "ValidationReport",
    "ValidationRules",
    "validate_menu",
    "classify",
    "select_descriptions",
    "ImageReady",
    "ImageFailed",
    "MealImageSelector",
    "MenuService",
    "MenuInputError",
    "OCRError",
]
