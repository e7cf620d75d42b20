"""TOML configuration loader for the menu service."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .parser import REPEAT_MODES

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

_DEFAULT_ROOT = "~/.local/share/carehome-menu"
_SERVERLESS_ROOT = "/tmp"


@dataclass
class StorageConfig:
    root_dir: str = _DEFAULT_ROOT

    @property
    def root(self) -> Path:
        return Path(self.root_dir).expanduser()

    @property
    def upload_dir(self) -> Path:
        return self.root / "uploads"

    @property
    def output_dir(self) -> Path:
        return self.root / "outputs"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def audit_path(self) -> Path:
        return self.log_dir / "audit.json"


@dataclass
class OpenAIVisionConfig:
    api_key: str = ""
    model: str = "gpt-4o"


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class VisionConfig:
    backend: str = "openai"
    openai: OpenAIVisionConfig = field(default_factory=OpenAIVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)


@dataclass
class OpenAIImageConfig:
    api_key: str = ""
    model: str = "dall-e-3"
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "natural"


@dataclass
class ImageConfig:
    backend: str = "openai"
    cache_enabled: bool = True
    download_timeout: float = 30.0
    generation_timeout: float = 150.0
    openai: OpenAIImageConfig = field(default_factory=OpenAIImageConfig)


@dataclass
class MenuConfig:
    care_home_name: str = "Chichester Court Care Home"
    required_sections: list[str] = field(default_factory=lambda: [
        "Breakfast",
        "Lunch",
        "Dessert",
        "Evening Meal",
    ])
    optional_sections: list[str] = field(default_factory=lambda: [
        "Tea",
        "Supper",
        "Drinks",
        "Available on Request",
    ])
    # overwrite | append
    repeated_sections: str = "overwrite"
    warn_on_empty_sections: bool = True
    allow_unknown_sections: bool = True
    min_items_per_section: int = 0

    def __post_init__(self) -> None:
        if self.repeated_sections not in REPEAT_MODES:
            raise ValueError(
                f"Unknown repeated_sections mode: {self.repeated_sections!r} "
                f"(choose from: {', '.join(REPEAT_MODES)})"
            )


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    max_upload_mb: int = 10


@dataclass
class AppConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    menu: MenuConfig = field(default_factory=MenuConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys and the care home name can be overridden via environment
    variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    sto = raw.get("storage", {})
    vis = raw.get("vision", {})
    img = raw.get("images", {})
    mnu = raw.get("menu", {})
    srv = raw.get("server", {})

    openai_vis = vis.get("openai", {})
    claude_vis = vis.get("claude", {})
    gemini_vis = vis.get("gemini", {})
    openai_img = img.get("openai", {})

    # Resolve API keys: config file → environment variable
    openai_env = os.environ.get("OPENAI_API_KEY", "")
    openai_vision_key = openai_vis.get("api_key", "") or openai_env
    openai_image_key = openai_img.get("api_key", "") or openai_env
    claude_api_key = claude_vis.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    gemini_api_key = gemini_vis.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )

    # Serverless hosts only allow writes under /tmp
    default_root = _SERVERLESS_ROOT if os.environ.get("VERCEL") else _DEFAULT_ROOT

    menu_defaults = MenuConfig()
    care_home_name = os.environ.get("CARE_HOME_NAME", "") or mnu.get(
        "care_home_name", menu_defaults.care_home_name
    )

    return AppConfig(
        storage=StorageConfig(
            root_dir=sto.get("root_dir", default_root),
        ),
        vision=VisionConfig(
            backend=vis.get("backend", "openai"),
            openai=OpenAIVisionConfig(
                api_key=openai_vision_key,
                model=openai_vis.get("model", "gpt-4o"),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_vis.get("model", "claude-sonnet-4-5-20250929"),
            ),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_vis.get("model", "gemini-2.0-flash"),
            ),
        ),
        images=ImageConfig(
            backend=img.get("backend", "openai"),
            cache_enabled=img.get("cache_enabled", True),
            download_timeout=img.get("download_timeout", 30.0),
            generation_timeout=img.get("generation_timeout", 150.0),
            openai=OpenAIImageConfig(
                api_key=openai_image_key,
                model=openai_img.get("model", "dall-e-3"),
                size=openai_img.get("size", "1024x1024"),
                quality=openai_img.get("quality", "standard"),
                style=openai_img.get("style", "natural"),
            ),
        ),
        menu=MenuConfig(
            care_home_name=care_home_name,
            required_sections=mnu.get(
                "required_sections", menu_defaults.required_sections
            ),
            optional_sections=mnu.get(
                "optional_sections", menu_defaults.optional_sections
            ),
            repeated_sections=mnu.get("repeated_sections", "overwrite"),
            warn_on_empty_sections=mnu.get("warn_on_empty_sections", True),
            allow_unknown_sections=mnu.get("allow_unknown_sections", True),
            min_items_per_section=mnu.get("min_items_per_section", 0),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8000),
            max_upload_mb=srv.get("max_upload_mb", 10),
        ),
    )
