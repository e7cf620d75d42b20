"""Turn OCR output or pasted menu text into a ParsedMenu."""

from __future__ import annotations

import re

from .menu import ITEM, OPTION, Item, ParsedMenu, Section

# Only the first few lines can carry the care home name / week line
_HEADER_WINDOW = 3
_HEADER_MARKERS = ("Care Home", "Menu", "Week")

# Tried in order, first match wins
_SECTION_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"^breakfast", re.IGNORECASE), "Breakfast"),
    (re.compile(r"^lunch", re.IGNORECASE), "Lunch"),
    (re.compile(r"^tea\b", re.IGNORECASE), "Tea"),
    (re.compile(r"^evening meal", re.IGNORECASE), "Evening Meal"),
    (re.compile(r"^dessert", re.IGNORECASE), "Dessert"),
    (re.compile(r"^supper", re.IGNORECASE), "Supper"),
    (re.compile(r"^drinks", re.IGNORECASE), "Drinks"),
    (re.compile(r"available.*request", re.IGNORECASE), "Available on Request"),
]

_SEPARATOR = re.compile(r"^[-~=]+$")
_OPTION_PREFIX = re.compile(r"^(or|alternative|also)\b", re.IGNORECASE)

REPEAT_MODES = ("overwrite", "append")


def detect_section(line: str) -> str | None:
    """Return the canonical section name if *line* is a section header."""
    for pattern, name in _SECTION_PATTERNS:
        if pattern.search(line):
            return name
    return None


def parse_items(lines: list[str]) -> list[Item]:
    """Classify section lines as plain items or alternative options."""
    items: list[Item] = []
    for line in lines:
        text = line.strip()
        if not text or _SEPARATOR.match(text):
            continue
        kind = OPTION if _OPTION_PREFIX.match(text) else ITEM
        items.append(Item(kind=kind, text=text))
    return items


def _build_section(name: str, lines: list[str]) -> Section:
    return Section(
        title=name,
        content="\n".join(lines).strip(),
        items=parse_items(lines),
    )


def parse_menu(raw_text: str, *, repeated_sections: str = "overwrite") -> ParsedMenu:
    """Parse raw menu text into header and ordered sections.

    Never fails on malformed text: anything unrecognisable is dropped and an
    empty ``sections`` mapping is a valid result.

    Args:
        raw_text: Menu text with any line endings.
        repeated_sections: ``"overwrite"`` replaces a section whose header
            appears again later in the text, ``"append"`` adds the new lines
            to it.

    Raises:
        ValueError: If *repeated_sections* is not a known mode.
    """
    if repeated_sections not in REPEAT_MODES:
        raise ValueError(
            f"Unknown repeated_sections mode: {repeated_sections!r} "
            f"(choose from {', '.join(REPEAT_MODES)})"
        )

    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [l.strip() for l in text.split("\n")]
    lines = [l for l in lines if l]

    menu = ParsedMenu()
    seen_lines: dict[str, list[str]] = {}
    current: str | None = None
    buffer: list[str] = []

    def close_section() -> None:
        if current is None:
            return
        if repeated_sections == "append" and current in seen_lines:
            merged = seen_lines[current] + buffer
        else:
            merged = list(buffer)
        seen_lines[current] = merged
        menu.sections[current] = _build_section(current, merged)

    for i, line in enumerate(lines):
        if i < _HEADER_WINDOW and any(m in line for m in _HEADER_MARKERS):
            menu.header = f"{menu.header} {line}" if menu.header else line
            continue

        name = detect_section(line)
        if name is not None:
            close_section()
            current = name
            buffer = []
        elif current is not None:
            buffer.append(line)

    close_section()
    return menu
