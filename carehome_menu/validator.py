"""Structural checks on a parsed menu."""

from __future__ import annotations

from dataclasses import dataclass, field

from .menu import ParsedMenu, Section

DEFAULT_REQUIRED_SECTIONS = ["Breakfast", "Lunch", "Dessert", "Evening Meal"]

KNOWN_SECTIONS = [
    "breakfast",
    "lunch",
    "tea",
    "evening meal",
    "dessert",
    "supper",
    "drinks",
    "available on request",
]


@dataclass
class ValidationRules:
    warn_on_empty_sections: bool = True
    # When False, unknown sections are errors rather than warnings
    allow_unknown_sections: bool = True
    min_items_per_section: int = 0
    # Names that are not "unexpected"; None means KNOWN_SECTIONS
    known_sections: list[str] | None = None


@dataclass
class ValidationReport:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    section_count: int = 0
    total_items: int = 0

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "section_count": self.section_count,
            "total_items": self.total_items,
        }


@dataclass
class MealOptions:
    groups: list[list[str]]
    first_option: str | None
    all_items: list[str]


def validate_menu(
    menu: ParsedMenu,
    required_sections: list[str] | None = None,
    *,
    rules: ValidationRules | None = None,
) -> ValidationReport:
    """Check a parsed menu against the required sections.

    Findings are returned, never raised. Warnings do not affect ``valid``.
    """
    if required_sections is None:
        required_sections = DEFAULT_REQUIRED_SECTIONS
    rules = rules or ValidationRules()

    errors: list[str] = []
    warnings: list[str] = []
    names = list(menu.sections)

    for required in required_sections:
        wanted = required.lower()
        if not any(wanted in name.lower() for name in names):
            errors.append(f"Missing required section: {required}")

    for name, section in menu.sections.items():
        count = len(section.items)
        if count == 0:
            if rules.warn_on_empty_sections:
                warnings.append(f'Section "{name}" has no items')
        elif count < rules.min_items_per_section:
            warnings.append(
                f'Section "{name}" has fewer than '
                f"{rules.min_items_per_section} items"
            )

    known_sections = (
        KNOWN_SECTIONS if rules.known_sections is None else rules.known_sections
    )
    known_names = [k.lower() for k in known_sections]
    for name in names:
        normalized = name.lower()
        if any(known in normalized for known in known_names):
            continue
        message = f'Unexpected section found: "{name}"'
        if rules.allow_unknown_sections:
            warnings.append(message)
        else:
            errors.append(message)

    return ValidationReport(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        section_count=menu.section_count,
        total_items=menu.total_items,
    )


def section_options(section: Section) -> MealOptions:
    """Group one section's items into alternatives split at option lines."""
    groups: list[list[str]] = []
    group: list[str] = []
    for item in section.items:
        if item.is_option:
            if group:
                groups.append(group)
                group = []
        else:
            group.append(item.text)
    if group:
        groups.append(group)

    return MealOptions(
        groups=groups,
        first_option=", ".join(groups[0]) if groups else None,
        all_items=[i.text for i in section.items if not i.is_option],
    )


def extract_meal_options(menu: ParsedMenu) -> dict[str, MealOptions]:
    """Apply :func:`section_options` to every section of *menu*."""
    return {name: section_options(s) for name, s in menu.sections.items()}
