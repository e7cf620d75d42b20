"""Structured menu document produced by the parser."""

from __future__ import annotations

from dataclasses import dataclass, field

ITEM = "item"
OPTION = "option"


@dataclass
class Item:
    kind: str  # "item" or "option"
    text: str

    @property
    def is_option(self) -> bool:
        return self.kind == OPTION

    def to_dict(self) -> dict:
        return {"type": self.kind, "text": self.text}


@dataclass
class Section:
    title: str
    content: str = ""
    items: list[Item] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class ParsedMenu:
    header: str = ""
    sections: dict[str, Section] = field(default_factory=dict)

    @property
    def section_count(self) -> int:
        return len(self.sections)

    @property
    def total_items(self) -> int:
        return sum(len(s.items) for s in self.sections.values())

    def find_section(self, name: str) -> Section | None:
        """Case-insensitive section lookup.

        An exact (case-folded) name match wins over a substring match.
        """
        wanted = name.lower()
        for key, section in self.sections.items():
            if key.lower() == wanted:
                return section
        for key, section in self.sections.items():
            if wanted in key.lower():
                return section
        return None

    def to_dict(self) -> dict:
        return {
            "header": self.header,
            "sections": {
                name: section.to_dict() for name, section in self.sections.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> ParsedMenu:
        """Rebuild a menu from its JSON form (e.g. posted back by a client)."""
        sections: dict[str, Section] = {}
        for name, raw in (data.get("sections") or {}).items():
            raw = raw or {}
            items = []
            for item in raw.get("items") or []:
                text = str(item.get("text", "")).strip()
                if not text:
                    continue
                kind = OPTION if item.get("type") == OPTION else ITEM
                items.append(Item(kind=kind, text=text))
            sections[name] = Section(
                title=raw.get("title") or name,
                content=raw.get("content", ""),
                items=items,
            )
        return cls(header=data.get("header") or "", sections=sections)
