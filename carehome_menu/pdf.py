"""PDF rendering of a weekly menu using ReportLab."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

from .menu import ParsedMenu, Section
from .selector import ImageReady, select_descriptions

if TYPE_CHECKING:
    from .selector import ImageResult

# Display order of the main body; anything unmatched goes last
_SECTION_ORDER = ["breakfast", "lunch", "dessert", "evening", "supper"]
_FOOTER_MARKERS = ("drink", "available", "request")


@dataclass
class RenderedPDF:
    filename: str
    path: Path
    size: int
    generated_at: str

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "path": str(self.path),
            "size": self.size,
            "generated_at": self.generated_at,
        }


def format_menu_date(value: str | None) -> str:
    """Format an ISO date as e.g. ``Monday, 19 October 2026``."""
    if not value:
        d = datetime.now()
    else:
        try:
            d = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{d:%A}, {d.day} {d:%B %Y}"


def _is_footer(name: str) -> bool:
    n = name.lower()
    return any(m in n for m in _FOOTER_MARKERS)


def _order_index(name: str) -> int:
    n = name.lower()
    for i, key in enumerate(_SECTION_ORDER):
        if key in n:
            return i
    return len(_SECTION_ORDER)


def layout_sections(menu: ParsedMenu) -> tuple[list[str], list[str]]:
    """Split section names into (main body, footer), main body in display order.

    A bare "Tea" section is left out when an evening meal section exists,
    since it duplicates it.
    """
    names = list(menu.sections)
    has_evening = any("evening" in n.lower() for n in names)

    main = [
        n for n in names
        if not _is_footer(n) and not (has_evening and n.lower() == "tea")
    ]
    main.sort(key=_order_index)
    footer = [n for n in names if _is_footer(n)]
    return main, footer


def generate_pdf(
    menu: ParsedMenu,
    images: dict[str, ImageResult],
    output_dir: str | Path,
    *,
    care_home_name: str,
    menu_date: str | None = None,
) -> RenderedPDF:
    """Render a menu with its meal photographs to an A4 PDF.

    Args:
        menu: The parsed menu.
        images: Output of the image selector, keyed by output key.
        output_dir: Directory the PDF is written to (created if needed).
        care_home_name: Shown as the document title.
        menu_date: ISO date the menu applies to; today if omitted.

    Returns:
        Details of the written file.

    Raises:
        ImportError: If reportlab is not installed.
    """
    try:
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
        from reportlab.lib.units import mm
        from reportlab.platypus import (
            Image,
            Paragraph,
            SimpleDocTemplate,
            Spacer,
            Table,
            TableStyle,
        )
    except ImportError:
        raise ImportError(
            "reportlab is required: pip install reportlab"
        )

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    filename = f"menu-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.pdf"
    output_path = output_dir / filename

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=A4,
        leftMargin=8 * mm,
        rightMargin=8 * mm,
        topMargin=8 * mm,
        bottomMargin=8 * mm,
        title=f"{care_home_name} menu",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "MenuTitle",
        parent=styles["Title"],
        fontSize=22,
        leading=28,
        textColor=colors.HexColor("#2E4A62"),
    )
    subtitle_style = ParagraphStyle(
        "MenuSubtitle",
        parent=styles["Normal"],
        fontSize=12,
        leading=16,
        alignment=1,
        textColor=colors.grey,
    )
    heading_style = ParagraphStyle(
        "SectionHeading",
        parent=styles["Heading2"],
        fontSize=15,
        leading=20,
        spaceBefore=3 * mm,
        spaceAfter=2 * mm,
        textColor=colors.HexColor("#2E4A62"),
    )
    item_style = ParagraphStyle(
        "MenuItem",
        parent=styles["Normal"],
        fontSize=12,
        leading=16,
    )
    option_style = ParagraphStyle(
        "MenuOption",
        parent=item_style,
        fontName="Helvetica-Oblique",
        textColor=colors.HexColor("#555555"),
        leftIndent=4 * mm,
    )
    footer_style = ParagraphStyle(
        "MenuFooter",
        parent=styles["Normal"],
        fontSize=9,
        leading=12,
        textColor=colors.HexColor("#444444"),
    )

    def item_paragraphs(section: Section) -> list:
        if not section.items:
            return [Paragraph(escape(section.content or "No items"), item_style)]
        return [
            Paragraph(escape(item.text), option_style if item.is_option else item_style)
            for item in section.items
        ]

    # section name → image shown beside it
    section_images: dict[str, ImageReady] = {}
    for key, request in select_descriptions(menu).items():
        result = images.get(key)
        if (
            isinstance(result, ImageReady)
            and result.local_path
            and Path(result.local_path).exists()
        ):
            section_images[request.section] = result

    elements: list = [
        Paragraph(escape(care_home_name), title_style),
        Paragraph(escape(format_menu_date(menu_date)), subtitle_style),
    ]
    if menu.header:
        elements.append(Paragraph(escape(menu.header), subtitle_style))
    elements.append(Spacer(1, 5 * mm))

    section_table_style = TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
        ("BOX", (0, 0), (-1, -1), 0.5, colors.HexColor("#C9D6E3")),
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F7FAFC")),
    ])

    main, footer = layout_sections(menu)
    for name in main:
        section = menu.sections[name]
        elements.append(Paragraph(escape(name), heading_style))
        image = section_images.get(name)
        if image is not None:
            t = Table(
                [[Image(image.local_path, width=55 * mm, height=55 * mm),
                  item_paragraphs(section)]],
                colWidths=[60 * mm, 130 * mm],
            )
            t.setStyle(section_table_style)
            elements.append(t)
        else:
            elements.extend(item_paragraphs(section))
        elements.append(Spacer(1, 3 * mm))

    if footer:
        elements.append(Spacer(1, 4 * mm))
        for name in footer:
            section = menu.sections[name]
            texts = [i.text for i in section.items] or [section.content]
            line = " · ".join(escape(t) for t in texts if t)
            elements.append(Paragraph(f"<b>{escape(name)}:</b> {line}", footer_style))

    doc.build(elements)

    return RenderedPDF(
        filename=filename,
        path=output_path,
        size=output_path.stat().st_size,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
