"""
HTML to PDF rendering for quotations authored in the rich-text editor.

The editor produces simple block HTML (headings, paragraphs, lists, tables).
Blocks are mapped onto reportlab platypus flowables; inline bold, italic and
underline are kept, everything else is reduced to text.
"""
import io
from html import escape
from html.parser import HTMLParser
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, ListFlowable, ListItem
)

from quotereview.core.errors import DependencyFailure
from quotereview.core.logging import get_logger

logger = get_logger(__name__)

_HEADINGS = {"h1": "Heading1", "h2": "Heading2", "h3": "Heading3",
             "h4": "Heading4", "h5": "Heading5", "h6": "Heading6"}
_INLINE = {"b": "b", "strong": "b", "i": "i", "em": "i", "u": "u"}
_BLOCKS = {"p", "div", "blockquote", "pre"} | set(_HEADINGS)


class _EditorHTMLParser(HTMLParser):
    """Collects (kind, payload) blocks from editor HTML."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.blocks: List[Tuple[str, object]] = []
        self._text: List[str] = []
        self._style = "BodyText"
        self._list_items: Optional[List[str]] = None
        self._ordered = False
        self._rows: Optional[List[List[str]]] = None
        self._row: Optional[List[str]] = None
        self._in_cell = False

    def _flush(self):
        markup = "".join(self._text).strip()
        self._text = []
        if not markup:
            return
        if self._in_cell and self._row is not None:
            self._row.append(markup)
        elif self._list_items is not None:
            self._list_items.append(markup)
        else:
            self.blocks.append(("paragraph", (self._style, markup)))

    def handle_starttag(self, tag, attrs):
        if tag in _BLOCKS:
            self._flush()
            self._style = _HEADINGS.get(tag, "BodyText")
        elif tag in _INLINE:
            self._text.append(f"<{_INLINE[tag]}>")
        elif tag == "br":
            self._text.append("<br/>")
        elif tag in ("ul", "ol"):
            self._flush()
            self._list_items = []
            self._ordered = tag == "ol"
        elif tag == "li":
            self._flush()
        elif tag == "table":
            self._flush()
            self._rows = []
        elif tag == "tr":
            self._row = []
        elif tag in ("td", "th"):
            self._flush()
            self._in_cell = True

    def handle_endtag(self, tag):
        if tag in _BLOCKS:
            self._flush()
            self._style = "BodyText"
        elif tag in _INLINE:
            self._text.append(f"</{_INLINE[tag]}>")
        elif tag == "li":
            self._flush()
        elif tag in ("ul", "ol"):
            self._flush()
            if self._list_items:
                self.blocks.append(("list", (self._ordered, self._list_items)))
            self._list_items = None
        elif tag in ("td", "th"):
            before = len(self._row) if self._row is not None else 0
            self._flush()
            if self._row is not None and len(self._row) == before:
                self._row.append("")
            self._in_cell = False
        elif tag == "tr":
            if self._rows is not None and self._row:
                self._rows.append(self._row)
            self._row = None
        elif tag == "table":
            if self._rows:
                self.blocks.append(("table", self._rows))
            self._rows = None

    def handle_data(self, data):
        self._text.append(escape(data))

    def close(self):
        super().close()
        self._flush()


def _build_story(html_content: str) -> list:
    parser = _EditorHTMLParser()
    parser.feed(html_content)
    parser.close()

    styles = getSampleStyleSheet()
    cell_style = ParagraphStyle("Cell", parent=styles["BodyText"], fontSize=9, leading=11)
    story = []
    for kind, payload in parser.blocks:
        if kind == "paragraph":
            style_name, markup = payload
            story.append(Paragraph(markup, styles[style_name]))
        elif kind == "list":
            ordered, items = payload
            story.append(ListFlowable(
                [ListItem(Paragraph(item, styles["BodyText"])) for item in items],
                bulletType="1" if ordered else "bullet",
            ))
        elif kind == "table":
            width = max(len(r) for r in payload)
            rows = [[Paragraph(c, cell_style) for c in r] + [""] * (width - len(r)) for r in payload]
            table = Table(rows, repeatRows=1)
            table.setStyle(TableStyle([
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#dddddd")),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f2f2f2")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]))
            story.append(table)
        story.append(Spacer(1, 4 * mm))
    return story


def render_pdf_from_html(html_content: str) -> bytes:
    """Render editor HTML to A4 PDF bytes. Raises DependencyFailure on any error."""
    buffer = io.BytesIO()
    try:
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            leftMargin=15 * mm,
            rightMargin=15 * mm,
        )
        story = _build_story(html_content or "")
        if not story:
            story = [Spacer(1, 1)]
        doc.build(story)
    except Exception as e:
        logger.error(f"Error generating PDF from HTML: {e}")
        raise DependencyFailure("Failed to generate PDF from content", {"error": str(e)})
    return buffer.getvalue()
