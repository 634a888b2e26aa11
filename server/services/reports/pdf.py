"""PDF rendering of report components with ReportLab.

Charts are embedded as the images the browser posted for them; a chart
without an image falls back to a table of its series.
"""

import io
import xml.sax.saxutils as saxutils
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, LETTER, landscape, portrait
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.lib.enums import TA_CENTER
from reportlab.platypus import (
    SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image, PageBreak, KeepTogether,
)

from core.logging import get_logger
from .components import (
    BaseComponent, ChartComponent, Formatting, Parameters, Table as TableComponent, Text,
)

logger = get_logger(__name__)

PAGE_SIZES = {"A4": A4, "LETTER": LETTER}

TABLE_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#f8f9fa")),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor("#2c3e50")),
    ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, -1), 8),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
    ('TOPPADDING', (0, 0), (-1, -1), 3),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
    ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
]


class PdfOptions(BaseModel):
    """Page setup for PDF exports; reports override ``Report.pdf_options``."""
    page_layout: Literal["landscape", "portrait"] = "landscape"
    page_size: Literal["A4", "LETTER"] = "A4"
    margin_cm: float = Field(default=1.5, ge=0.5, le=5.0)
    footer_text: Optional[str] = None

    @property
    def pagesize(self):
        size = PAGE_SIZES[self.page_size]
        return landscape(size) if self.page_layout == "landscape" else portrait(size)


class PdfRenderer:
    """Builds a PDF document from an ordered component sequence."""

    def __init__(self, options: Optional[PdfOptions] = None):
        self.options = options or PdfOptions()
        self.styles = getSampleStyleSheet()
        self.styles.add(ParagraphStyle(
            name='ReportTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=0.5 * cm,
            alignment=TA_CENTER,
            textColor=colors.HexColor("#2c3e50")
        ))
        self.styles.add(ParagraphStyle(
            name='TableHeading',
            parent=self.styles['Normal'],
            fontName='Helvetica-Bold',
            fontSize=11,
            spaceAfter=0.2 * cm,
            textColor=colors.HexColor("#2c3e50")
        ))

    @property
    def frame_width(self) -> float:
        return self.options.pagesize[0] - 2 * self.options.margin_cm * cm

    def render(self, title: str, components: List[BaseComponent],
               chart_images: Optional[Dict[str, bytes]] = None) -> bytes:
        """Render ``components`` in order and return the PDF bytes."""
        chart_images = chart_images or {}
        buffer = io.BytesIO()
        margin = self.options.margin_cm * cm
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.options.pagesize,
            rightMargin=margin,
            leftMargin=margin,
            topMargin=margin,
            bottomMargin=2 * cm,
            title=title,
        )

        story: List[Any] = [Paragraph(saxutils.escape(title), self.styles['ReportTitle'])]
        text_style = self.styles['Normal']

        for component in components:
            if isinstance(component, Text):
                story.extend(self._text(component, text_style))
            elif isinstance(component, TableComponent):
                story.extend(self._table(component))
            elif isinstance(component, Parameters):
                story.extend(self._parameters(component))
            elif isinstance(component, ChartComponent):
                story.extend(self._chart(component, chart_images.get(component.chart_image_key)))
            elif isinstance(component, Formatting):
                if component.page_break:
                    story.append(PageBreak())
                if component.pad:
                    story.append(Spacer(1, component.pad))
                if component.text_options:
                    text_style = self._text_style(component.text_options)
            # Meta carries no printable content

        doc.build(story, onFirstPage=self._footer, onLaterPages=self._footer)
        return buffer.getvalue()

    def _text(self, component: Text, text_style: ParagraphStyle) -> List[Any]:
        clean = saxutils.escape(component.value).replace("\n", "<br/>")
        if component.level == "p":
            return [Paragraph(clean, text_style), Spacer(1, 0.3 * cm)]
        style = {"h1": "Heading1", "h2": "Heading2", "h3": "Heading3"}[component.level]
        return [Paragraph(clean, self.styles[style])]

    def _text_style(self, text_options: Dict[str, Any]) -> ParagraphStyle:
        """Paragraph style for text following a ``text_options`` directive."""
        base = self.styles['Normal']
        return ParagraphStyle(
            name=f"Text{id(text_options)}",
            parent=base,
            fontSize=text_options.get("size", base.fontSize),
            leading=text_options.get("leading", text_options.get("size", base.fontSize) * 1.2),
            fontName='Helvetica-Bold' if text_options.get("style") == "bold" else base.fontName,
        )

    def _table(self, component: TableComponent) -> List[Any]:
        flowables: List[Any] = []
        if component.title:
            flowables.append(Paragraph(saxutils.escape(component.title), self.styles['TableHeading']))

        data = []
        if component.columns:
            data.append([str(c) for c in component.columns])
        data.extend([self._format_val(cell) for cell in row] for row in component.rows)
        if not data:
            return flowables

        n_cols = max(len(r) for r in data)
        data = [list(r) + [""] * (n_cols - len(r)) for r in data]
        table = Table(data, hAlign='LEFT', colWidths=[self.frame_width / n_cols] * n_cols,
                      repeatRows=1 if component.columns else 0)
        table.setStyle(TableStyle(TABLE_STYLE))
        flowables.extend([table, Spacer(1, 0.6 * cm)])
        return flowables

    def _parameters(self, component: Parameters) -> List[Any]:
        if not component.params:
            return []
        data = [[str(k), self._format_val(v)] for k, v in component.params]
        table = Table(data, hAlign='LEFT')
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor("#7f8c8d")),
        ]))
        return [table, Spacer(1, 0.4 * cm)]

    def _chart(self, component: ChartComponent, image: Optional[bytes]) -> List[Any]:
        heading = Paragraph(saxutils.escape(component.title or ""), self.styles['TableHeading'])
        if image:
            img = Image(io.BytesIO(image), width=self.frame_width * 0.9,
                        height=self.frame_width * 0.45, kind='proportional')
            img.hAlign = 'CENTER'
            return [KeepTogether([heading, img]), Spacer(1, 0.5 * cm)]

        logger.debug("No image for chart, rendering data table", chart_image_key=component.chart_image_key)
        header = [component.y_label or ""] + [s.name for s in component.series]
        rows = [
            [label] + [self._format_val(s.values[i] if i < len(s.values) else None) for s in component.series]
            for i, label in enumerate(component.labels)
        ]
        fallback = TableComponent(columns=header, rows=rows)
        return [heading] + self._table(fallback)

    def _footer(self, canvas, doc):
        width = doc.pagesize[0]
        margin = self.options.margin_cm * cm
        canvas.saveState()
        canvas.setFont('Helvetica', 8)
        canvas.setStrokeColor(colors.HexColor("#e2e8f0"))
        canvas.line(margin, 1.5 * cm, width - margin, 1.5 * cm)
        canvas.drawCentredString(width / 2.0, 1 * cm, f"Page {canvas.getPageNumber()}")
        if self.options.footer_text:
            canvas.drawRightString(width - margin, 1 * cm, self.options.footer_text)
        canvas.restoreState()

    @staticmethod
    def _format_val(val: Any) -> str:
        if val is None:
            return ""
        if isinstance(val, float):
            return f"{val:.2f}" if abs(val) >= 1000 else f"{val:g}"
        if isinstance(val, Decimal):
            return f"{val:.2f}"
        return str(val)
