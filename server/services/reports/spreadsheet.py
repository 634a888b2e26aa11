"""XLSX rendering of report components with openpyxl."""

import io
import re
from typing import Any, List

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from .components import BaseComponent, ChartComponent, Parameters, Table, Text

INVALID_SHEET_CHARS = re.compile(r"[\\/*?:\[\]]")
HEADING_SIZES = {"h1": 16, "h2": 14, "h3": 12}
HEADER_FILL = PatternFill(start_color="F8F9FA", end_color="F8F9FA", fill_type="solid")


class SpreadsheetRenderer:
    """Writes a report onto a single worksheet, one block per component.

    Headings and paragraphs take one row, tables and chart data a header row
    plus their rows, followed by a blank separator row.
    """

    def __init__(self, sheet_title: str = "Report"):
        self.sheet_title = sheet_title

    def render(self, title: str, components: List[BaseComponent]) -> bytes:
        wb = Workbook()
        ws = wb.active
        # Excel: at most 31 characters, no \ / * ? : [ ]
        ws.title = INVALID_SHEET_CHARS.sub("", self.sheet_title)[:31] or "Report"

        ws.append([title])
        ws.cell(row=1, column=1).font = Font(bold=True, size=18)
        ws.append([])

        widths: List[int] = []
        for component in components:
            if isinstance(component, Text):
                ws.append([component.value])
                if component.level in HEADING_SIZES:
                    ws.cell(row=ws.max_row, column=1).font = Font(bold=True, size=HEADING_SIZES[component.level])
            elif isinstance(component, Table):
                if component.title:
                    self._append_heading(ws, component.title)
                self._append_block(ws, component.columns, component.rows, widths)
            elif isinstance(component, Parameters):
                for key, value in component.params:
                    ws.append([str(key), self._cell(value)])
                    ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
                ws.append([])
            elif isinstance(component, ChartComponent):
                self._append_heading(ws, component.title)
                header = [component.y_label or ""] + [s.name for s in component.series]
                rows = [
                    [label] + [s.values[i] if i < len(s.values) else None for s in component.series]
                    for i, label in enumerate(component.labels)
                ]
                self._append_block(ws, header, rows, widths)
            # Formatting and Meta have no spreadsheet representation

        for index, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(index)].width = min(max(width + 2, 10), 60)

        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def _append_heading(ws, text: str) -> None:
        ws.append([text])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True, size=12)

    def _append_block(self, ws, header: List[Any], rows: List[List[Any]], widths: List[int]) -> None:
        if header:
            ws.append([str(h) for h in header])
            for col in range(1, len(header) + 1):
                cell = ws.cell(row=ws.max_row, column=col)
                cell.font = Font(bold=True)
                cell.fill = HEADER_FILL
            self._track_widths(widths, header)
        for row in rows:
            values = [self._cell(v) for v in row]
            ws.append(values)
            self._track_widths(widths, values)
        ws.append([])

    @staticmethod
    def _track_widths(widths: List[int], values: List[Any]) -> None:
        for index, value in enumerate(values):
            length = len(str(value)) if value is not None else 0
            if index >= len(widths):
                widths.append(length)
            elif length > widths[index]:
                widths[index] = length

    @staticmethod
    def _cell(value: Any) -> Any:
        """openpyxl accepts numbers, strings, booleans and dates; anything else becomes text."""
        if value is None or isinstance(value, (int, float, str, bool)):
            return value
        return str(value)
