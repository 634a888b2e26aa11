"""Report engine package.

Reports are subclasses of ``Report`` that build an ordered list of
components in ``do_query``:

    @register_report
    class ProjectSummaryReport(Report):
        name = "Project summary"

        async def do_query(self):
            self.h1("Summary")
            self.t([["passed", 12], ["failed", 3]], columns=["result", "count"])

The result is cached per class and options and exported as JSON, CSV, PDF
or XLSX.
"""

from .exceptions import (
    ReportError,
    InvalidComponentError,
    TableIndexError,
    UnmatchedFieldError,
    ReportNotLoadedError,
    UnknownReportError,
)
from .components import (
    BaseComponent,
    Text,
    Table,
    Formatting,
    Parameters,
    Meta,
    ChartSeries,
    ChartComponent,
    BarChart,
    BarResultsChart,
    BarStackChart,
    LineChart,
    MultiLineChart,
    VALID_COMPONENTS,
    ReportComponent,
    is_valid_component,
    serialize_components,
    deserialize_components,
    create_chart_image_key,
)
from .collections import TableList, ChartList
from .pdf import PdfOptions, PdfRenderer
from .spreadsheet import SpreadsheetRenderer
from .base import Report, ReportState, EditableFieldStore, snake_case
from .registry import ReportRegistry, registry, register_report
from .service import ReportService

__all__ = [
    # Exceptions
    "ReportError",
    "InvalidComponentError",
    "TableIndexError",
    "UnmatchedFieldError",
    "ReportNotLoadedError",
    "UnknownReportError",
    # Components
    "BaseComponent",
    "Text",
    "Table",
    "Formatting",
    "Parameters",
    "Meta",
    "ChartSeries",
    "ChartComponent",
    "BarChart",
    "BarResultsChart",
    "BarStackChart",
    "LineChart",
    "MultiLineChart",
    "VALID_COMPONENTS",
    "ReportComponent",
    "is_valid_component",
    "serialize_components",
    "deserialize_components",
    "create_chart_image_key",
    # Views and renderers
    "TableList",
    "ChartList",
    "PdfOptions",
    "PdfRenderer",
    "SpreadsheetRenderer",
    # Reports
    "Report",
    "ReportState",
    "EditableFieldStore",
    "snake_case",
    "ReportRegistry",
    "registry",
    "register_report",
    "ReportService",
]
