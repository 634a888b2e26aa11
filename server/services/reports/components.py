"""Report component models with a discriminated union.

Every component carries a ``kind`` literal, so a cached component sequence
deserializes back into the right classes through one ``TypeAdapter``. The
union is closed: ``VALID_COMPONENTS`` lists the only classes a report
accepts, because only they are guaranteed to survive the trip through the
cache.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter

from constants import (
    BAR_CHART_KIND,
    BAR_CHART_RESULTS_KIND,
    BAR_STACK_CHART_KIND,
    CHART_KINDS,
    FORMATTING_KIND,
    LINE_CHART_KIND,
    META_KIND,
    MULTI_LINE_CHART_KIND,
    PARAMETERS_KIND,
    TABLE_KIND,
    TEXT_KIND,
)


# =============================================================================
# BASE MODELS
# =============================================================================

class BaseComponent(BaseModel):
    """Base class for all report components."""
    model_config = {"extra": "forbid"}

    kind: str

    @property
    def is_chart(self) -> bool:
        return self.kind in CHART_KINDS


# =============================================================================
# CONTENT COMPONENTS
# =============================================================================

class Text(BaseComponent):
    """Heading or paragraph. Editable texts get a key so posted values can replace them."""
    kind: Literal["text"] = TEXT_KIND
    level: Literal["h1", "h2", "h3", "p"] = "p"
    value: str = ""
    editable: bool = False
    key: Optional[str] = None


class Table(BaseComponent):
    """Tabular data with an optional header row."""
    kind: Literal["table"] = TABLE_KIND
    title: Optional[str] = None
    columns: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    csv_export_url: Optional[str] = None

    def to_csv(self, delimiter: str = ";", line_feed: str = "\r\n") -> str:
        """Header (when present) and rows as CSV text."""
        output = io.StringIO()
        writer = csv.writer(output, delimiter=delimiter, lineterminator=line_feed)
        if self.columns:
            writer.writerow(self.columns)
        for row in self.rows:
            writer.writerow(["" if cell is None else cell for cell in row])
        return output.getvalue()


class Formatting(BaseComponent):
    """Layout directive: page break, vertical padding or text options for what follows."""
    kind: Literal["formatting"] = FORMATTING_KIND
    page_break: bool = False
    pad: Optional[float] = None
    text_options: Dict[str, Any] = Field(default_factory=dict)


class Parameters(BaseComponent):
    """Key/value list describing the options a report was run with.

    ``parent_name`` is set when the parameters come from a sub-report and
    differ from the report that shows them.
    """
    kind: Literal["parameters"] = PARAMETERS_KIND
    name: str
    params: List[Tuple[str, Any]] = Field(default_factory=list)
    parent_name: Optional[str] = None


class Meta(BaseComponent):
    """Report-level metadata for the client, at most one per report."""
    kind: Literal["meta"] = META_KIND
    data_post_url: Optional[str] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# CHART COMPONENTS
# =============================================================================

class ChartSeries(BaseModel):
    """One named data series of a chart."""
    name: str = ""
    values: List[Optional[float]] = Field(default_factory=list)


class ChartComponent(BaseComponent):
    """Fields shared by all chart kinds.

    ``key`` identifies the chart in the UI (scaling is stored per key);
    ``chart_image_key`` maps the chart to its rendered image.
    """
    title: str = ""
    labels: List[str] = Field(default_factory=list)
    series: List[ChartSeries] = Field(default_factory=list)
    y_label: Optional[str] = None
    key: Optional[str] = None
    chart_image_key: Optional[str] = None
    image_post_url: Optional[str] = None


class BarChart(ChartComponent):
    kind: Literal["bar_chart"] = BAR_CHART_KIND


class BarResultsChart(ChartComponent):
    """Bar chart of result counts (passed / failed / ...) per label."""
    kind: Literal["bar_chart_results"] = BAR_CHART_RESULTS_KIND


class BarStackChart(ChartComponent):
    kind: Literal["bar_stack_chart"] = BAR_STACK_CHART_KIND


class LineChart(ChartComponent):
    kind: Literal["line_chart"] = LINE_CHART_KIND


class MultiLineChart(ChartComponent):
    kind: Literal["multi_line_chart"] = MULTI_LINE_CHART_KIND


# =============================================================================
# REGISTRY
# =============================================================================

VALID_COMPONENTS: Tuple[type, ...] = (
    Text,
    Table,
    Formatting,
    Parameters,
    Meta,
    BarChart,
    BarResultsChart,
    BarStackChart,
    LineChart,
    MultiLineChart,
)

ReportComponent = Annotated[
    Union[
        Text,
        Table,
        Formatting,
        Parameters,
        Meta,
        BarChart,
        BarResultsChart,
        BarStackChart,
        LineChart,
        MultiLineChart,
    ],
    Field(discriminator="kind"),
]

_component_list_adapter = TypeAdapter(List[ReportComponent])


def is_valid_component(component: Any) -> bool:
    """Exact class check; subclasses would not deserialize as themselves."""
    return type(component) in VALID_COMPONENTS


def serialize_components(components: List[BaseComponent]) -> List[Dict[str, Any]]:
    """JSON-compatible form of a component sequence, as stored in the cache."""
    return _component_list_adapter.dump_python(components, mode="json")


def deserialize_components(payload: List[Dict[str, Any]]) -> List[BaseComponent]:
    """Inverse of :func:`serialize_components`."""
    return _component_list_adapter.validate_python(payload)


def create_chart_image_key(cache_key: str, index: int) -> str:
    """Key under which the rendered image of the chart at ``index`` is stored."""
    return f"{cache_key}_{index}"
