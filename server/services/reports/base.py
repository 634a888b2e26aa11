"""Base class for all reports.

A report is built by its ``do_query`` hook from components (headings, tables,
charts, ...) and cached under a key derived from its class and options.

Lifecycle (one instance per request):

    UNLOADED --query()--> QUERYING --do_query() ok--> LOADED
        |                     |
        |                     +--do_query() raised--> UNLOADED
        +--cache hit-------------------------------> LOADED

Every export (``to_data``, ``to_csv``, ``to_pdf``, ``to_spreadsheet``,
``as_json``) loads the report first. Once loaded, only ``update`` changes it,
and only the values of editable texts.
"""

import hashlib
import re
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

from constants import (
    CHART_KINDS,
    DEFAULT_REPORT_CACHE_TTL,
    EXPIRES_AT_SUFFIX,
    META_KIND,
    PARAMETERS_KIND,
    TABLE_KIND,
    TEXT_KIND,
)
from core.cache import CacheService
from core.logging import get_logger, log_cache_operation, log_execution_time, log_report_render
from .collections import ChartList, TableList
from .components import (
    BarChart,
    BarResultsChart,
    BarStackChart,
    BaseComponent,
    ChartSeries,
    Formatting,
    LineChart,
    Meta,
    MultiLineChart,
    Parameters,
    Table,
    Text,
    create_chart_image_key,
    deserialize_components,
    is_valid_component,
    serialize_components,
)
from .exceptions import (
    InvalidComponentError,
    ReportError,
    ReportNotLoadedError,
    TableIndexError,
    UnmatchedFieldError,
)
from .pdf import PdfOptions, PdfRenderer
from .spreadsheet import SpreadsheetRenderer

logger = get_logger(__name__)

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

SeriesInput = Union[Mapping[str, Sequence[Optional[float]]], Iterable[ChartSeries]]


def snake_case(name: str) -> str:
    """``TestRunSummaryReport`` -> ``test_run_summary_report``."""
    return _WORD_BOUNDARY.sub("_", name).lower()


class ReportState(str, Enum):
    """Load state of a report instance."""
    UNLOADED = "unloaded"
    QUERYING = "querying"
    LOADED = "loaded"


_TRANSITIONS = {
    ReportState.UNLOADED: {ReportState.QUERYING, ReportState.LOADED},
    ReportState.QUERYING: {ReportState.LOADED, ReportState.UNLOADED},
    ReportState.LOADED: {ReportState.QUERYING, ReportState.LOADED},
}


class EditableFieldStore(Protocol):
    """Lookup of persisted editable-field submissions (``core.database.Database``)."""

    async def get_latest_report_data(self, user_id: int, project_id: int,
                                     key: str) -> Optional[Dict[str, str]]:
        ...


class Report(ABC):
    """Base class for all reports.

    Subclasses set ``name``, take their options in the constructor and
    implement ``do_query`` with the builder methods (``h1``, ``text``, ``t``,
    ``bar_chart``, ...).

    Args:
        options: Options the report is run with; part of the cache key.
        cache: Cache backend. Reports without one are never cached.
        default_expires_in: Cache TTL in seconds when the class does not set
            ``expires_in``.
        expires_in: Per-instance TTL override.
        default_page_layout: PDF orientation when the class does not set
            ``page_layout``.
    """

    name: str = "Unknown"
    # Seconds; None falls back to default_expires_in, 0 disables caching
    expires_in: Optional[int] = None
    # "landscape" or "portrait"; None falls back to default_page_layout
    page_layout: Optional[str] = None

    def __init__(self, options: Optional[Mapping[str, Any]] = None, *,
                 cache: Optional[CacheService] = None,
                 default_expires_in: int = DEFAULT_REPORT_CACHE_TTL,
                 expires_in: Optional[int] = None,
                 default_page_layout: str = "landscape"):
        self.options: Dict[str, Any] = dict(options or {})
        self.cache = cache
        self.default_expires_in = default_expires_in
        self.default_page_layout = default_page_layout
        if expires_in is not None:
            self.expires_in = expires_in
        self.state = ReportState.UNLOADED
        self._data: List[BaseComponent] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.cache_key} {self.state.value}>"

    # =========================================================================
    # IDENTITY
    # =========================================================================

    @property
    def report_id(self) -> str:
        """Snake-cased class name, prefix of component keys."""
        return snake_case(type(self).__name__)

    @property
    def cache_key(self) -> str:
        """MD5 of the report id followed by the sorted option keys and values."""
        opt_str = "".join(f"{key}{self.options[key]}" for key in sorted(self.options, key=str))
        return hashlib.md5(f"{self.report_id}{opt_str}".encode("utf-8")).hexdigest()

    @property
    def ttl(self) -> int:
        return self.expires_in if self.expires_in is not None else self.default_expires_in

    @property
    def title(self) -> str:
        return self.name

    def pdf_options(self) -> PdfOptions:
        """Override for PDF page setup changes."""
        return PdfOptions(page_layout=self.page_layout or self.default_page_layout)

    # =========================================================================
    # QUERY / CACHE
    # =========================================================================

    @abstractmethod
    async def do_query(self) -> None:
        """Build the report body with the builder methods."""

    async def query(self) -> List[BaseComponent]:
        """Load the report from cache or build it (template method).

        - TTL 0 or no cache: always build.
        - TTL-aware backend: one fetch-or-compute call on the cache key.
        - Otherwise: the ``<key>_expires_at`` entry decides whether the data
          entry is still valid; on a miss the report is built and both
          entries are rewritten.
        """
        start = time.time()
        key = self.cache_key
        ttl = self.ttl

        if ttl == 0 or self.cache is None:
            await self._build()
            outcome = "uncached"

        elif self.cache.supports_ttl:
            built = False

            async def compute():
                nonlocal built
                await self._build()
                built = True
                return serialize_components(self._data)

            payload = await self.cache.fetch(key, compute, ttl)
            if built:
                outcome = "miss"
            else:
                self._hydrate(payload)
                outcome = "hit"

        else:
            expires_key = f"{key}{EXPIRES_AT_SUFFIX}"
            expires_at = await self.cache.get(expires_key)
            payload = None
            if expires_at is not None and expires_at > time.time():
                payload = await self.cache.get(key)
            elif expires_at is not None:
                await self.cache.delete(key)
                await self.cache.delete(expires_key)

            if payload is not None:
                self._hydrate(payload)
                outcome = "hit"
            else:
                await self._build()
                await self.cache.set(key, serialize_components(self._data), ttl=ttl)
                await self.cache.set(expires_key, time.time() + ttl, ttl=ttl)
                await self.cache.prune_expired(EXPIRES_AT_SUFFIX)
                outcome = "miss"

        log_execution_time(logger, "report_query", start, time.time(),
                           report=self.report_id, cache_key=key, cache=outcome,
                           components=len(self._data))
        return self._data

    async def ensure_loaded(self) -> List[BaseComponent]:
        """Query the report unless it is loaded (or being built)."""
        if self.state is ReportState.UNLOADED:
            await self.query()
        return self._data

    async def expire_cache(self) -> None:
        """Drop the cached copy so the next query rebuilds the report."""
        if self.cache is None:
            return
        key = self.cache_key
        await self.cache.delete(key)
        if not self.cache.supports_ttl:
            await self.cache.delete(f"{key}{EXPIRES_AT_SUFFIX}")
        log_cache_operation(logger, "expire_report", key, report=self.report_id)

    async def _build(self) -> None:
        self._data = []
        self._transition(ReportState.QUERYING)
        try:
            await self.do_query()
            # Cache hits see the JSON form; give fresh builds the same values
            self._data = deserialize_components(serialize_components(self._data))
        except Exception:
            self._data = []
            self._transition(ReportState.UNLOADED)
            raise
        self._transition(ReportState.LOADED)

    def _hydrate(self, payload: List[Dict[str, Any]]) -> None:
        self._data = deserialize_components(payload)
        self._transition(ReportState.LOADED)

    def _transition(self, state: ReportState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ReportError(f"Invalid report state change {self.state.value} -> {state.value}")
        self.state = state

    @property
    def _components(self) -> List[BaseComponent]:
        if self.state is ReportState.UNLOADED:
            raise ReportNotLoadedError(f"{type(self).__name__} has not been queried")
        return self._data

    # =========================================================================
    # BUILDER
    # =========================================================================

    def add_component(self, component: BaseComponent) -> BaseComponent:
        """Append a component, assigning its position-derived keys."""
        if not is_valid_component(component):
            raise InvalidComponentError(component)
        if self.state is not ReportState.QUERYING and not (
                component.kind == META_KIND and self.state is ReportState.LOADED):
            raise ReportError(f"Cannot add {component.kind} to a {self.state.value} report")

        index = len(self._data)
        if component.kind in CHART_KINDS:
            # Maps the chart to its rendered image
            component.chart_image_key = create_chart_image_key(self.cache_key, index)
            # UI stores chart scaling under this key
            component.key = f"{self.report_id}/{index}"
        elif component.kind == TEXT_KIND and component.editable:
            component.key = f"{self.report_id}/{index}"
        elif component.kind == PARAMETERS_KIND and component.name != self.name:
            component.parent_name = self.name

        self._data.append(component)
        return component

    async def add_subreport(self, report: "Report") -> None:
        """Append copies of all components of ``report``."""
        for component in await report.to_data():
            self.add_component(component.model_copy(deep=True))

    def meta(self) -> Meta:
        """The report's Meta component, created on first use.

        Needs a report that is being queried or is loaded.
        """
        if self.state is ReportState.UNLOADED:
            raise ReportNotLoadedError(f"{type(self).__name__} has no components before it is queried")
        for component in self._data:
            if component.kind == META_KIND:
                return component
        return self.add_component(Meta())

    def set_data_post_url(self, url: str) -> None:
        """URL the client posts editable values to, per report instance."""
        self.meta().data_post_url = f"{url}{self.cache_key}"

    def h1(self, value: str, editable: bool = False) -> Text:
        return self.add_component(Text(level="h1", value=value, editable=editable))

    def h2(self, value: str, editable: bool = False) -> Text:
        return self.add_component(Text(level="h2", value=value, editable=editable))

    def h3(self, value: str, editable: bool = False) -> Text:
        return self.add_component(Text(level="h3", value=value, editable=editable))

    def text(self, value: str, editable: bool = False) -> Text:
        return self.add_component(Text(level="p", value=value, editable=editable))

    def show_params(self, *key_values) -> Parameters:
        return self.add_component(Parameters(name=self.name, params=list(key_values)))

    def page_break(self) -> Formatting:
        return self.add_component(Formatting(page_break=True))

    def pad(self, amount: float) -> Formatting:
        return self.add_component(Formatting(pad=amount))

    def text_options(self, options: Mapping[str, Any]) -> Formatting:
        return self.add_component(Formatting(text_options=dict(options)))

    def t(self, rows: Iterable[Sequence[Any]], columns: Optional[Sequence[str]] = None,
          title: Optional[str] = None) -> Table:
        return self.add_component(Table(
            title=title, columns=list(columns or []), rows=[list(r) for r in rows]
        ))

    def bar_chart(self, title: str, labels: Sequence[str], series: SeriesInput, **kwargs) -> BarChart:
        return self.add_component(BarChart(**self._chart_fields(title, labels, series, **kwargs)))

    def bar_chart_results(self, title: str, labels: Sequence[str], series: SeriesInput,
                          **kwargs) -> BarResultsChart:
        return self.add_component(BarResultsChart(**self._chart_fields(title, labels, series, **kwargs)))

    def bar_stack_chart(self, title: str, labels: Sequence[str], series: SeriesInput,
                        **kwargs) -> BarStackChart:
        return self.add_component(BarStackChart(**self._chart_fields(title, labels, series, **kwargs)))

    def line_chart(self, title: str, labels: Sequence[str], series: SeriesInput, **kwargs) -> LineChart:
        return self.add_component(LineChart(**self._chart_fields(title, labels, series, **kwargs)))

    def multi_line_chart(self, title: str, labels: Sequence[str], series: SeriesInput,
                         **kwargs) -> MultiLineChart:
        return self.add_component(MultiLineChart(**self._chart_fields(title, labels, series, **kwargs)))

    @staticmethod
    def _chart_fields(title: str, labels: Sequence[str], series: SeriesInput,
                      y_label: Optional[str] = None) -> Dict[str, Any]:
        if isinstance(series, Mapping):
            series = [ChartSeries(name=name, values=list(values)) for name, values in series.items()]
        return {"title": title, "labels": list(labels), "series": list(series), "y_label": y_label}

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def tables(self) -> TableList:
        return TableList(c for c in self._components if c.kind == TABLE_KIND)

    @property
    def charts(self) -> ChartList:
        return ChartList(c for c in self._components if c.kind in CHART_KINDS)

    def table(self, table_index: int = 0) -> Table:
        tables = self.tables
        if not 0 <= table_index < len(tables):
            raise TableIndexError(table_index, len(tables))
        return tables[table_index]

    def row(self, x: int, table_index: int = 0) -> List[Any]:
        """Row ``x`` of the ``table_index``-th table."""
        return self.table(table_index).rows[x]

    # =========================================================================
    # EXPORTS
    # =========================================================================

    async def to_data(self) -> List[BaseComponent]:
        return await self.ensure_loaded()

    components = to_data

    async def to_csv(self, table: int = 0, delimiter: str = ";", line_feed: str = "\r\n") -> str:
        await self.ensure_loaded()
        return self.table(table).to_csv(delimiter, line_feed)

    async def to_pdf(self, chart_images: Optional[Mapping[str, bytes]] = None) -> bytes:
        data = await self.ensure_loaded()
        pdf = PdfRenderer(self.pdf_options()).render(self.title, data, dict(chart_images or {}))
        log_report_render(logger, self.report_id, "pdf", len(pdf), cache_key=self.cache_key)
        return pdf

    async def to_spreadsheet(self) -> bytes:
        data = await self.ensure_loaded()
        xlsx = SpreadsheetRenderer(self.title).render(self.title, data)
        log_report_render(logger, self.report_id, "xlsx", len(xlsx), cache_key=self.cache_key)
        return xlsx

    async def as_json(self) -> Dict[str, Any]:
        """Components wrapped in a ``report`` element."""
        data = await self.ensure_loaded()
        return {"type": "report", "components": serialize_components(data)}

    # =========================================================================
    # EDITABLE FIELDS
    # =========================================================================

    async def update(self, store: EditableFieldStore, project_id: int, user_id: int) -> int:
        """Apply the latest posted editable-field values of this user and project.

        Returns the number of values applied. Every posted key must belong to
        an editable text of this report; otherwise nothing is applied and
        ``UnmatchedFieldError`` is raised.
        """
        data = await self.ensure_loaded()
        submitted = await store.get_latest_report_data(user_id, project_id, self.cache_key)
        if not submitted:
            return 0

        editable = {c.key: c for c in data if c.kind == TEXT_KIND and c.key is not None}
        for key in submitted:
            if key not in editable:
                raise UnmatchedFieldError(key)
        for key, value in submitted.items():
            editable[key].value = value

        logger.debug("Applied editable fields", report=self.report_id,
                     cache_key=self.cache_key, fields=len(submitted))
        return len(submitted)
