"""Filtered views over a report's component sequence."""

from typing import Iterable, Iterator, List, Sequence

from .components import ChartComponent, Table


class TableList(Sequence[Table]):
    """Tables of a report in display order.

    A table's position in this list is its table index, used by CSV exports.
    """

    def __init__(self, tables: Iterable[Table]):
        self._tables: List[Table] = list(tables)

    def __getitem__(self, index):
        return self._tables[index]

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables)

    def assign_csv_export_urls(self, base_url: str) -> "TableList":
        """Set each table's export URL to ``base_url`` followed by its table index."""
        for index, table in enumerate(self._tables):
            table.csv_export_url = f"{base_url}{index}"
        return self


class ChartList(Sequence[ChartComponent]):
    """Charts of a report in display order."""

    def __init__(self, charts: Iterable[ChartComponent]):
        self._charts: List[ChartComponent] = list(charts)

    def __getitem__(self, index):
        return self._charts[index]

    def __len__(self) -> int:
        return len(self._charts)

    def __iter__(self) -> Iterator[ChartComponent]:
        return iter(self._charts)

    @property
    def image_keys(self) -> List[str]:
        return [c.chart_image_key for c in self._charts if c.chart_image_key]

    def assign_image_post_urls(self, base_url: str) -> "ChartList":
        """Set each chart's image POST URL to ``base_url`` followed by its image key."""
        for chart in self._charts:
            chart.image_post_url = f"{base_url}{chart.chart_image_key}"
        return self
