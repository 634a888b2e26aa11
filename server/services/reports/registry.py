"""Lookup of report classes by id.

Reports register themselves with the ``@register_report`` decorator. The id
is the snake-cased class name, the same prefix their component keys use.
"""

import importlib
from typing import Dict, Iterable, List, Type

from core.logging import get_logger
from .base import Report, snake_case
from .exceptions import ReportError, UnknownReportError

logger = get_logger(__name__)


class ReportRegistry:
    """Maps report ids to ``Report`` subclasses."""

    def __init__(self):
        self._reports: Dict[str, Type[Report]] = {}

    def __contains__(self, report_id: str) -> bool:
        return report_id in self._reports

    def __len__(self) -> int:
        return len(self._reports)

    def register(self, report_class: Type[Report]) -> Type[Report]:
        if not (isinstance(report_class, type) and issubclass(report_class, Report)):
            raise ReportError(f"{report_class!r} is not a Report subclass")

        report_id = snake_case(report_class.__name__)
        existing = self._reports.get(report_id)
        if existing is not None and existing is not report_class:
            raise ReportError(
                f"Report id '{report_id}' already taken by {existing.__module__}.{existing.__name__}"
            )
        self._reports[report_id] = report_class
        logger.debug("Registered report", report_id=report_id, name=report_class.name)
        return report_class

    def get(self, report_id: str) -> Type[Report]:
        try:
            return self._reports[report_id]
        except KeyError:
            raise UnknownReportError(report_id) from None

    def names(self) -> List[str]:
        return sorted(self._reports)

    def describe(self) -> List[Dict[str, str]]:
        """Id and display name of every registered report."""
        return [{"id": report_id, "name": self._reports[report_id].name} for report_id in self.names()]

    def load_modules(self, modules: Iterable[str]) -> None:
        """Import modules so their ``@register_report`` decorators run."""
        for module in modules:
            importlib.import_module(module)
            logger.info("Loaded report module", module=module, registered=len(self))


registry = ReportRegistry()


def register_report(report_class: Type[Report]) -> Type[Report]:
    """Class decorator adding a report to the global registry."""
    return registry.register(report_class)
