"""Report service: builds registered reports with the application's cache,
settings and database, and hands their exports to the HTTP layer."""

import time
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from core.logging import get_logger, log_execution_time
from models.database import ReportData
from .base import Report
from .registry import ReportRegistry, registry as default_registry

logger = get_logger(__name__)


class ReportService:
    """Entry point for running reports by id."""

    def __init__(self, settings: Settings, cache: CacheService, database: Database,
                 registry: Optional[ReportRegistry] = None):
        self.settings = settings
        self.cache = cache
        self.database = database
        self.registry = registry if registry is not None else default_registry

    def list_reports(self) -> List[Dict[str, str]]:
        return self.registry.describe()

    def build(self, report_id: str, options: Optional[Mapping[str, Any]] = None) -> Report:
        """New, unloaded instance of the report registered as ``report_id``."""
        report_class = self.registry.get(report_id)
        report = report_class(
            options,
            cache=self.cache,
            default_expires_in=self.settings.report_cache_ttl,
            default_page_layout=self.settings.report_page_layout,
        )
        return report

    def report_url(self, report_id: str) -> str:
        return f"{self.settings.base_url}/api/reports/{report_id}"

    def chart_image_url(self) -> str:
        return f"{self.settings.base_url}/api/reports/chart-images/"

    async def load(self, report_id: str, options: Optional[Mapping[str, Any]] = None,
                   project_id: Optional[int] = None, user_id: Optional[int] = None) -> Report:
        """Build and query a report, applying the user's submitted values if any."""
        report = self.build(report_id, options)
        await report.ensure_loaded()
        if project_id is not None and user_id is not None:
            await report.update(self.database, project_id, user_id)
        return report

    # =========================================================================
    # EXPORTS
    # =========================================================================

    async def render_json(self, report_id: str, options: Optional[Mapping[str, Any]] = None,
                          project_id: Optional[int] = None,
                          user_id: Optional[int] = None) -> Dict[str, Any]:
        """JSON document with CSV export, chart image and data POST URLs filled in."""
        start_time = time.time()
        report = await self.load(report_id, options, project_id, user_id)

        base = self.report_url(report_id)
        query = urlencode(sorted((str(k), str(v)) for k, v in report.options.items()))
        report.tables.assign_csv_export_urls(f"{base}/csv?{query + '&' if query else ''}table=")
        report.charts.assign_image_post_urls(self.chart_image_url())
        report.set_data_post_url(f"{base}/data?key=")

        document = await report.as_json()
        log_execution_time(logger, "render_json", start_time, time.time(),
                           report=report_id, components=len(document["components"]))
        return document

    async def render_csv(self, report_id: str, options: Optional[Mapping[str, Any]] = None,
                         table: int = 0) -> str:
        report = await self.load(report_id, options)
        return await report.to_csv(table)

    async def render_pdf(self, report_id: str, options: Optional[Mapping[str, Any]] = None,
                         project_id: Optional[int] = None, user_id: Optional[int] = None) -> bytes:
        report = await self.load(report_id, options, project_id, user_id)
        chart_images = await self.database.get_chart_images(report.charts.image_keys)
        logger.debug("Chart images for PDF", report=report_id,
                     charts=len(report.charts), images=len(chart_images))
        return await report.to_pdf(chart_images)

    async def render_spreadsheet(self, report_id: str, options: Optional[Mapping[str, Any]] = None,
                                 project_id: Optional[int] = None,
                                 user_id: Optional[int] = None) -> bytes:
        report = await self.load(report_id, options, project_id, user_id)
        return await report.to_spreadsheet()

    # =========================================================================
    # CLIENT POSTS
    # =========================================================================

    async def save_submission(self, report_id: str, key: str, project_id: int, user_id: int,
                              values: Mapping[str, str]) -> ReportData:
        """Store editable-field values posted for the report instance ``key``."""
        self.registry.get(report_id)
        row = await self.database.save_report_data(user_id, project_id, key, dict(values))
        logger.info("Saved report submission", report=report_id, cache_key=key,
                    project_id=project_id, user_id=user_id, fields=len(values))
        return row

    async def save_chart_image(self, chart_image_key: str, data: bytes,
                               content_type: str = "image/png") -> None:
        await self.database.save_chart_image(chart_image_key, data, content_type)
        logger.info("Saved chart image", chart_image_key=chart_image_key, size_bytes=len(data))
