"""Report registry and the report service."""

import io

import pytest
from PIL import Image as PILImage

from conftest import SampleReport
from services.reports import (
    Report,
    ReportError,
    ReportRegistry,
    ReportService,
    UnknownReportError,
)


@pytest.fixture
def registry():
    registry = ReportRegistry()
    registry.register(SampleReport)
    return registry


@pytest.fixture
def service(settings, memory_cache, database, registry):
    return ReportService(settings, memory_cache, database, registry)


def test_register_uses_snake_cased_class_name(registry):
    assert "sample_report" in registry
    assert registry.get("sample_report") is SampleReport
    assert registry.describe() == [{"id": "sample_report", "name": "Sample"}]


def test_register_is_idempotent(registry):
    registry.register(SampleReport)
    assert len(registry) == 1


def test_conflicting_id_is_rejected(registry):
    class SampleReport(Report):
        async def do_query(self):
            pass

    with pytest.raises(ReportError, match="already taken"):
        registry.register(SampleReport)


def test_only_reports_can_register(registry):
    with pytest.raises(ReportError):
        registry.register(dict)


def test_unknown_report(registry):
    with pytest.raises(UnknownReportError) as exc_info:
        registry.get("missing")
    assert isinstance(exc_info.value, LookupError)


def test_build_applies_settings(service, settings):
    report = service.build("sample_report", {"project": "1"})

    assert report.ttl == settings.report_cache_ttl
    assert report.cache is service.cache


async def test_render_json_fills_urls(service):
    document = await service.render_json("sample_report", {"project": "1"})
    components = document["components"]

    base = "http://reports.test/tool/api/reports/sample_report"
    tables = [c for c in components if c["kind"] == "table"]
    assert tables[2]["csv_export_url"] == f"{base}/csv?project=1&table=2"

    report = service.build("sample_report", {"project": "1"})
    charts = [c for c in components if c["kind"] == "bar_chart"]
    assert charts[0]["image_post_url"] == (
        f"http://reports.test/tool/api/reports/chart-images/{report.cache_key}_4"
    )

    meta = components[-1]
    assert meta["kind"] == "meta"
    assert meta["data_post_url"] == f"{base}/data?key={report.cache_key}"


async def test_render_json_applies_submission(service, database):
    key = service.build("sample_report", {"project": "1"}).cache_key
    await service.save_submission("sample_report", key, 1, 2, {"sample_report/1": "Posted"})

    document = await service.render_json("sample_report", {"project": "1"}, project_id=1, user_id=2)
    assert document["components"][1]["value"] == "Posted"

    untouched = await service.render_json("sample_report", {"project": "1"})
    assert untouched["components"][1]["value"] == "Summary goes here"


async def test_render_pdf_embeds_posted_image(service):
    buffer = io.BytesIO()
    PILImage.new("RGB", (40, 20), "steelblue").save(buffer, "PNG")
    png = buffer.getvalue()
    key = service.build("sample_report", {}).cache_key
    await service.save_chart_image(f"{key}_4", png)

    pdf = await service.render_pdf("sample_report", {})
    assert pdf.startswith(b"%PDF")


async def test_save_submission_for_unknown_report(service):
    with pytest.raises(UnknownReportError):
        await service.save_submission("missing", "k", 1, 1, {})
