"""Report routes: JSON documents, file exports and client posts."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from core.container import container
from core.logging import get_logger
from services.reports import ReportService, TableIndexError, UnknownReportError

logger = get_logger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])

# Query parameters consumed by the routes; everything else is a report option
RESERVED_PARAMS = {"project_id", "user_id", "table", "key"}

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class SubmissionRequest(BaseModel):
    project_id: int
    user_id: int
    values: Dict[str, str] = Field(default_factory=dict)


def get_report_service() -> ReportService:
    return container.report_service()


def report_options(request: Request) -> Dict[str, Any]:
    return {k: v for k, v in request.query_params.items() if k not in RESERVED_PARAMS}


def _attachment(report_id: str, fmt: str, content) -> Response:
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{report_id}.{fmt}"'},
    )


@router.get("")
async def list_reports(service: ReportService = Depends(get_report_service)):
    """Registered reports."""
    return {"success": True, "reports": service.list_reports()}


@router.post("/chart-images/{chart_image_key}")
async def save_chart_image(
    chart_image_key: str,
    request: Request,
    service: ReportService = Depends(get_report_service)
):
    """Store the browser-rendered image of a chart for PDF exports."""
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty image body")

    content_type = request.headers.get("content-type", "image/png")
    await service.save_chart_image(chart_image_key, data, content_type)
    return {"success": True, "chart_image_key": chart_image_key}


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    request: Request,
    project_id: Optional[int] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    service: ReportService = Depends(get_report_service)
):
    """Report as JSON, with the user's submitted values applied when given."""
    try:
        return await service.render_json(report_id, report_options(request), project_id, user_id)
    except UnknownReportError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{report_id}/csv")
async def get_report_csv(
    report_id: str,
    request: Request,
    table: int = Query(default=0, ge=0),
    service: ReportService = Depends(get_report_service)
):
    try:
        csv_text = await service.render_csv(report_id, report_options(request), table)
    except (UnknownReportError, TableIndexError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _attachment(report_id, "csv", csv_text)


@router.get("/{report_id}/pdf")
async def get_report_pdf(
    report_id: str,
    request: Request,
    project_id: Optional[int] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    service: ReportService = Depends(get_report_service)
):
    try:
        pdf = await service.render_pdf(report_id, report_options(request), project_id, user_id)
    except UnknownReportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _attachment(report_id, "pdf", pdf)


@router.get("/{report_id}/xlsx")
async def get_report_spreadsheet(
    report_id: str,
    request: Request,
    project_id: Optional[int] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    service: ReportService = Depends(get_report_service)
):
    try:
        xlsx = await service.render_spreadsheet(report_id, report_options(request), project_id, user_id)
    except UnknownReportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _attachment(report_id, "xlsx", xlsx)


@router.post("/{report_id}/data")
async def post_report_data(
    report_id: str,
    submission: SubmissionRequest,
    key: str = Query(..., min_length=1),
    service: ReportService = Depends(get_report_service)
):
    """Store editable-field values for the report instance ``key``."""
    try:
        row = await service.save_submission(
            report_id, key, submission.project_id, submission.user_id, submission.values
        )
    except UnknownReportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "id": row.id, "fields": len(submission.values)}
