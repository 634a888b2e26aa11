"""SQLModel tables backing report persistence."""

from datetime import datetime, timezone
from typing import Optional, Dict
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import LargeBinary, func


class ReportData(SQLModel, table=True):
    """Editable-field submission for one report, user and project.

    ``key`` is the report cache key, ``data`` maps editable component keys
    (``<report>/<index>``) to their new values. Rows are append-only; the
    newest row for a (user, project, key) triple wins.
    """

    __tablename__ = "report_data"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    project_id: int = Field(index=True)
    key: str = Field(index=True, max_length=64)
    data: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class ChartImage(SQLModel, table=True):
    """Rendered chart image posted by the browser, embedded into PDF exports."""

    __tablename__ = "chart_images"

    key: str = Field(primary_key=True, max_length=128)
    content_type: str = Field(default="image/png", max_length=50)
    data: bytes = Field(sa_column=Column(LargeBinary))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
