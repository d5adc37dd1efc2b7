"""
CareAudit - Weekly Report Schemas
"""

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from careaudit.models.report import ReportStatus
from careaudit.schemas.common import TimestampedResponse


class WeeklyWindowRequest(BaseModel):
    participant_id: UUID
    period_start: date
    period_end: date


class WeeklyReportUpdateRequest(BaseModel):
    final_text: Optional[str] = None
    status: Optional[ReportStatus] = None


class RollupResponse(BaseModel):
    participant_id: UUID
    input_hash: str = Field(..., description="SHA-256 of the canonical payload")
    payload: Dict[str, Any]


class WeeklyReportResponse(TimestampedResponse):
    participant_id: UUID
    period_start: datetime
    period_end: datetime
    status: ReportStatus
    metrics: Dict[str, Any]
    generated_text: str
    final_text: Optional[str] = None
    input_hash: str
    model_name: str
    prompt_version: str
    generated_by_id: Optional[UUID] = None


class GenerationLogResponse(TimestampedResponse):
    feature_key: str
    user_id: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    input_hash: str
    model_name: str
    prompt_version: str
    success: bool
    error_message: Optional[str] = None
