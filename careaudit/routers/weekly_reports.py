"""
CareAudit - Weekly Reports Router

Weekly rollups per participant and the generated narrative reports.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.schemas.report import (
    GenerationLogResponse,
    RollupResponse,
    WeeklyReportResponse,
    WeeklyReportUpdateRequest,
    WeeklyWindowRequest,
)
from careaudit.services.text_generation import ReportTextGenerator, get_report_text_generator
from careaudit.services.weekly_report_service import WeeklyReportService


router = APIRouter()


@router.post(
    "/rollup",
    response_model=RollupResponse,
    summary="Compute weekly rollup",
    description="Aggregate the participant's runs and actions for the window without generating text.",
)
async def compute_rollup(
    request: WeeklyWindowRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    rollup = await WeeklyReportService(ctx.tenant).compute_rollup(
        request.participant_id, request.period_start, request.period_end,
    )
    return RollupResponse(
        participant_id=rollup.participant_id,
        input_hash=rollup.input_hash,
        payload=rollup.payload,
    )


@router.post(
    "/generate",
    response_model=WeeklyReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate weekly report",
    description="Generate a DRAFT narrative report. A generator failure returns 502 and is logged.",
)
async def generate_report(
    request: WeeklyWindowRequest,
    ctx: RequestContext = Depends(get_request_context),
    generator: ReportTextGenerator = Depends(get_report_text_generator),
):
    return await WeeklyReportService(ctx.tenant).generate_report(
        ctx.caller,
        request.participant_id,
        request.period_start,
        request.period_end,
        generator,
    )


@router.get("", response_model=List[WeeklyReportResponse], summary="List weekly reports")
async def list_reports(
    participant_id: Optional[UUID] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    return await WeeklyReportService(ctx.tenant).list_reports(participant_id)


@router.get("/generation-logs", response_model=List[GenerationLogResponse], summary="Generation attempts")
async def list_generation_logs(
    participant_id: Optional[UUID] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    return await WeeklyReportService(ctx.tenant).generation_logs(participant_id)


@router.get("/{report_id}", response_model=WeeklyReportResponse, summary="Get weekly report")
async def get_report(
    report_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await WeeklyReportService(ctx.tenant).get_report(report_id)


@router.patch("/{report_id}", response_model=WeeklyReportResponse, summary="Edit or finalize report")
async def update_report(
    report_id: UUID,
    request: WeeklyReportUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await WeeklyReportService(ctx.tenant).update_report(
        ctx.caller, report_id, final_text=request.final_text, status=request.status,
    )
