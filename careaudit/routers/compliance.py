"""
CareAudit - Compliance Router

Checklist templates, compliance runs and the corrective actions they raise.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.models.compliance import ActionStatus, RunStatus
from careaudit.schemas.compliance import (
    ActionCloseRequest,
    ActionResponse,
    ActionUpdateRequest,
    ComplianceResponseResponse,
    ComplianceTemplateCreateRequest,
    ComplianceTemplateDetailResponse,
    ComplianceTemplateResponse,
    RunCreateRequest,
    RunResponse,
    RunResponseRequest,
    RunSubmitResponse,
    TemplateItemResponse,
)
from careaudit.services.compliance_run_service import ComplianceRunService


router = APIRouter()


# ===========================================
# TEMPLATES
# ===========================================

@router.post(
    "/templates",
    response_model=ComplianceTemplateDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create compliance template",
)
async def create_template(
    request: ComplianceTemplateCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    template, items = await ComplianceRunService(ctx.tenant).create_template(
        ctx.caller,
        name=request.name,
        scope_type=request.scope_type,
        frequency=request.frequency,
        items=[i.model_dump(exclude_none=True) for i in request.items],
    )
    return ComplianceTemplateDetailResponse(
        template=ComplianceTemplateResponse.model_validate(template),
        items=[TemplateItemResponse.model_validate(i) for i in items],
    )


@router.get("/templates", response_model=List[ComplianceTemplateResponse], summary="List templates")
async def list_templates(
    include_inactive: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).list_templates(active_only=not include_inactive)


@router.get("/templates/{template_id}/items", response_model=List[TemplateItemResponse], summary="List template items")
async def list_template_items(
    template_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).template_items(template_id)


# ===========================================
# RUNS
# ===========================================

@router.post(
    "/runs",
    response_model=RunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start compliance run",
    description=(
        "Open a run for one site or participant. DAILY runs default to today; "
        "WEEKLY runs need period_start and period_end. A second run for the same "
        "template, scope and period returns 409 with the existing run id."
    ),
)
async def create_run(
    request: RunCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).create_run(
        ctx.caller,
        template_id=request.template_id,
        scope_entity_id=request.scope_entity_id,
        run_date=request.run_date,
        period_start=request.period_start,
        period_end=request.period_end,
    )


@router.get("/runs", response_model=List[RunResponse], summary="List runs")
async def list_runs(
    template_id: Optional[UUID] = Query(None),
    scope_entity_id: Optional[UUID] = Query(None),
    run_status: Optional[RunStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).list_runs(
        template_id=template_id, scope_entity_id=scope_entity_id, status=run_status,
    )


@router.get("/runs/{run_id}", response_model=RunResponse, summary="Get run")
async def get_run(
    run_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).get_run(run_id)


@router.put("/runs/{run_id}/responses", response_model=ComplianceResponseResponse, summary="Save item response")
async def upsert_run_response(
    run_id: UUID,
    request: RunResponseRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).upsert_response(
        ctx.caller,
        run_id,
        template_item_id=request.template_item_id,
        response_value=request.response_value,
        notes=request.notes,
        attachment_path=request.attachment_path,
    )


@router.get("/runs/{run_id}/responses", response_model=List[ComplianceResponseResponse], summary="List run responses")
async def list_run_responses(
    run_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    service = ComplianceRunService(ctx.tenant)
    await service.get_run(run_id)
    return await service.list_responses(run_id)


@router.post(
    "/runs/{run_id}/submit",
    response_model=RunSubmitResponse,
    summary="Submit run",
    description="Evaluate the run, store its RED/AMBER/GREEN outcome and raise actions for failing items.",
)
async def submit_run(
    run_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await ComplianceRunService(ctx.tenant).submit_run(ctx.caller, run_id)
    return RunSubmitResponse(
        run=RunResponse.model_validate(result.entity),
        actions=[ActionResponse.model_validate(a) for a in result.derived],
    )


# ===========================================
# ACTIONS
# ===========================================

@router.get("/actions", response_model=List[ActionResponse], summary="List actions")
async def list_actions(
    run_id: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    action_status: Optional[ActionStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).list_actions(
        run_id=run_id, status=action_status, participant_id=participant_id,
    )


@router.patch("/actions/{action_id}", response_model=ActionResponse, summary="Update action")
async def update_action(
    action_id: UUID,
    request: ActionUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).update_action(
        ctx.caller,
        action_id,
        assigned_to_id=request.assigned_to_id,
        status=request.status,
        due_date=request.due_date,
    )


@router.post("/actions/{action_id}/close", response_model=ActionResponse, summary="Close action")
async def close_action(
    action_id: UUID,
    request: ActionCloseRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ComplianceRunService(ctx.tenant).close_action(
        ctx.caller, action_id, request.closure_notes, request.attachment_path,
    )
