"""
CareAudit - Reference Data Router

Company users, work sites, participants and staff assignments.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.models.company import CompanyRole
from careaudit.schemas.reference import (
    ParticipantCreateRequest,
    ParticipantResponse,
    SiteCreateRequest,
    SiteResponse,
    StaffAssignmentRequest,
    StaffAssignmentResponse,
    UserCreateRequest,
    UserResponse,
)
from careaudit.services.reference_data_service import ReferenceDataService


router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, summary="Create user")
async def create_user(
    request: UserCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).create_user(
        ctx.caller, request.email, request.full_name, request.role,
    )


@router.get("/users", response_model=List[UserResponse], summary="List users")
async def list_users(
    role: Optional[CompanyRole] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).list_users(role)


@router.get("/me", response_model=UserResponse, summary="Current user")
async def get_me(ctx: RequestContext = Depends(get_request_context)):
    """Return the authenticated user."""
    return ctx.user


@router.post("/sites", response_model=SiteResponse, status_code=status.HTTP_201_CREATED, summary="Create work site")
async def create_site(
    request: SiteCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).create_site(ctx.caller, request.name, request.address)


@router.get("/sites", response_model=List[SiteResponse], summary="List work sites")
async def list_sites(ctx: RequestContext = Depends(get_request_context)):
    return await ReferenceDataService(ctx.tenant).list_sites()


@router.post(
    "/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create participant",
)
async def create_participant(
    request: ParticipantCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).create_participant(
        ctx.caller,
        first_name=request.first_name,
        last_name=request.last_name,
        site_id=request.site_id,
        display_name=request.display_name,
    )


@router.get("/participants", response_model=List[ParticipantResponse], summary="List participants")
async def list_participants(
    site_id: Optional[UUID] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).list_participants(site_id)


@router.post(
    "/assignments",
    response_model=StaffAssignmentResponse,
    summary="Assign staff",
    description="Give a user access to one site or participant. Repeating an assignment returns the existing one.",
)
async def assign_staff(
    request: StaffAssignmentRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).assign_staff(
        ctx.caller, request.user_id, request.scope_type, request.scope_entity_id,
    )


@router.get("/assignments", response_model=List[StaffAssignmentResponse], summary="List staff assignments")
async def list_assignments(
    user_id: Optional[UUID] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    return await ReferenceDataService(ctx.tenant).list_assignments(user_id)
