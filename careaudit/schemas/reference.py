"""
CareAudit - Reference Data Schemas
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from careaudit.models.company import CompanyRole, ScopeType
from careaudit.schemas.common import TimestampedResponse


class UserCreateRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    role: CompanyRole


class SiteCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)


class ParticipantCreateRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, max_length=255)
    site_id: Optional[UUID] = None


class StaffAssignmentRequest(BaseModel):
    user_id: UUID
    scope_type: ScopeType
    scope_entity_id: UUID


class UserResponse(TimestampedResponse):
    email: str
    full_name: str
    role: CompanyRole
    is_active: bool


class SiteResponse(TimestampedResponse):
    name: str
    address: Optional[str] = None
    is_active: bool


class ParticipantResponse(TimestampedResponse):
    first_name: str
    last_name: str
    display_name: Optional[str] = None
    site_id: Optional[UUID] = None


class StaffAssignmentResponse(TimestampedResponse):
    user_id: UUID
    scope_type: ScopeType
    scope_entity_id: UUID
