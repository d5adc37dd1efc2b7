"""
CareAudit - Tenant and Reference Models

Companies (tenants), their users, work sites, participants and the staff
assignments that bound what a StaffReadOnly user may act on.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import BaseModel, TenantModel


class CompanyRole(str, enum.Enum):
    """Roles a company user can hold."""
    COMPANY_ADMIN = "CompanyAdmin"
    AUDITOR = "Auditor"
    REVIEWER = "Reviewer"
    STAFF_READ_ONLY = "StaffReadOnly"


class ScopeType(str, enum.Enum):
    """Kind of entity a compliance template (and its runs) applies to."""
    SITE = "SITE"
    PARTICIPANT = "PARTICIPANT"


class Company(BaseModel):
    """A tenant organization."""
    
    __tablename__ = "companies"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CompanyUser(TenantModel):
    """A user belonging to exactly one company."""
    
    __tablename__ = "company_users"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_company_users_company_email"),
    )
    
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[CompanyRole] = mapped_column(SQLEnum(CompanyRole), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class WorkSite(TenantModel):
    """A physical location where services are delivered."""
    
    __tablename__ = "work_sites"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Participant(TenantModel):
    """A person receiving supports."""
    
    __tablename__ = "participants"
    
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("work_sites.id"), nullable=True,
    )
    
    @property
    def name(self) -> str:
        return self.display_name or f"{self.first_name} {self.last_name}"


class StaffAssignment(TenantModel):
    """Grants a user access to one site or participant."""
    
    __tablename__ = "staff_assignments"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "scope_type", "scope_entity_id",
            name="uq_staff_assignments_user_scope",
        ),
    )
    
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("company_users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    scope_type: Mapped[ScopeType] = mapped_column(SQLEnum(ScopeType), nullable=False)
    scope_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
