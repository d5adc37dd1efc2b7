"""
CareAudit - Reference Data Service

Users, work sites, participants and staff assignments of one company.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careaudit.models.company import (
    Company,
    CompanyRole,
    CompanyUser,
    Participant,
    ScopeType,
    StaffAssignment,
    WorkSite,
)
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.error_handling import DuplicateEntryException, ValidationException
from careaudit.utils.permissions import CompanyPermission, require_permission

logger = logging.getLogger(__name__)


async def create_company(
    session: AsyncSession,
    name: str,
    admin_email: str,
    admin_full_name: str,
) -> Tuple[Company, CompanyUser]:
    """
    Create a tenant together with its first CompanyAdmin.

    Used by provisioning scripts and fixtures; there is no tenant to scope
    to until the company exists.
    """
    if not name or not name.strip():
        raise ValidationException("Company name is required", field="name")

    company = Company(name=name.strip(), is_active=True)
    session.add(company)
    await session.flush()

    admin = CompanyUser(
        company_id=company.id,
        email=admin_email.strip().lower(),
        full_name=admin_full_name,
        role=CompanyRole.COMPANY_ADMIN,
        is_active=True,
    )
    session.add(admin)
    await session.commit()

    logger.info(f"Company {company.id} created with admin {admin.email}")
    return company, admin


class ReferenceDataService:
    """Service for the people and places a company audits."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant

    # ===========================================
    # USERS
    # ===========================================

    async def create_user(
        self,
        actor: CallerContext,
        email: str,
        full_name: str,
        role: CompanyRole,
    ) -> CompanyUser:
        require_permission(actor.role, CompanyPermission.MANAGE_REFERENCE_DATA)
        email = email.strip().lower()

        existing = await self.tenant.first(
            self.tenant.select(CompanyUser).where(CompanyUser.email == email)
        )
        if existing is not None:
            raise DuplicateEntryException("User", existing_id=existing.id)

        user = CompanyUser(email=email, full_name=full_name, role=CompanyRole(role), is_active=True)
        self.tenant.add(user)
        try:
            await self.tenant.commit()
        except IntegrityError:
            await self.tenant.rollback()
            raise DuplicateEntryException("User")
        return user

    async def list_users(self, role: Optional[CompanyRole] = None) -> List[CompanyUser]:
        stmt = self.tenant.select(CompanyUser)
        if role:
            stmt = stmt.where(CompanyUser.role == role)
        return await self.tenant.all(stmt.order_by(CompanyUser.full_name))

    # ===========================================
    # SITES & PARTICIPANTS
    # ===========================================

    async def create_site(
        self,
        actor: CallerContext,
        name: str,
        address: Optional[str] = None,
    ) -> WorkSite:
        require_permission(actor.role, CompanyPermission.MANAGE_REFERENCE_DATA)
        site = WorkSite(name=name, address=address, is_active=True)
        self.tenant.add(site)
        await self.tenant.commit()
        return site

    async def list_sites(self) -> List[WorkSite]:
        return await self.tenant.all(self.tenant.select(WorkSite).order_by(WorkSite.name))

    async def create_participant(
        self,
        actor: CallerContext,
        first_name: str,
        last_name: str,
        site_id: Optional[uuid.UUID] = None,
        display_name: Optional[str] = None,
    ) -> Participant:
        require_permission(actor.role, CompanyPermission.MANAGE_REFERENCE_DATA)
        if site_id is not None:
            await self.tenant.get(WorkSite, site_id, "Site")

        participant = Participant(
            first_name=first_name,
            last_name=last_name,
            display_name=display_name,
            site_id=site_id,
        )
        self.tenant.add(participant)
        await self.tenant.commit()
        return participant

    async def list_participants(self, site_id: Optional[uuid.UUID] = None) -> List[Participant]:
        stmt = self.tenant.select(Participant)
        if site_id:
            stmt = stmt.where(Participant.site_id == site_id)
        return await self.tenant.all(stmt.order_by(Participant.last_name, Participant.first_name))

    # ===========================================
    # STAFF ASSIGNMENTS
    # ===========================================

    async def assign_staff(
        self,
        actor: CallerContext,
        user_id: uuid.UUID,
        scope_type: ScopeType,
        scope_entity_id: uuid.UUID,
    ) -> StaffAssignment:
        """Give a user access to one site or participant."""
        require_permission(actor.role, CompanyPermission.MANAGE_REFERENCE_DATA)
        user = await self.tenant.get(CompanyUser, user_id, "User")
        scope_type = ScopeType(scope_type)
        if scope_type == ScopeType.SITE:
            await self.tenant.get(WorkSite, scope_entity_id, "Site")
        else:
            await self.tenant.get(Participant, scope_entity_id, "Participant")

        existing = await self.tenant.first(
            self.tenant.select(StaffAssignment).where(
                StaffAssignment.user_id == user.id,
                StaffAssignment.scope_type == scope_type,
                StaffAssignment.scope_entity_id == scope_entity_id,
            )
        )
        if existing is not None:
            return existing

        assignment = StaffAssignment(
            user_id=user.id,
            scope_type=scope_type,
            scope_entity_id=scope_entity_id,
        )
        self.tenant.add(assignment)
        await self.tenant.commit()
        logger.info(f"User {user.id} assigned to {scope_type.value} {scope_entity_id}")
        return assignment

    async def list_assignments(self, user_id: Optional[uuid.UUID] = None) -> List[StaffAssignment]:
        stmt = self.tenant.select(StaffAssignment)
        if user_id:
            stmt = stmt.where(StaffAssignment.user_id == user_id)
        return await self.tenant.all(stmt)
