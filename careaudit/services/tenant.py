"""
CareAudit - Tenant Scoping

Every read and write of tenant-owned data goes through a TenantSession,
built once per request and bound to the caller's company. Services never
see a raw AsyncSession, so an unfiltered query cannot be written by
accident. An id owned by another company behaves exactly like an id that
does not exist.
"""

import uuid
from dataclasses import dataclass
from typing import Any, List, Optional, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careaudit.models.base import TenantModel
from careaudit.models.change_log import ActorType
from careaudit.models.company import CompanyRole
from careaudit.utils.error_handling import AuthorizationException, NotFoundException


M = TypeVar("M", bound=TenantModel)


@dataclass(frozen=True)
class CallerContext:
    """Who is acting. Supplied by authentication and trusted as given."""
    company_id: uuid.UUID
    user_id: Optional[uuid.UUID]
    role: Optional[CompanyRole]
    actor_type: ActorType = ActorType.COMPANY_USER
    actor_label: Optional[str] = None

    @classmethod
    def company_user(cls, company_id: uuid.UUID, user_id: uuid.UUID, role: CompanyRole) -> "CallerContext":
        return cls(company_id=company_id, user_id=user_id, role=CompanyRole(role))

    @classmethod
    def external(cls, company_id: uuid.UUID, email: str) -> "CallerContext":
        """Unauthenticated submitter identified only by the email they gave."""
        return cls(
            company_id=company_id,
            user_id=None,
            role=None,
            actor_type=ActorType.EXTERNAL,
            actor_label=f"external:{email.strip().lower()}",
        )

    @classmethod
    def system(cls, company_id: uuid.UUID) -> "CallerContext":
        return cls(company_id=company_id, user_id=None, role=None, actor_type=ActorType.SYSTEM, actor_label="system")


class TenantSession:
    """An AsyncSession restricted to one company's rows."""

    def __init__(self, session: AsyncSession, company_id: uuid.UUID):
        self._session = session
        self._company_id = company_id

    @property
    def company_id(self) -> uuid.UUID:
        return self._company_id

    # ===========================================
    # QUERIES
    # ===========================================

    def select(self, model: Type[M]) -> Select:
        """``select(model)`` already filtered to this company."""
        return select(model).where(model.company_id == self._company_id)

    async def all(self, stmt: Select) -> List[Any]:
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def first(self, stmt: Select) -> Optional[Any]:
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()

    async def count(self, model: Type[M], *criteria) -> int:
        stmt = (
            select(func.count())
            .select_from(model)
            .where(model.company_id == self._company_id, *criteria)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def find(self, model: Type[M], entity_id: Any, for_update: bool = False) -> Optional[M]:
        """
        Load one row by id, freshly read from the database.

        Returns None when the id does not exist or belongs to another company.
        """
        if entity_id is None:
            return None
        if not isinstance(entity_id, uuid.UUID):
            try:
                entity_id = uuid.UUID(str(entity_id))
            except ValueError:
                return None
        stmt = (
            self.select(model)
            .where(model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get(
        self,
        model: Type[M],
        entity_id: Any,
        resource_name: Optional[str] = None,
        for_update: bool = False,
    ) -> M:
        """Like ``find`` but raises NotFoundException."""
        entity = await self.find(model, entity_id, for_update=for_update)
        if entity is None:
            raise NotFoundException(resource_name or model.__name__, entity_id)
        return entity

    # ===========================================
    # WRITES
    # ===========================================

    def add(self, entity: M) -> M:
        """Stage a new row, stamping this company's id on it."""
        if entity.company_id is None:
            entity.company_id = self._company_id
        elif entity.company_id != self._company_id:
            raise AuthorizationException("Cross-tenant write rejected")
        self._session.add(entity)
        return entity

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
