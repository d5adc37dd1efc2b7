"""
CareAudit - Test Configuration

Pytest fixtures and configuration.
"""

from typing import AsyncGenerator, Callable, Dict, List, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import careaudit.models  # noqa: F401  registers every table on Base.metadata
from careaudit.database import Base, build_engine, get_async_session
from careaudit.models.audit import Audit, AuditTemplate, AuditTemplateIndicator, AuditType, RiskLevel
from careaudit.models.company import Company, CompanyRole, CompanyUser, Participant, ScopeType, WorkSite
from careaudit.models.compliance import ComplianceTemplate, ComplianceTemplateItem, Frequency, ResponseType
from careaudit.models.document_review import DocumentChecklistItem, DocumentChecklistTemplate
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.compliance_run_service import ComplianceRunService
from careaudit.services.document_review_service import DocumentReviewService
from careaudit.services.reference_data_service import ReferenceDataService, create_company
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.services.text_generation import GeneratedText, ReportTextGenerator, get_report_text_generator
from careaudit.utils.security import create_access_token
from main import app


class FakeTextGenerator(ReportTextGenerator):
    """Records the payloads it was handed and returns fixed text."""

    model_name = "fake-writer"

    def __init__(self, text: str = "Participant had a settled week."):
        self.text = text
        self.payloads: List[dict] = []

    async def generate(self, payload: dict) -> GeneratedText:
        self.payloads.append(payload)
        return GeneratedText(text=self.text, model_name=self.model_name)


class FailingTextGenerator(ReportTextGenerator):
    model_name = "fake-writer"

    async def generate(self, payload: dict) -> GeneratedText:
        raise RuntimeError("upstream unavailable")


# ===========================================
# DATABASE
# ===========================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'careaudit_test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


# ===========================================
# TENANTS & USERS
# ===========================================

@pytest_asyncio.fixture
async def company_and_admin(db_session: AsyncSession) -> Tuple[Company, CompanyUser]:
    return await create_company(db_session, "Harbour Care", "admin@harbour.test", "Alex Admin")


@pytest.fixture
def company(company_and_admin) -> Company:
    return company_and_admin[0]


@pytest.fixture
def admin_user(company_and_admin) -> CompanyUser:
    return company_and_admin[1]


@pytest.fixture
def tenant(db_session: AsyncSession, company: Company) -> TenantSession:
    return TenantSession(db_session, company.id)


@pytest.fixture
def admin(admin_user: CompanyUser) -> CallerContext:
    return CallerContext.company_user(admin_user.company_id, admin_user.id, admin_user.role)


async def _create_user(tenant: TenantSession, admin: CallerContext, email: str, name: str, role: CompanyRole):
    return await ReferenceDataService(tenant).create_user(admin, email, name, role)


@pytest_asyncio.fixture
async def auditor_user(tenant, admin) -> CompanyUser:
    return await _create_user(tenant, admin, "auditor@harbour.test", "Ava Auditor", CompanyRole.AUDITOR)


@pytest_asyncio.fixture
async def reviewer_user(tenant, admin) -> CompanyUser:
    return await _create_user(tenant, admin, "reviewer@harbour.test", "Riley Reviewer", CompanyRole.REVIEWER)


@pytest_asyncio.fixture
async def staff_user(tenant, admin) -> CompanyUser:
    return await _create_user(tenant, admin, "staff@harbour.test", "Sam Staff", CompanyRole.STAFF_READ_ONLY)


@pytest.fixture
def auditor(auditor_user) -> CallerContext:
    return CallerContext.company_user(auditor_user.company_id, auditor_user.id, auditor_user.role)


@pytest.fixture
def reviewer(reviewer_user) -> CallerContext:
    return CallerContext.company_user(reviewer_user.company_id, reviewer_user.id, reviewer_user.role)


@pytest.fixture
def staff(staff_user) -> CallerContext:
    return CallerContext.company_user(staff_user.company_id, staff_user.id, staff_user.role)


@pytest_asyncio.fixture
async def other_company_and_admin(db_session: AsyncSession) -> Tuple[Company, CompanyUser]:
    return await create_company(db_session, "Riverside Supports", "admin@riverside.test", "Morgan Admin")


@pytest.fixture
def other_tenant(db_session: AsyncSession, other_company_and_admin) -> TenantSession:
    return TenantSession(db_session, other_company_and_admin[0].id)


@pytest.fixture
def other_admin(other_company_and_admin) -> CallerContext:
    other_admin_user = other_company_and_admin[1]
    return CallerContext.company_user(other_admin_user.company_id, other_admin_user.id, other_admin_user.role)


# ===========================================
# REFERENCE DATA
# ===========================================

@pytest_asyncio.fixture
async def site(tenant, admin) -> WorkSite:
    return await ReferenceDataService(tenant).create_site(admin, "Harbour House", "1 Quay Street")


@pytest_asyncio.fixture
async def participant(tenant, admin, site) -> Participant:
    return await ReferenceDataService(tenant).create_participant(
        admin, first_name="Jordan", last_name="Lee", site_id=site.id,
    )


# ===========================================
# AUDIT TEMPLATES & AUDITS
# ===========================================

@pytest_asyncio.fixture
async def audit_template(tenant, admin) -> Tuple[AuditTemplate, List[AuditTemplateIndicator]]:
    return await AuditWorkflowService(tenant).create_template(
        admin,
        name="Core Module Indicators",
        indicators=[
            {"indicator_text": "Rights are upheld", "risk_level": RiskLevel.HIGH, "is_critical_control": True},
            {"indicator_text": "Incidents are managed", "risk_level": RiskLevel.MEDIUM},
            {"indicator_text": "Records are kept", "risk_level": RiskLevel.LOW},
        ],
    )


@pytest_asyncio.fixture
async def in_progress_audit(tenant, auditor, audit_template) -> Audit:
    service = AuditWorkflowService(tenant)
    audit = await service.create_audit(
        auditor,
        title="Annual internal audit",
        audit_type=AuditType.INTERNAL,
        scope_line_items=["0104_0125_0_1", "0107_0104_1_1"],
        scope_domains=["CORE"],
        template_id=audit_template[0].id,
    )
    return await service.start_audit(auditor, audit.id)


# ===========================================
# COMPLIANCE TEMPLATES
# ===========================================

@pytest_asyncio.fixture
async def daily_participant_template(tenant, admin) -> Tuple[ComplianceTemplate, List[ComplianceTemplateItem]]:
    return await ComplianceRunService(tenant).create_template(
        admin,
        name="Daily participant check",
        scope_type=ScopeType.PARTICIPANT,
        frequency=Frequency.DAILY,
        items=[
            {"title": "Medication administered as prescribed", "is_critical": True},
            {"title": "Incident occurred today", "notes_required_on_fail": True},
            {"title": "PRN medication given"},
            {"title": "Restrictive practice used"},
            {"title": "Fluid intake (ml)", "response_type": ResponseType.NUMBER},
        ],
    )


@pytest_asyncio.fixture
async def weekly_participant_template(tenant, admin) -> Tuple[ComplianceTemplate, List[ComplianceTemplateItem]]:
    return await ComplianceRunService(tenant).create_template(
        admin,
        name="Weekly participant review",
        scope_type=ScopeType.PARTICIPANT,
        frequency=Frequency.WEEKLY,
        items=[
            {"title": "Number of incidents this week", "response_type": ResponseType.NUMBER},
            {"title": "Weekly medication audit compliant", "is_critical": True},
        ],
    )


@pytest_asyncio.fixture
async def daily_site_template(tenant, admin) -> Tuple[ComplianceTemplate, List[ComplianceTemplateItem]]:
    return await ComplianceRunService(tenant).create_template(
        admin,
        name="Daily site safety walk",
        scope_type=ScopeType.SITE,
        frequency=Frequency.DAILY,
        items=[
            {"title": "Fire exits clear", "is_critical": True},
            {"title": "Kitchen clean"},
            {"title": "Roster displayed", "response_type": ResponseType.PHOTO_REQUIRED},
        ],
    )


# ===========================================
# DOCUMENT CHECKLISTS
# ===========================================

@pytest_asyncio.fixture
async def care_plan_checklist(tenant, admin) -> Tuple[DocumentChecklistTemplate, List[DocumentChecklistItem]]:
    return await DocumentReviewService(tenant).create_checklist_template(
        admin,
        document_type="CARE_PLAN",
        name="Care plan checklist",
        items=[
            {"item_text": "Signed by participant", "is_critical": True},
            {"item_text": "Goals recorded"},
            {"item_text": "Risks assessed"},
            {"item_text": "Review date set"},
            {"item_text": "Interpreter details"},
        ],
    )


# ===========================================
# TEXT GENERATION
# ===========================================

@pytest.fixture
def fake_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def failing_generator() -> FailingTextGenerator:
    return FailingTextGenerator()


# ===========================================
# API CLIENT
# ===========================================

@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_generator) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session and text generator overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_report_text_generator] = lambda: fake_generator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers_for() -> Callable[[CompanyUser], Dict[str, str]]:
    """Bearer headers for a company user, as issued by the auth service."""

    def _headers(user: CompanyUser) -> Dict[str, str]:
        token = create_access_token({
            "sub": str(user.id),
            "company_id": str(user.company_id),
            "role": user.role.value,
        })
        return {"Authorization": f"Bearer {token}"}

    return _headers
