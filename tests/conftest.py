import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.database import get_db
from app.core.security import create_access_token
from app.db.base import Base
from app.db.models import CaseStatus, ClientProfile, ClientType, DesignerProfile
from app.schemas.auth import Principal, Role
from app.schemas.case import CaseCreate
from app.schemas.payment import ProductionPaymentCreate, StudyPaymentCreate
from app.schemas.quote import QuoteCreate
from app.services import case_workflow, payment_service, quote_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from main import app

COMPLETE_CASE = {
    "patient_ref": "PT-001",
    "procedure_category": "single_implant",
    "guide_type": "tooth_support",
    "required_service": "full_solution",
    "teeth_numbers": [14],
    "delivery_method": "pickup",
    "pickup_branch_id": 1,
}

@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for a test."""
    async with session_factory() as session:
        yield session

@pytest.fixture
def notifier(session_factory) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory)

@pytest.fixture
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

async def _add(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    return obj

@pytest.fixture
async def client_profile(db) -> ClientProfile:
    return await _add(db, ClientProfile(user_id="user-client", name="Dr. Test", email="doctor@example.com",
                                        client_type=ClientType.doctor))

@pytest.fixture
async def other_client_profile(db) -> ClientProfile:
    return await _add(db, ClientProfile(user_id="user-other", name="Other Lab", email="lab@example.com",
                                        client_type=ClientType.lab))

@pytest.fixture
async def designer_profile(db) -> DesignerProfile:
    return await _add(db, DesignerProfile(user_id="user-designer", name="Designer", is_admin=False))

@pytest.fixture
async def admin_profile(db) -> DesignerProfile:
    return await _add(db, DesignerProfile(user_id="user-admin", name="Admin", is_admin=True))

@pytest.fixture
def client_principal(client_profile) -> Principal:
    return Principal(user_id=client_profile.user_id, role=Role.client, profile_id=client_profile.id)

@pytest.fixture
def other_client_principal(other_client_profile) -> Principal:
    return Principal(user_id=other_client_profile.user_id, role=Role.client, profile_id=other_client_profile.id)

@pytest.fixture
def designer_principal(designer_profile) -> Principal:
    return Principal(user_id=designer_profile.user_id, role=Role.designer, profile_id=designer_profile.id)

@pytest.fixture
def admin_principal(admin_profile) -> Principal:
    return Principal(user_id=admin_profile.user_id, role=Role.admin, profile_id=admin_profile.id)

def _headers(user_id: str, role: str, profile_id, is_admin: bool = False) -> dict:
    token = create_access_token(user_id, role, profile_id, is_admin=is_admin)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def client_headers(client_profile) -> dict:
    return _headers(client_profile.user_id, "client", client_profile.id)

@pytest.fixture
def other_client_headers(other_client_profile) -> dict:
    return _headers(other_client_profile.user_id, "client", other_client_profile.id)

@pytest.fixture
def designer_headers(designer_profile) -> dict:
    return _headers(designer_profile.user_id, "designer", designer_profile.id)

@pytest.fixture
def admin_headers(admin_profile) -> dict:
    return _headers(admin_profile.user_id, "designer", admin_profile.id, is_admin=True)

@pytest.fixture
def make_case(db, client_principal, designer_principal):
    """
    Factory driving a new case through the real workflow to ``status``.
    Supported targets: draft, submitted, study_completed.
    """
    async def _make(status: CaseStatus = CaseStatus.draft, principal: Principal = None, **fields):
        data = {**COMPLETE_CASE, **fields}
        case = await case_workflow.create_case(
            db, principal or client_principal, CaseCreate(is_draft=status == CaseStatus.draft, **data)
        )
        if status in (CaseStatus.draft, CaseStatus.submitted):
            return case
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.study_in_progress)
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.study_completed)
        assert status == CaseStatus.study_completed
        return case

    return _make

@pytest.fixture
def make_quote(db, make_case, admin_principal):
    """
    Factory returning ``(case, quote)`` with the quote sent to the client.
    """
    async def _make(study_fee=100, design_fee=50, production_fee=300, delivery_fee=20, **kwargs):
        case = await make_case(CaseStatus.study_completed)
        quote = await quote_service.create_quote(
            db,
            admin_principal,
            QuoteCreate(
                case_id=case.id,
                study_fee=study_fee,
                design_fee=design_fee,
                production_fee=production_fee,
                delivery_fee=delivery_fee,
                **kwargs,
            ),
        )
        return case, quote

    return _make

@pytest.fixture
def study_payment_in():
    def _build(case_id, amount=Decimal("100")):
        return StudyPaymentCreate(
            case_id=case_id,
            amount=amount,
            payment_method="bank_transfer",
            proof_url="https://files.example.com/proofs/study.pdf",
        )

    return _build

@pytest.fixture
def in_production_case(db, make_quote, client_principal, admin_principal):
    """
    Factory returning ``(case, quote, payment)`` with a verified production fee.
    """
    async def _make():
        case, quote = await make_quote()
        await quote_service.accept_quote(db, client_principal, quote.id)
        payment = await payment_service.upload_production_payment(
            db,
            client_principal,
            ProductionPaymentCreate(
                case_id=case.id,
                quote_id=quote.id,
                amount=quote.total_amount,
                proof_url="https://files.example.com/proofs/production.pdf",
            ),
        )
        payment = await payment_service.verify_payment(db, admin_principal, payment.id)
        return case, quote, payment

    return _make
