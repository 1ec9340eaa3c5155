import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["SANDBOX_GATEWAY_ENABLED"] = "true"

from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.v1.payments.dependencies import get_gateway_registry, get_receipt_issuer, get_reference_locks
from app.api.v1.payments.locks import ReferenceLocks
from app.api.v1.payments.schemas import InitiatePaymentData, InitiatePaymentRequest
from app.api.v1.payments.service import initiate_payment
from app.core.enums import StudentLevel
from app.core.models import Fee, Program
from app.db.session import Base, get_db
from app.gateways.registry import GatewayRegistry
from app.gateways.sandbox import SandboxGateway
from app.main import app
from helpers import RecordingReceiptIssuer


@pytest.fixture()
async def engine(tmp_path):
    """File-backed SQLite so several sessions can work against the same data."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}", echo=False, future=True)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def sandbox() -> SandboxGateway:
    return SandboxGateway()


@pytest.fixture()
def gateways(sandbox: SandboxGateway) -> GatewayRegistry:
    return GatewayRegistry([sandbox])


@pytest.fixture()
def locks() -> ReferenceLocks:
    return ReferenceLocks()


@pytest.fixture()
def receipts() -> RecordingReceiptIssuer:
    return RecordingReceiptIssuer()


@pytest.fixture()
async def client(
    session_factory,
    gateways: GatewayRegistry,
    locks: ReferenceLocks,
    receipts: RecordingReceiptIssuer,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; one DB session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_registry] = lambda: gateways
    app.dependency_overrides[get_reference_locks] = lambda: locks
    app.dependency_overrides[get_receipt_issuer] = lambda: receipts
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def program(db_session: AsyncSession) -> Program:
    prog = Program(program_name="B.Sc. Computer Science", program_type="undergraduate")
    db_session.add(prog)
    await db_session.commit()
    return prog


@pytest.fixture()
def make_fee(db_session: AsyncSession, program: Program):
    async def _make_fee(
        amount: str = "150000",
        fee_category: str = "Tuition",
        levels: Optional[List[str]] = None,
        is_active: bool = True,
    ) -> Fee:
        fee = Fee(
            program_id=program.id,
            fee_category=fee_category,
            amount=Decimal(amount),
            session="2025/2026",
            semester="First",
            levels=levels,
            is_active=is_active,
        )
        db_session.add(fee)
        await db_session.commit()
        return fee

    return _make_fee


@pytest.fixture()
def start_payment(db_session: AsyncSession, gateways: GatewayRegistry):
    """Initiate a sandbox payment for one fee and return the initiation result."""

    async def _start(fee: Fee, percent: int = 100, **overrides) -> InitiatePaymentData:
        fields = {
            "fee_ids": [fee.id],
            "student_email": "ada@student.example.edu",
            "student_name": "Ada Obi",
            "gateway": "sandbox",
            "percent": percent,
            "level": StudentLevel.L100,
            "matric_number": "CSC/2023/001",
        }
        fields.update(overrides)
        return await initiate_payment(db_session, InitiatePaymentRequest(**fields), gateways)

    return _start

