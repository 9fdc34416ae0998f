"""
FixMyArea - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import datetime, timedelta
from typing import AsyncGenerator, List, Tuple

import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set testing environment before the app reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="fixmyarea-uploads-")
os.environ["REQUIRE_VERIFICATION_TICKET"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("TWILIO_ACCOUNT_SID", None)
os.environ.pop("SMTP_HOST", None)

from fixmyarea.auth.utils import create_session_token, hash_password
from fixmyarea.database import Base, get_db
from fixmyarea.main import app
from fixmyarea.models.db_models import User, UserRole, UserStatus
from fixmyarea.services.location_service import LocationCache, get_location_cache
from fixmyarea.utils.clock import get_clock
from fixmyarea.utils.notifications import DispatchResult, get_dispatcher

fake = Faker("en_IN")

TEST_PASSWORD = "password123"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDispatcher:
    """Records outgoing OTPs instead of calling Twilio/SMTP"""

    def __init__(self):
        self.sms: List[Tuple[str, str, str]] = []
        self.emails: List[Tuple[str, str, str]] = []
        self.sms_fails = False

    async def send_via_sms(self, phone, otp, otp_type) -> DispatchResult:
        self.sms.append((phone, otp, otp_type))
        if self.sms_fails:
            return DispatchResult(False, error="SMS service not configured")
        return DispatchResult(True, message_id=f"SM{len(self.sms)}")

    async def send_via_email(self, email, otp, otp_type) -> DispatchResult:
        self.emails.append((email, otp, otp_type))
        return DispatchResult(True, message_id=f"<{len(self.emails)}@test>")

    def last_code(self) -> str:
        return self.sms[-1][1]


def random_phone() -> str:
    return fake.numerify("9#########")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def client(db_session: AsyncSession, clock: FakeClock, dispatcher: FakeDispatcher) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, clock, dispatch and cache overrides"""
    async def override_get_db():
        yield db_session

    cache = LocationCache(clock=clock)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_location_cache] = lambda: cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session: AsyncSession, clock: FakeClock):
    """Insert a user directly; returns the ORM object"""
    async def make_user(role: UserRole = UserRole.RESIDENT, **overrides) -> User:
        fields = dict(
            name=fake.name()[:50],
            phone=random_phone(),
            role=role,
            state="Kerala",
            district="Ernakulam",
            village="Aluva",
            areas_assigned=[],
            password_hash=hash_password(TEST_PASSWORD),
            status=UserStatus.ACTIVE,
            login_count=0,
            created_at=clock(),
        )
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return make_user


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user)}"}


@pytest.fixture
async def resident(user_factory) -> User:
    return await user_factory(UserRole.RESIDENT)


@pytest.fixture
async def staff(user_factory) -> User:
    return await user_factory(UserRole.STAFF)


@pytest.fixture
async def other_staff(user_factory) -> User:
    return await user_factory(UserRole.STAFF)


@pytest.fixture
async def admin(user_factory) -> User:
    return await user_factory(UserRole.ADMIN)


@pytest.fixture
def resident_headers(resident: User) -> dict:
    return bearer(resident)


@pytest.fixture
def staff_headers(staff: User) -> dict:
    return bearer(staff)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return bearer(admin)


@pytest.fixture
def headers_for():
    return bearer
