"""测试共用 fixture"""

import pytest

from auth_service.core.config import OTPPolicy, Settings
from auth_service.core.database import create_db_engine, create_session_maker, init_db
from auth_service.core.security import TokenIssuer
from auth_service.services.counter_store import MemoryCounterStore
from auth_service.services.email_service import EmailProvider
from auth_service.services.identity_store import IdentityStore
from auth_service.services.otp_service import OTPService
from auth_service.services.otp_store import OTPStore

from helpers import FakeClock, RecordingEmailProvider

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_JWT_SECRET = "test-secret-key-for-jwt-signing-32b"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine():
    engine = create_db_engine(Settings(database_url=TEST_DATABASE_URL))
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    session_maker = create_session_maker(engine)
    async with session_maker() as session:
        yield session


@pytest.fixture
def otp_store(session):
    return OTPStore(session)


@pytest.fixture
def identity_store(session):
    return IdentityStore(session)


@pytest.fixture
def counter_store(clock):
    return MemoryCounterStore(clock=clock)


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def token_issuer():
    return TokenIssuer(secret_key=TEST_JWT_SECRET)


@pytest.fixture
def policy():
    return OTPPolicy()


@pytest.fixture
def make_otp_service(otp_store, identity_store, counter_store, token_issuer, policy, clock):
    def factory(email_provider: EmailProvider, delivery_timeout: float = 5.0) -> OTPService:
        return OTPService(
            otp_store=otp_store,
            identity_store=identity_store,
            counter_store=counter_store,
            email_provider=email_provider,
            token_issuer=token_issuer,
            policy=policy,
            delivery_timeout=delivery_timeout,
            clock=clock,
        )
    return factory


@pytest.fixture
def otp_service(make_otp_service, email_provider):
    return make_otp_service(email_provider)
