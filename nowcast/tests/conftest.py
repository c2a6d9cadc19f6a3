import asyncio
import pytest
from typing import AsyncGenerator
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from nowcast.config import Settings
from nowcast.db.session import create_engine_for, create_session_factory, init_db
from nowcast.main import create_app
from nowcast.models.post import Post
from nowcast.models.user import User
from nowcast.services.auth_service import AuthService, pwd_context
from nowcast.services.container import AppServices

TEST_PASSWORD = "Password123"

@pytest.fixture(scope="session")
def password_hash() -> str:
    # Hash once; bcrypt is deliberately slow
    return pwd_context.hash(TEST_PASSWORD)

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    # A file rather than :memory: so request sessions and the relay get their own connections
    return Settings(
        ENVIRONMENT="testing",
        TESTING=True,
        TEST_DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
    )

@pytest.fixture
async def test_engine(test_settings: Settings):
    """Fresh database per test"""
    engine = create_engine_for(test_settings.database_url, test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)

@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session

@pytest.fixture
def redis_server() -> FakeServer:
    """Shared by every client of one test; set ``connected = False`` to simulate an outage"""
    return FakeServer()

@pytest.fixture
async def services(test_settings, test_engine, session_factory, redis_server):
    app_services = AppServices(
        settings=test_settings,
        engine=test_engine,
        session_factory=session_factory,
        redis=FakeAsyncRedis(server=redis_server, decode_responses=True),
        publisher=FakeAsyncRedis(server=redis_server, decode_responses=True),
        subscriber=FakeAsyncRedis(server=redis_server, decode_responses=True),
    )
    yield app_services
    redis_server.connected = True
    await app_services.close()

@pytest.fixture
def cache(services):
    return services.cache

@pytest.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app; ASGITransport skips the lifespan, so services are injected"""
    app = create_app(services=services, app_settings=services.settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

@pytest.fixture
def make_user(test_db: AsyncSession, password_hash: str):
    """Insert an active user directly, skipping the registration flow"""
    async def _make_user(username: str) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=password_hash,
            is_active=True
        )
        test_db.add(user)
        await test_db.commit()
        return user
    return _make_user

@pytest.fixture
def make_post(test_db: AsyncSession):
    """Insert a post directly, without fan-out or notifications"""
    async def _make_post(author: User, text: str = "hello", **fields) -> Post:
        post = Post(author=author, text=text, hashtags=[], **fields)
        test_db.add(post)
        await test_db.commit()
        return post
    return _make_post

@pytest.fixture
def auth_headers(test_settings: Settings, test_db: AsyncSession):
    def _auth_headers(user: User) -> dict:
        token = AuthService(test_db, test_settings).create_access_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers

@pytest.fixture
async def handled(services, monkeypatch) -> asyncio.Queue:
    """Start the relay and collect every notification it persists"""
    queue: asyncio.Queue = asyncio.Queue()
    original = services.relay.handle_event

    async def recording(event):
        notification = await original(event)
        await queue.put(notification)
        return notification

    monkeypatch.setattr(services.relay, "handle_event", recording)
    await services.relay.start()
    return queue
