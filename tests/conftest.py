import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def engine():
    from crisiswatch.models import init_db

    test_engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(engine):
    TestingSessionLocal = sessionmaker(
        class_=AsyncSession,
        bind=engine,
        autoflush=False,
        expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session):
    from crisiswatch.main import app
    from crisiswatch.models import get_db

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def category(db_session):
    from crisiswatch.services import category_service
    return await category_service.create_category(db_session, "Mental Health Support")


@pytest_asyncio.fixture
async def other_category(db_session):
    from crisiswatch.services import category_service
    return await category_service.create_category(db_session, "Academic Concerns")


@pytest.fixture
def keyword_factory():
    """构造未持久化的关键词，用于纯匹配/评分测试"""
    from crisiswatch.models import CrisisKeyword

    counter = {"id": 0}

    def build(
        text,
        severity_level="low",
        exact_match=False,
        case_sensitive=False,
        is_active=True,
        category_id=None,
        keyword_id=None
    ):
        counter["id"] += 1
        return CrisisKeyword(
            id=keyword_id if keyword_id is not None else counter["id"],
            keyword=text,
            severity_level=severity_level,
            exact_match=exact_match,
            case_sensitive=case_sensitive,
            is_active=is_active,
            category_id=category_id,
            trigger_count=0
        )

    return build


@pytest.fixture
def sample_csv():
    return (
        "keyword,severity_level,exact_match,case_sensitive\n"
        "Hopeless,medium,no,no\n"
        "want to die,critical,yes,no\n"
        ",high,no,no\n"
        "overwhelmed,extreme,no,no\n"
        "worried,,no,no\n"
    )
