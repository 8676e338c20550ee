import bcrypt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from transfer_cms import models  # noqa: F401
from transfer_cms.config import settings
from transfer_cms.database import Base, create_engine_for_url, get_db
from transfer_cms.main import app
from transfer_cms.services.revalidation import PageCacheInvalidator, get_invalidator
from transfer_cms.services.upload_gateway import UploadGateway, get_upload_gateway
from transfer_cms.utils.rate_limit import limiter

ADMIN_PASSWORD = "correct-horse-battery"


class RecordingInvalidator(PageCacheInvalidator):
    """Collects invalidated paths instead of calling a webhook."""

    def __init__(self):
        super().__init__()
        self.calls = []

    async def invalidate(self, paths):
        self.calls.append(list(paths))


@pytest.fixture
def database_path(tmp_path):
    path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def session_factory(database_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{database_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def upload_root(tmp_path):
    return tmp_path / "public"


@pytest.fixture
def gateway(upload_root):
    return UploadGateway(root=upload_root)


@pytest.fixture
def invalidator():
    return RecordingInvalidator()


@pytest.fixture
def admin_headers(monkeypatch):
    hashed = bcrypt.hashpw(ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4))
    monkeypatch.setattr(settings, "ADMIN_PASSWORD_HASH", hashed.decode("utf-8"))
    return {"X-CMS-Password": ADMIN_PASSWORD}


@pytest.fixture
def client(session_factory, gateway, invalidator):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_upload_gateway] = lambda: gateway
    app.dependency_overrides[get_invalidator] = lambda: invalidator
    limiter.enabled = False

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.enabled = True
