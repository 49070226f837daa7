"""
Shared fixtures.

The entity store is an in-memory SQLite database created and dropped around
every test; the blob store is an in-memory fake.  Settings are pinned through
the environment before anything under `app` is imported.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("API_SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("EMAIL_ENABLED", "false")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database import Base, get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.models.monthly_package import (  # noqa: E402
    InstitutionType,
    MonthlyPackage,
    PackageStatus,
    Statement,
)
from app.models.user import User, UserRole  # noqa: E402
from app.services.blob_store import BlobNotFound, get_blob_store  # noqa: E402
from app.services.scoping import Caller  # noqa: E402


class FakeBlobStore:
    """In-memory blob store. URLs listed in `broken` fail on fetch."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.broken: set[str] = set()
        self.deleted: list[str] = []

    async def put(self, path: str, content: bytes) -> str:
        url = f"mem://{path}"
        self.objects[url] = content
        return url

    async def delete(self, url: str) -> None:
        self.deleted.append(url)
        self.objects.pop(url, None)

    async def fetch(self, url: str) -> bytes:
        if url in self.broken or url not in self.objects:
            raise BlobNotFound(url)
        return self.objects[url]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


# ── Data factories ───────────────────────────────────────────────────────────

@pytest.fixture
def make_user(session_factory):
    async def _make(email: str, role: UserRole = UserRole.CLIENT, **fields) -> User:
        async with session_factory() as session:
            user = User(email=email, role=role, **fields)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make


@pytest.fixture
def make_package(session_factory):
    async def _make(
        user: User,
        month: int = 1,
        year: int = 2026,
        status: PackageStatus = PackageStatus.NEED_STATEMENTS,
    ) -> MonthlyPackage:
        async with session_factory() as session:
            pkg = MonthlyPackage(user_id=user.id, month=month, year=year, status=status)
            session.add(pkg)
            await session.commit()
            await session.refresh(pkg)
            return pkg

    return _make


@pytest.fixture
def make_statement(session_factory, blob_store):
    async def _make(
        pkg: MonthlyPackage,
        file_name: str = "checking.pdf",
        content: bytes = b"%PDF-1.4 statement",
        institution_name: str = "Chase",
    ) -> Statement:
        url = await blob_store.put(f"statements/{pkg.user_id}/{pkg.id}/{file_name}", content)
        async with session_factory() as session:
            stmt = Statement(
                monthly_package_id=pkg.id,
                institution_name=institution_name,
                account_last4="1234",
                institution_type=InstitutionType.BANK,
                file_url=url,
                file_name=file_name,
                file_size=len(content),
            )
            session.add(stmt)
            await session.commit()
            await session.refresh(stmt)
            return stmt

    return _make


@pytest.fixture
async def client_user(make_user) -> User:
    return await make_user(
        "sarah@example.com", name="Sarah Johnson", company_name="Johnson Bakery LLC"
    )


@pytest.fixture
async def other_client(make_user) -> User:
    return await make_user("mike@example.com", name="Mike Chen", company_name="Chen Consulting")


@pytest.fixture
async def bookkeeper_user(make_user) -> User:
    return await make_user("books@mybookkeepers.com", role=UserRole.BOOKKEEPER, name="Team")


@pytest.fixture
def client_caller(client_user) -> Caller:
    return Caller.from_user(client_user)


@pytest.fixture
def bookkeeper_caller(bookkeeper_user) -> Caller:
    return Caller.from_user(bookkeeper_user)


# ── HTTP ─────────────────────────────────────────────────────────────────────

def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def dispatched(monkeypatch) -> list:
    """Captures notifications handed to dispatch by the routers."""
    sent: list = []

    def _capture(pending):
        sent.extend(pending)
        return len(pending)

    monkeypatch.setattr("app.routers.months.dispatch_notifications", _capture)
    monkeypatch.setattr("app.routers.bookkeeper.dispatch_notifications", _capture)
    monkeypatch.setattr("app.routers.auth.dispatch_notifications", _capture)
    return sent


@pytest.fixture
async def http(session_factory, blob_store, dispatched):
    from app.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
