"""Pytest configuration and fixtures for Flowdesk tests.

Provides an in-memory database, an in-process Redis stand-in, a seeded
organization chart and an HTTP client wired to both.
"""

import fnmatch
import uuid
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import flowdesk.models  # noqa: F401  register every table on Base.metadata
from flowdesk.auth.deps import get_permission_caches
from flowdesk.auth.jwt import create_access_token
from flowdesk.database import Base, get_db
from flowdesk.main import app
from flowdesk.models.department import Department
from flowdesk.models.knowledge_base import KnowledgeBase
from flowdesk.models.organization import Organization
from flowdesk.models.template import TemplateType, TemplateVisibility, WorkflowTemplate
from flowdesk.models.user import User, UserRole
from flowdesk.models.workflow import Workflow
from flowdesk.services.permissions import PermissionService
from flowdesk.utils.cache import build_permission_caches


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Redis Stand-in ───────────────────────────────────────────────

class FakeRedis:
    """In-process subset of redis.asyncio.Redis: get, setex, scan, delete.

    SCAN pages through a snapshot taken when the cursor starts at 0, so keys
    deleted between pages are neither skipped nor returned twice.
    """

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.scan_calls = 0
        self._snapshot: list[str] = []

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def scan(self, cursor=0, match=None, count=None, **kwargs):
        self.scan_calls += 1
        cursor = int(cursor)
        if cursor == 0:
            self._snapshot = sorted(self.store)
        count = count or 10
        page = self._snapshot[cursor:cursor + count]
        next_cursor = cursor + count
        if next_cursor >= len(self._snapshot):
            next_cursor = 0
        keys = [k for k in page if match is None or fnmatch.fnmatchcase(k, match)]
        return next_cursor, keys

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def ping(self):
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def permission_caches(fake_redis):
    return build_permission_caches(fake_redis)


@pytest.fixture
def permission_service(db_session, permission_caches) -> PermissionService:
    return PermissionService(db_session, permission_caches)


# ── Test Data Fixtures ───────────────────────────────────────────

def _id() -> str:
    return str(uuid.uuid4())


@pytest_asyncio.fixture
async def org_chart(db_session: AsyncSession) -> SimpleNamespace:
    """Two organizations with departments, users and one resource of each kind.

    Acme departments:
        engineering (manager: mgr)
          └── platform
        sales

    Users (Acme): admin (ADMIN), mgr (MEMBER, engineering),
    alice (MEMBER, platform, reports to lead), lead (MEMBER, sales),
    bob (MEMBER, sales), editor (EDITOR, sales), viewer (VIEWER, platform).
    Globex: outsider (ADMIN).

    Alice created the Acme workflow, knowledge base and template.
    """
    acme = Organization(id=_id(), name="Acme")
    globex = Organization(id=_id(), name="Globex")
    db_session.add_all([acme, globex])

    engineering_id, platform_id, sales_id = _id(), _id(), _id()
    mgr_id = _id()
    engineering = Department(
        id=engineering_id, organization_id=acme.id, name="Engineering",
        path=engineering_id, level=0, manager_id=mgr_id,
    )
    platform = Department(
        id=platform_id, organization_id=acme.id, name="Platform",
        parent_id=engineering_id, path=f"{engineering_id}/{platform_id}", level=1,
    )
    sales = Department(
        id=sales_id, organization_id=acme.id, name="Sales", path=sales_id, level=0,
    )
    db_session.add_all([engineering, platform, sales])

    def user(name, role, department=None, **kwargs):
        return User(
            id=kwargs.pop("id", _id()),
            email=f"{name}@example.com",
            name=name.title(),
            role=role,
            organization_id=kwargs.pop("organization_id", acme.id),
            department_id=department.id if department else None,
            **kwargs,
        )

    admin = user("admin", UserRole.ADMIN)
    mgr = user("mgr", UserRole.MEMBER, engineering, id=mgr_id)
    lead = user("lead", UserRole.MEMBER, sales)
    alice = user("alice", UserRole.MEMBER, platform, supervisor_id=lead.id)
    bob = user("bob", UserRole.MEMBER, sales)
    editor = user("editor", UserRole.EDITOR, sales)
    viewer = user("viewer", UserRole.VIEWER, platform)
    outsider = user("outsider", UserRole.ADMIN, organization_id=globex.id)
    db_session.add_all([admin, mgr, lead, alice, bob, editor, viewer, outsider])

    workflow = Workflow(
        id=_id(), organization_id=acme.id, creator_id=alice.id, name="Invoice triage",
    )
    knowledge_base = KnowledgeBase(
        id=_id(), organization_id=acme.id, creator_id=alice.id, name="Support articles",
    )
    template = WorkflowTemplate(
        id=_id(), organization_id=acme.id, creator_id=alice.id,
        creator_department_id=platform.id, name="Onboarding",
        template_type=TemplateType.INTERNAL,
        visibility=TemplateVisibility.ORGANIZATION,
    )
    foreign_workflow = Workflow(
        id=_id(), organization_id=globex.id, creator_id=outsider.id, name="Globex flow",
    )
    db_session.add_all([workflow, knowledge_base, template, foreign_workflow])
    await db_session.flush()

    return SimpleNamespace(
        acme=acme, globex=globex,
        engineering=engineering, platform=platform, sales=sales,
        admin=admin, mgr=mgr, lead=lead, alice=alice, bob=bob,
        editor=editor, viewer=viewer, outsider=outsider,
        workflow=workflow, knowledge_base=knowledge_base, template=template,
        foreign_workflow=foreign_workflow,
    )


# ── HTTP Client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(db_session, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database and Redis dependencies overridden."""

    async def override_get_db():
        yield db_session

    async def override_get_permission_caches():
        return build_permission_caches(fake_redis)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_permission_caches] = override_get_permission_caches

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user: `auth_headers(org_chart.bob)`."""

    def _headers(user: User) -> dict:
        token = create_access_token(
            user_id=user.id,
            role=user.role.value,
            organization_id=user.organization_id,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "cache: Permission cache tests")
    config.addinivalue_line("markers", "api: HTTP route tests")
