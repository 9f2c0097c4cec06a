import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT", "10000/minute")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.core.database.engine import get_db, init_db  # noqa: E402
from app.features.permissions.models import Permission  # noqa: E402
from app.features.permissions.service import RolePolicyManager  # noqa: E402
from app.features.permissions.store import SqlAlchemyPermissionStore  # noqa: E402
from app.features.users.models import User  # noqa: E402
from tests.fakes import InMemoryPermissionStore  # noqa: E402


CATALOG = ["create_quiz", "view_students", "edit_syllabus", "publish_quiz", "manage_coupons"]
INSTRUCTOR_PERMISSIONS = ["create_quiz", "view_students"]


@pytest.fixture
def store():
    """In-memory store: catalog, Instructor policy and user 7 (Instructor)."""
    store = InMemoryPermissionStore()
    for name in CATALOG:
        store.add_permission(name)
    store.grant_role("Instructor", *INSTRUCTOR_PERMISSIONS)
    store.add_user("7", "Instructor")
    return store


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def setup():
        await init_db(engine)
        async with factory() as db:
            db.add_all([Permission(name=name, description=name.replace("_", " ")) for name in CATALOG])
            db.add(User(id="7", full_name="Ada Instructor", email="ada@example.com", role="Instructor"))
            db.add(User(id="8", full_name="Bob Student", email="bob@example.com", role="User"))
            await db.commit()
            await RolePolicyManager(SqlAlchemyPermissionStore(db)).set_role_permissions(
                "Instructor", INSTRUCTOR_PERMISSIONS
            )

    asyncio.run(setup())
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
