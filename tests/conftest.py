import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from typing import AsyncGenerator, Callable, Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.main import app
from app.auth.models import StudentProfile, User
from app.auth.security import create_access_token
from app.core.enums import PersonRole
from app.core.locks import ClassLockRegistry
from app.core.models import Department, SchoolClass
from app.db.session import Base, get_db, get_session_factory


@pytest.fixture()
async def engine(tmp_path):
    """Fresh SQLite file per test; NullPool so every session gets its own connection."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def locks() -> ClassLockRegistry:
    return ClassLockRegistry(timeout=2.0)


@pytest.fixture()
async def client(session_factory, locks) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one DB session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.class_locks = locks
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _add_user(db: AsyncSession, username: str, role: PersonRole) -> User:
    user = User(
        first_name=username.capitalize(),
        last_name="Staff",
        full_name=f"{username.capitalize()} Staff",
        username=username,
        password_hash="not-used",
        role=role.value,
        must_change_password=False,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


def _auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def admin_headers(db_session: AsyncSession) -> Dict[str, str]:
    return _auth_headers(await _add_user(db_session, "admin", PersonRole.ADMIN))


@pytest.fixture()
async def hod_headers(db_session: AsyncSession) -> Dict[str, str]:
    return _auth_headers(await _add_user(db_session, "hod", PersonRole.HOD))


@pytest.fixture()
async def teacher_headers(db_session: AsyncSession) -> Dict[str, str]:
    return _auth_headers(await _add_user(db_session, "teacher", PersonRole.TEACHER))


@pytest.fixture()
async def department(db_session: AsyncSession) -> Department:
    dept = Department(code="COMP", name="Computer Engineering", is_active=True)
    db_session.add(dept)
    await db_session.commit()
    return dept


@pytest.fixture()
def make_class(db_session: AsyncSession, department: Department) -> Callable:
    async def _make(name: str = "SE Comp A", max_capacity: int = 75, batch_names=None) -> SchoolClass:
        school_class = SchoolClass(
            name=name,
            year=2,
            department_id=department.id,
            max_capacity=max_capacity,
            batch_names=batch_names or [],
            roster_version=0,
        )
        db_session.add(school_class)
        await db_session.commit()
        return school_class

    return _make


@pytest.fixture()
def enrol(db_session: AsyncSession) -> Callable:
    """Insert an active student straight into a class, bypassing credential issuance."""

    async def _enrol(
        school_class: Optional[SchoolClass],
        first_name: str,
        last_name: str,
        roll_no: Optional[int] = None,
    ) -> User:
        username = f"{first_name}{last_name}".lower()
        user = User(
            first_name=first_name,
            last_name=last_name,
            full_name=f"{first_name} {last_name}",
            username=username,
            password_hash="not-used",
            role=PersonRole.STUDENT.value,
            dob=date(2005, 1, 1),
            must_change_password=True,
            is_active=True,
        )
        user.student_profile = StudentProfile(
            class_id=school_class.id if school_class else None,
            roll_no=roll_no,
            year=1,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _enrol
