"""Pytest configuration and fixtures for Accademia tests.

Each test gets its own in-memory SQLite database with the schema created from
the ORM metadata and the role/catalogue/section seed applied.
"""

import time
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import accademia.models  # noqa: F401
from accademia.db.base import Base
from accademia.db.session import get_db
from accademia.db.seeds.seed_roles import seed_roles
from accademia.core.permissions import PermissionEngine
from accademia.core.authorization import AuthMiddleware
from accademia.core.roles import Role
from accademia.core.security import create_session_token, hash_password
from accademia.models.user import User
from accademia.services.audit_service import AuditService
from accademia.services.matrix_service import RoleMatrixEntry, RoleMatrixStore, SqlMatrixBackend
from accademia.services.notification_service import NotificationService

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


# ── In-memory collaborators ──────────────────────────────────────

class MemoryMatrixBackend:
    """Dict-backed matrix persistence with switchable failure modes."""

    def __init__(self, entries=None):
        self.entries = {e.role: e for e in (entries or [])}
        self.fail_reads = False
        self.fail_writes = False
        self.read_delay = 0.0
        self.writes = 0

    def load_role_matrix(self):
        if self.read_delay:
            time.sleep(self.read_delay)
        if self.fail_reads:
            raise ConnectionError("database unreachable")
        return list(self.entries.values())

    def _set(self, role, field, name, flag, expected_version):
        if self.fail_writes:
            raise ConnectionError("database unreachable")
        current = self.entries.get(role) or RoleMatrixEntry(role, frozenset(), frozenset(), 0)
        if expected_version is not None and current.version != expected_version:
            return False
        names = getattr(current, field)
        names = names | {name} if flag else names - {name}
        values = {"permissions": current.permissions, "sections": current.sections, field: names}
        self.entries[role] = RoleMatrixEntry(role, values["permissions"], values["sections"], current.version + 1)
        self.writes += 1
        return True

    def set_permission(self, role, permission_name, granted, expected_version=None):
        return self._set(role, "permissions", permission_name, granted, expected_version)

    def set_section_visibility(self, role, section_name, visible, expected_version=None):
        return self._set(role, "sections", section_name, visible, expected_version)


class MemoryAuditSink:
    def __init__(self, fail: bool = False):
        self.entries = []
        self.fail = fail

    def append(self, entry):
        if self.fail:
            raise ConnectionError("audit table unreachable")
        self.entries.append(entry)


# ── Database ─────────────────────────────────────────────────────

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    with factory() as db:
        seed_roles(db)
    return factory


@pytest.fixture
def db_session(session_factory) -> Generator:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


# ── RBAC collaborators ───────────────────────────────────────────

@pytest.fixture
def notifier():
    return NotificationService(cache=None, buffer_size=100)


@pytest.fixture
def matrix_store(session_factory, notifier):
    store = RoleMatrixStore(SqlMatrixBackend(session_factory), timeout_seconds=5, notifier=notifier)
    store.load()
    return store


@pytest.fixture
def engine(matrix_store):
    return PermissionEngine(store=matrix_store)


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def authz(engine, audit_sink, notifier):
    return AuthMiddleware(engine, audit_sink=audit_sink, notifier=notifier)


# ── Users ────────────────────────────────────────────────────────

def make_user(db, role: Role, email: Optional[str] = None, is_active: bool = True) -> User:
    user = User(
        email=email or f"{role.value}@example.com",
        hashed_password=PASSWORD_HASH,
        full_name=f"Test {role.value}",
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def users(db_session):
    return {role: make_user(db_session, role) for role in Role}


@pytest.fixture
def tokens(users):
    return {role: create_session_token(user.id) for role, user in users.items()}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ── HTTP ─────────────────────────────────────────────────────────

@pytest.fixture
def app(session_factory, matrix_store, notifier):
    from accademia.main import create_app

    application = create_app(
        matrix_store=matrix_store,
        audit_sink=AuditService(session_factory),
        notifier=notifier,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
