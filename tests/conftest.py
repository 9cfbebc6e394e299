from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE"] = ""

import pytest
from fastapi.testclient import TestClient

from app.core.security import Identity, hash_password, make_token
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.main import app
from app.models.user import User, UserRole

PASSWORD = "correct-horse-1"
_HASHED = hash_password(PASSWORD)


@pytest.fixture()
def db():
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, name: str, role: UserRole = UserRole.citizen, email: str | None = None) -> User:
    user = User(
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        name=name,
        hashed_password=_HASHED,
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def identity_of(user: User) -> Identity:
    return Identity(user_id=user.id, role=user.role, name=user.name)


def auth_headers(user: User) -> dict:
    token = make_token(user.email, user.role.value)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def citizen(db) -> User:
    return make_user(db, "Uma Citizen")


@pytest.fixture()
def neighbour(db) -> User:
    return make_user(db, "Nia Neighbour")


@pytest.fixture()
def authority(db) -> User:
    return make_user(db, "Arun Officer", role=UserRole.authority)
