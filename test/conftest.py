"""
AgriModel backend - test configuration and fixtures.

Each test gets a fresh in-memory SQLite database and cache. The app lifespan is
not run; config.db and config.cache are set directly.
"""
import os
import tempfile

import pytest
from faker import Faker

_tmp = tempfile.mkdtemp(prefix="agrimodel-test-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["USE_S3"] = "false"
os.environ["UPLOADS_DIR"] = os.path.join(_tmp, "uploads")
os.environ["LOG_FILE"] = os.path.join(_tmp, "logs", "app.log")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from fastapi.testclient import TestClient

import config
from app import app
from auth.security import create_access_token, get_password_hash, token_claims_for
from database.connection import Database
from database.models import (
    User, UserRole, ApprovalStatus, College, Project, DataSubmission, SubmissionStatus,
)
from services.auth_service import generate_college_code, generate_user_code
from services.cache_service import InMemoryCache

fake = Faker()

DEFAULT_PASSWORD = "testpassword123"


@pytest.fixture
def db():
    """Fresh database per test."""
    config.db = Database("sqlite://")
    config.db.create_tables()
    config.cache = InMemoryCache()
    config.s3_client = None
    yield config.db
    config.db.engine.dispose()
    config.db = None
    config.cache = None


@pytest.fixture
def client(db):
    return TestClient(app)


class Factory:
    """Creates rows in their own committed session and returns detached, loaded objects."""

    def __init__(self, database: Database):
        self.database = database

    def _save(self, obj):
        with self.database.get_session() as session:
            session.add(obj)
            session.flush()
            session.refresh(obj)
            session.expunge(obj)
        return obj

    def college(self, status=ApprovalStatus.APPROVED, name=None):
        return self._save(College(
            name=name or fake.company(),
            college_code=generate_college_code(),
            location=fake.city(),
            status=status,
        ))

    def user(self, role=UserRole.STUDENT, college=None, status=ApprovalStatus.APPROVED,
             is_active=True, password=DEFAULT_PASSWORD, email=None, department=None):
        return self._save(User(
            user_code=generate_user_code(role),
            name=fake.name(),
            email=email or f"{fake.unique.user_name()}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            status=status,
            is_active=is_active,
            college_id=college.id if college else None,
            department=department,
        ))

    def project(self, owner, name=None, **kwargs):
        return self._save(Project(
            name=name or f"{fake.word().title()} Yield Trial",
            description=fake.sentence(),
            created_by=owner.id,
            **kwargs,
        ))

    def submission(self, student, project=None, status=SubmissionStatus.PENDING, **kwargs):
        return self._save(DataSubmission(
            student_id=student.id,
            project_id=project.id if project else None,
            status=status,
            data_content=kwargs.pop("data_content", {"crop": "maize", "plot": fake.bothify("P-##")}),
            **kwargs,
        ))


@pytest.fixture
def factory(db):
    return Factory(db)


def auth_headers(user) -> dict:
    token = create_access_token(token_claims_for(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def college(factory):
    return factory.college()


@pytest.fixture
def super_admin(factory):
    return factory.user(role=UserRole.SUPER_ADMIN)


@pytest.fixture
def college_admin(factory, college):
    return factory.user(role=UserRole.COLLEGE_ADMIN, college=college)


@pytest.fixture
def professor(factory, college):
    return factory.user(role=UserRole.PROFESSOR, college=college)


@pytest.fixture
def student(factory, college):
    return factory.user(role=UserRole.STUDENT, college=college)


@pytest.fixture
def other_college(factory):
    return factory.college()


@pytest.fixture
def other_student(factory, other_college):
    return factory.user(role=UserRole.STUDENT, college=other_college)
