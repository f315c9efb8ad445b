import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("CAPSTONE_DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from capstone.api.v2.auth import create_token, hash_password
from capstone.config import Settings
from capstone.db import Base, get_db
from capstone.dependencies import get_services
from capstone.main import app
from capstone.models import (
    DocumentType,
    Project,
    ProjectMember,
    User,
    UserRole,
)
from capstone.schemas.grading import FileReference
from capstone.services import build_services
from capstone.services.notifications import InMemoryNotificationSink

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url=SQLALCHEMY_DATABASE_URL)


@pytest.fixture
def services(settings, sink):
    return build_services(settings, sink=sink)


@pytest.fixture(scope="function")
def client(session, services):
    """
    Create a TestClient that uses the override_get_db dependency.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# === 工厂 ===

@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role: UserRole, username: str = None) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"{role.value}{counter['n']}",
            password_hash=hash_password("password123"),
            role=role,
            full_name=f"{role.value.title()} {counter['n']}",
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_doc_type(session):
    def _make(code: str, display_order: int, supervisor_weight: int = 20,
              committee_weight: int = 80, is_active: bool = True) -> DocumentType:
        doc_type = DocumentType(
            code=code,
            title=f"{code} document",
            supervisor_weight=supervisor_weight,
            committee_weight=committee_weight,
            display_order=display_order,
            is_active=is_active,
        )
        session.add(doc_type)
        session.commit()
        session.refresh(doc_type)
        return doc_type

    return _make


@pytest.fixture
def make_project(session):
    def _make(supervisor: User, members, batch=None, title: str = "Smart Campus") -> Project:
        """``members`` 中第一位是组长。"""
        project = Project(
            title=title,
            supervisor_id=supervisor.id if supervisor else None,
            deadline_batch_id=batch.id if batch else None,
        )
        for index, student in enumerate(members):
            project.members.append(ProjectMember(student_id=student.id, is_leader=index == 0))
        session.add(project)
        session.commit()
        session.refresh(project)
        return project

    return _make


@pytest.fixture
def cast(make_user):
    """一组常用角色。"""

    class Cast:
        leader = make_user(UserRole.STUDENT, "leader")
        member = make_user(UserRole.STUDENT, "member")
        outsider = make_user(UserRole.STUDENT, "outsider")
        supervisor = make_user(UserRole.SUPERVISOR, "supervisor")
        other_supervisor = make_user(UserRole.SUPERVISOR, "other_supervisor")
        evaluator1 = make_user(UserRole.EVALUATION_COMMITTEE, "evaluator1")
        evaluator2 = make_user(UserRole.EVALUATION_COMMITTEE, "evaluator2")
        evaluator3 = make_user(UserRole.EVALUATION_COMMITTEE, "evaluator3")
        fyp = make_user(UserRole.FYP_COMMITTEE, "fyp")
        admin = make_user(UserRole.ADMIN, "admin")

    return Cast


@pytest.fixture
def file_ref():
    return FileReference(id="blob-001", url="https://files.example.org/blob-001")


@pytest.fixture
def flow(session, services, cast, file_ref):
    """把提交推进到指定阶段的辅助函数。"""

    class Flow:
        @staticmethod
        def submit(project, doc_type, actor=None):
            return services.lifecycle.create_submission(
                session, actor or cast.leader, project.id, doc_type.id, file_ref
            )

        @staticmethod
        def approved(project, doc_type):
            submission = Flow.submit(project, doc_type)
            return services.lifecycle.review(session, cast.supervisor, submission.id, approve=True)

        @staticmethod
        def locked(project, doc_type):
            submission = Flow.approved(project, doc_type)
            services.lifecycle.mark_final(session, cast.leader, submission.id)
            return services.lifecycle.lock(session, cast.evaluator1, submission.id)

        @staticmethod
        def evaluated(project, doc_type, supervisor_score, evaluator_scores):
            submission = Flow.locked(project, doc_type)
            services.marking.submit_supervisor_marks(
                session, cast.supervisor, submission.id, supervisor_score
            )
            evaluators = [cast.evaluator1, cast.evaluator2, cast.evaluator3]
            for evaluator, score in zip(evaluators, evaluator_scores):
                services.marking.submit_evaluation_marks(
                    session, evaluator, submission.id, score, finalize=True
                )
            return submission

    return Flow


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token(user.id, user.role.value)}"}


def days(n: int) -> timedelta:
    return timedelta(days=n)
