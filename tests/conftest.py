"""
Pytest fixtures for the API tests.

Every test gets a fresh in-memory SQLite database shared by the test session
and the request sessions (StaticPool keeps the single connection alive).
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["JWT_SECRET"] = "test-secret"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from budget_hub.auth.security import create_access_token, get_password_hash
from budget_hub.db import Base, get_db
from budget_hub.main import app
from budget_hub.models.models import BudgetCategory, Expense, Project, ProjectTeam, User
from budget_hub.seed import seed_role_permissions


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db_session(session_factory):
    """Session for arranging data and checking results; role permissions are seeded."""
    session = session_factory()
    seed_role_permissions(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(session_factory, db_session):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role="user", email=None, full_name=None, password="secret123", department="Engineering", is_active=True):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=email or f"{role}{n}@budgethub.io",
            password_hash=get_password_hash(password),
            full_name=full_name or f"{role.title()} {n}",
            department=department,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}

    return _headers


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", full_name="Ada Admin")


@pytest.fixture
def make_project(db_session):
    def _make(owner, name="Website Redesign", total_budget="10000", status="active", **kwargs):
        project = Project(
            name=name,
            total_budget=Decimal(total_budget),
            allocated_budget=Decimal(total_budget),
            spent_budget=Decimal(kwargs.pop("spent_budget", "0")),
            currency="USD",
            status=status,
            manager_id=owner.id,
            created_by=owner.id,
            **kwargs,
        )
        db_session.add(project)
        db_session.commit()
        db_session.refresh(project)
        return project

    return _make


@pytest.fixture
def add_member(db_session):
    def _add(project, user, role="member"):
        member = ProjectTeam(project_id=project.id, user_id=user.id, role=role)
        db_session.add(member)
        db_session.commit()
        return member

    return _add


@pytest.fixture
def make_category(db_session):
    def _make(project, name="Travel", allocated="1000"):
        category = BudgetCategory(
            project_id=project.id,
            name=name,
            name_key=name.lower(),
            allocated_amount=Decimal(allocated),
        )
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category

    return _make


@pytest.fixture
def make_expense(db_session):
    def _make(project, category, submitter, amount="100", status="pending", description="Train tickets"):
        expense = Expense(
            project_id=project.id,
            category_id=category.id if category else None,
            description=description,
            amount=Decimal(amount),
            status=status,
            submitted_by=submitter.id,
        )
        db_session.add(expense)
        db_session.commit()
        db_session.refresh(expense)
        return expense

    return _make
