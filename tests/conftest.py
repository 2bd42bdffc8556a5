from __future__ import annotations

import os
import pathlib
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["STUNDENKONTO_DATABASE_URL"] = "sqlite://"
os.environ["STUNDENKONTO_SECRET_KEY"] = "test-secret-key"

from stundenkonto import models
from stundenkonto.database import Base, get_db
from stundenkonto.main import app

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    # no context manager: the startup hook would seed the configured database
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()


def _make_employee(db_session, **overrides) -> models.Employee:
    values = {
        "username": "mmuster",
        "full_name": "Max Muster",
        "email": "max@example.com",
        "personnel_number": "1001",
        "pin_code": "1234",
        "role": models.EmployeeRole.EMPLOYEE,
    }
    values.update(overrides)
    employee = models.Employee(**values)
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture()
def employee(db_session) -> models.Employee:
    return _make_employee(db_session)


@pytest.fixture()
def admin(db_session) -> models.Employee:
    return _make_employee(
        db_session,
        username="chefin",
        full_name="Erika Chefin",
        email="chefin@example.com",
        personnel_number="0001",
        pin_code="9999",
        role=models.EmployeeRole.ADMIN,
    )


@pytest.fixture()
def employee_client(client, employee):
    response = client.post("/login", data={"pin_code": "1234"})
    assert response.status_code == 200
    return client


@pytest.fixture()
def admin_client(client, admin):
    response = client.post("/login", data={"pin_code": "9999"})
    assert response.status_code == 200
    return client
