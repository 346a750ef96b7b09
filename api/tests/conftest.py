import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ADMIN_ACCESS_TOKEN", "admin-test-token")

from deal_engine.main import app  # noqa: E402
from deal_engine import db as db_module  # noqa: E402
from deal_engine.db import get_session  # noqa: E402
from deal_engine import notifications as notifications_module  # noqa: E402
from deal_engine.models import Project  # noqa: E402

ADMIN_HEADERS = {"X-Access-Token": os.environ["ADMIN_ACCESS_TOKEN"]}


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(test_engine, setup_db):
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def seed_project(session):
    """Insert a project row directly, for tests that drive the services without HTTP."""

    def _seed_project(developer_id=100, status="approved", requires_addendum=True, **extra):
        project = Project(
            developer_id=developer_id,
            title=extra.pop("title", "Acme Robotics"),
            status=status,
            requires_addendum=requires_addendum,
            **extra,
        )
        session.add(project)
        session.commit()
        session.refresh(project)
        return project

    return _seed_project


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, text_body, html_body=None, sender_name=None, reply_to=None):
        messages.append(
            {
                "to": to,
                "subject": subject,
                "text": text_body,
                "html": html_body,
            }
        )

    monkeypatch.setattr(notifications_module, "send_email", fake_send_email)
    return messages


@pytest.fixture
def client(test_engine, setup_db, sent_emails):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return dict(ADMIN_HEADERS)


@pytest.fixture
def make_user(client):
    def _make_user(name: str, role: str = "investor"):
        email = f"{name.lower().replace(' ', '.')}@example.com"
        resp = client.post("/api/users", json={"email": email, "name": name, "role": role}, headers=ADMIN_HEADERS)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {"id": body["id"], "email": email, "headers": {"X-Access-Token": body["access_token"]}}

    return _make_user


@pytest.fixture
def investor(make_user):
    return make_user("Ingrid Investor", "investor")


@pytest.fixture
def developer(make_user):
    return make_user("Dana Developer", "developer")


@pytest.fixture
def make_project(client, developer):
    def _make_project(title="Acme Robotics", requires_addendum=True, live=True, **extra):
        payload = {
            "title": title,
            "tagline": "Robots for warehouses",
            "requires_addendum": requires_addendum,
            "problem": "Picking is slow",
            "traction": "12 pilots",
            "pitch_deck_url": "https://example.com/deck.pdf",
            **extra,
        }
        resp = client.post("/api/projects", json=payload, headers=developer["headers"])
        assert resp.status_code == 201, resp.text
        project_id = resp.json()["id"]
        if live:
            approve = client.patch(
                f"/api/projects/{project_id}/status", json={"status": "approved"}, headers=ADMIN_HEADERS
            )
            assert approve.status_code == 200, approve.text
        return project_id

    return _make_project
