"""
Test configuration and fixtures for the Accessibility Resource Scanner.

Every test gets its own SQLite database file so scans, issues and the
partial unique index behave as they do against a real database.
"""

import os
import tempfile
from datetime import timedelta
from typing import Generator

from dotenv import load_dotenv

load_dotenv()

# Must be set before app settings are imported
os.environ["DATABASE_URL"] = f"sqlite:///{tempfile.mktemp(suffix='.db')}"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="a11y-logs-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.features.accessibility.models  # noqa: E402, F401
from app.features.accessibility.models.resource import (  # noqa: E402
    CourseResource,
    ResourceType,
    ResourceWorkflowState,
)
from app.features.accessibility.services.orchestrator import ScanOrchestrator  # noqa: E402
from app.platform.db.base import Base  # noqa: E402
from app.platform.utils.clock import utcnow  # noqa: E402

COURSE_ID = "course-1"


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'a11y.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_resource(db_session):
    """Create and commit a CourseResource row."""
    def _make(
        body="<p>Welcome to the course.</p>",
        resource_type=ResourceType.wiki_page,
        title="Course page",
        course_id=COURSE_ID,
        workflow_state=ResourceWorkflowState.published,
        content_type="text/html",
        updated_at=None,
    ) -> CourseResource:
        resource = CourseResource(
            course_id=course_id,
            resource_type=resource_type,
            title=title,
            body=body,
            content_type=content_type,
            workflow_state=workflow_state,
            content_updated_at=updated_at or utcnow() - timedelta(minutes=5),
        )
        db_session.add(resource)
        db_session.commit()
        return resource

    return _make


@pytest.fixture
def dispatched():
    """Scan ids handed to the dispatcher."""
    return []


@pytest.fixture
def orchestrator(session_factory, dispatched) -> ScanOrchestrator:
    return ScanOrchestrator(session_factory, dispatcher=dispatched.append)


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app, session_factory, dispatched) -> Generator[TestClient, None, None]:
    """
    Test client bound to the per-test database. Queued scans are recorded
    in ``dispatched`` instead of being sent to Celery.
    """
    from app.features.accessibility.dependencies.scan import get_scan_dispatcher
    from app.platform.db.session import get_db

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_scan_dispatcher] = lambda: dispatched.append

    with TestClient(test_app) as test_client:
        yield test_client

    test_app.dependency_overrides.clear()
