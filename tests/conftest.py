"""Pytest configuration and shared fixtures."""

import os

# Must be set before the app modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
for _name in ("FIREBASE_API_KEY", "FIREBASE_PROJECT_ID", "FIREBASE_AUTH_DOMAIN", "FIRESTORE_ACCESS_TOKEN"):
    os.environ[_name] = ""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from app.database import Base, SessionLocal, engine
from app.core.security import create_access_token
from app.crud import survey as survey_crud
from app.crud.user import user as user_crud
from app.models.survey import ProviderType, DataCategory
from app.services.cloud_sync import cloud_sync_service
from app.services.cloud_sync.connectivity import ConnectivityMonitor
from app.services.cloud_sync.firestore_client import FirestoreClient
from app.services.provider_type import derive_survey_source, derive_data_category


@pytest.fixture
def db():
    """Fresh in-memory database per test.

    Returns:
        Session: SQLAlchemy session bound to the shared test engine
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_cloud_sync():
    """Every test starts with cloud sync unconfigured."""
    cloud_sync_service.client = None
    cloud_sync_service._adapters = {}
    cloud_sync_service.monitor = ConnectivityMonitor(None)
    yield
    cloud_sync_service.client = None
    cloud_sync_service._adapters = {}
    cloud_sync_service.monitor = ConnectivityMonitor(None)


@pytest.fixture
def client(db) -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture
def user(db):
    return user_crud.create(db, email="owner@example.com", password="secret123")


@pytest.fixture
def auth_headers(user) -> Dict[str, str]:
    token = create_access_token(data={"id": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_survey(db, user):
    """Factory storing a survey with rows for the default user.

    Rows are dicts of SurveyRow columns; ``data`` defaults to the row's
    labels keyed by their standard header names.
    """
    def _make(
        survey_type: str,
        rows: List[Dict[str, Any]],
        name: Optional[str] = None,
        provider_type: Optional[ProviderType] = None,
        data_category: Optional[DataCategory] = None,
        user_id: Optional[int] = None
    ):
        stored_rows = []
        for row in rows:
            row = dict(row)
            row.setdefault("data", {
                key.replace("_", " ").title(): value for key, value in row.items()
            })
            stored_rows.append(row)

        return survey_crud.create_with_rows(
            db,
            survey_data={
                "name": name or f"{survey_type} 2024",
                "year": "2024",
                "survey_type": survey_type,
                "survey_source": derive_survey_source(survey_type),
                "provider_type": provider_type,
                "data_category": data_category or derive_data_category(survey_type),
            },
            rows=stored_rows,
            user_id=user_id or user.id,
        )

    return _make


class FakeFirestore:
    """In-process stand-in for the Firestore REST API behind httpx.MockTransport.

    Attributes:
        commits: Write lists of every successful commit, in order
        documents: Stored document fields keyed by full document name
        failures: Commit number (1-based, counting attempts) -> (HTTP status, Firestore status)
    """

    def __init__(self):
        self.commits: List[List[Dict[str, Any]]] = []
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.failures: Dict[int, tuple] = {}
        self.fail_always: Optional[tuple] = None
        self.attempts = 0
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.endswith(":commit"):
            self.attempts += 1
            failure = self.fail_always or self.failures.get(self.attempts)
            if failure:
                code, status = failure
                return httpx.Response(code, json={"error": {"code": code, "status": status, "message": status}})

            writes = json.loads(request.content)["writes"]
            for write in writes:
                if "update" in write:
                    self.documents[write["update"]["name"]] = write["update"]["fields"]
                else:
                    self.documents.pop(write["delete"], None)
            self.commits.append(writes)
            return httpx.Response(200, json={"writeResults": [{} for _ in writes]})

        if request.method == "GET":
            name = path.split("/v1/", 1)[-1]
            children = [
                {"name": doc_name}
                for doc_name in self.documents
                if doc_name.rsplit("/", 1)[0] == name
            ]
            if children:
                return httpx.Response(200, json={"documents": children})
            if name in self.documents:
                return httpx.Response(200, json={"name": name, "fields": self.documents[name]})
            if name.count("/") % 2 == 1:
                # Collection path with no documents
                return httpx.Response(200, json={})
            return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": "missing"}})

        return httpx.Response(400, json={"error": {"code": 400, "status": "INVALID_ARGUMENT", "message": "bad"}})

    def documents_in(self, collection_suffix: str) -> List[str]:
        return [name for name in self.documents if name.rsplit("/", 1)[0].endswith(collection_suffix)]


@pytest.fixture
def firestore() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def firestore_client(firestore) -> FirestoreClient:
    return FirestoreClient(
        project_id="demo-project",
        api_key="test-key",
        base_url="https://firestore.test/v1",
        transport=httpx.MockTransport(firestore.handler),
    )


@pytest.fixture
def no_sleep():
    """Replacement for asyncio.sleep that records requested delays (seconds)."""
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
