from fastapi.testclient import TestClient

from main import app
from app.models.mapping import MappingKind
from app.schemas.mapping import MappingCreate, SourceEntry
from app.services.cloud_sync import cloud_sync_service
from app.services.cloud_sync.retry import RetryPolicy
from app.services.mapping import mapping_service


def _rows(*labels):
    return [{"specialty": label, "variable": "TCC", "p50": 100.0, "n_incumbents": 5} for label in labels]


def test_sync_requires_configuration(client, auth_headers, make_survey):
    survey = make_survey("MGMA Physician", _rows("Cardiology"))

    queue = client.get("/api/sync/queue", headers=auth_headers)
    sync = client.post(f"/api/sync/surveys/{survey.id}", headers=auth_headers)

    assert queue.status_code == 503
    assert "FIREBASE_API_KEY" in queue.json()["detail"]
    assert sync.status_code == 503


def test_status_without_configuration(client, auth_headers):
    response = client.get("/api/sync/status", headers=auth_headers)

    assert response.json()["status"] == "disconnected"


def test_sync_survey(client, auth_headers, make_survey, firestore_client, firestore, user):
    cloud_sync_service.configure(client=firestore_client)
    survey = make_survey("MGMA Physician", _rows("Cardiology", "Dermatology"))

    response = client.post(f"/api/sync/surveys/{survey.id}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["rows_written"] == 2
    assert response.json()["progress"] == [100.0]
    survey_doc = firestore.documents[
        f"projects/demo-project/databases/(default)/documents/users/{user.id}/surveys/{survey.id}"
    ]
    assert survey_doc["surveySource"] == {"stringValue": "MGMA"}
    assert "metadata" not in survey_doc
    assert len(firestore.documents_in(f"/users/{user.id}/surveyData")) == 2


def test_sync_unknown_survey(client, auth_headers, firestore_client):
    cloud_sync_service.configure(client=firestore_client)

    assert client.post("/api/sync/surveys/999", headers=auth_headers).status_code == 404


def test_quota_exhaustion_is_reported(client, auth_headers, make_survey, firestore_client, firestore, no_sleep, user):
    cloud_sync_service.configure(client=firestore_client)
    cloud_sync_service.get_adapter(user.id).retry_policy = RetryPolicy(sleep=no_sleep)
    firestore.fail_always = (429, "RESOURCE_EXHAUSTED")
    survey = make_survey("MGMA Physician", _rows("Cardiology"))

    response = client.post(f"/api/sync/surveys/{survey.id}", headers=auth_headers)

    assert response.status_code == 429
    assert "quota exceeded" in response.json()["detail"].lower()


def test_migrate_and_sync_mappings(client, auth_headers, make_survey, firestore_client, firestore, db, user):
    cloud_sync_service.configure(client=firestore_client)
    make_survey("MGMA Physician", _rows("Cardiology"))
    make_survey("Gallagher Physician", _rows("Cardiology"))
    mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
        canonical_name="Cardiology",
        source_entries=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
    ))

    migrated = client.post("/api/sync/migrate", headers=auth_headers, json={})
    mappings = client.post("/api/sync/mappings/specialty", headers=auth_headers)

    assert migrated.json() == {"migrated": 2, "failed": 0, "errors": []}
    assert mappings.json() == {"kind": "specialty", "chunks_committed": 1}
    assert len(firestore.documents_in(f"/users/{user.id}/surveys")) == 2
    assert len(firestore.documents_in(f"/users/{user.id}/specialtyMappings")) == 1


def test_delete_survey_with_remote(client, auth_headers, make_survey, firestore_client, firestore, user):
    cloud_sync_service.configure(client=firestore_client)
    survey = make_survey("MGMA Physician", _rows("Cardiology", "Oncology"))
    client.post(f"/api/sync/surveys/{survey.id}", headers=auth_headers)

    response = client.delete(f"/api/surveys/{survey.id}", headers=auth_headers, params={"include_remote": True})

    assert response.status_code == 204
    assert firestore.documents_in(f"/users/{user.id}/surveys") == []
    assert firestore.documents_in(f"/users/{user.id}/surveyData") == []


def test_offline_sync_is_queued_until_online(db, auth_headers, make_survey, firestore_client, firestore, user):
    survey = make_survey("MGMA Physician", _rows("Cardiology"))

    with TestClient(app) as live:
        cloud_sync_service.configure(client=firestore_client)

        offline = live.post("/api/sync/online", headers=auth_headers, json={"online": False})
        queued = live.post(f"/api/sync/surveys/{survey.id}", headers=auth_headers)
        blocked = live.delete(f"/api/surveys/{survey.id}", headers=auth_headers, params={"include_remote": True})

        assert offline.json() == {"online": False, "queued_operations": 0}
        assert queued.status_code == 202
        assert queued.json() == {"online": False, "queued_operations": 1}
        assert blocked.status_code == 502
        assert firestore.commits == []

        online = live.post("/api/sync/online", headers=auth_headers, json={"online": True})

        assert online.json() == {"online": True, "queued_operations": 0}
        assert len(firestore.documents_in(f"/users/{user.id}/surveyData")) == 1
        assert live.get(f"/api/surveys/{survey.id}", headers=auth_headers).status_code == 200
