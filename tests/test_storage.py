from datetime import datetime

from app.models.mapping import MappingKind
from app.schemas.mapping import MappingCreate, SourceEntry
from app.services.cloud_sync import cloud_sync_service
from app.services.learned_mapping import learned_mapping_service
from app.services.mapping import mapping_service


def _seed(db, user, make_survey):
    make_survey("MGMA Physician", [{"specialty": "Cardiology"}])
    make_survey("Gallagher APP", [{"specialty": "Nurse Practitioner"}])
    mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
        canonical_name="Cardiology",
        source_entries=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
    ))
    learned_mapping_service.save_mapping(db, user.id, MappingKind.specialty, "NP", "Nurse Practitioner")


def test_export_bundle(client, auth_headers, db, user, make_survey):
    _seed(db, user, make_survey)

    response = client.get("/api/storage/export", headers=auth_headers)

    bundle = response.json()
    assert set(bundle) == {"surveys", "exportDate", "version", "totalSurveys"}
    assert bundle["version"] == "1.0"
    assert bundle["totalSurveys"] == 2
    assert [s["survey_source"] for s in bundle["surveys"]] == ["MGMA", "Gallagher"]
    assert datetime.fromisoformat(bundle["exportDate"]).tzinfo is not None


def test_export_is_per_user(client, auth_headers, make_survey, db):
    from app.crud.user import user as user_crud

    other = user_crud.create(db, email="other@example.com", password="secret123")
    make_survey("MGMA Physician", [{"specialty": "Cardiology"}], user_id=other.id)

    assert client.get("/api/storage/export", headers=auth_headers).json()["totalSurveys"] == 0


def test_clear_all_twice(client, auth_headers, db, user, make_survey):
    _seed(db, user, make_survey)

    first = client.delete("/api/storage", headers=auth_headers)
    second = client.delete("/api/storage", headers=auth_headers)

    assert first.json() == {
        "surveys_deleted": 2,
        "mappings_deleted": 1,
        "learned_mappings_deleted": 1,
        "remote_documents_deleted": None,
    }
    assert second.status_code == 200
    assert second.json()["surveys_deleted"] == 0
    assert client.get("/api/surveys", headers=auth_headers).json() == []


def test_clear_all_remote_without_configuration_keeps_local_data(client, auth_headers, db, user, make_survey):
    _seed(db, user, make_survey)

    response = client.delete("/api/storage", headers=auth_headers, params={"include_remote": True})

    assert response.status_code == 503
    assert len(client.get("/api/surveys", headers=auth_headers).json()) == 2


def test_clear_all_remote(client, auth_headers, db, user, make_survey, firestore_client, firestore):
    cloud_sync_service.configure(client=firestore_client)
    _seed(db, user, make_survey)
    client.post("/api/sync/migrate", headers=auth_headers, json={})
    client.post("/api/sync/mappings/specialty", headers=auth_headers)
    client.post("/api/sync/learned-mappings", headers=auth_headers)
    remote_count = len(firestore.documents)

    response = client.delete("/api/storage", headers=auth_headers, params={"include_remote": True})

    assert response.status_code == 200
    assert response.json()["remote_documents_deleted"] == remote_count
    assert firestore.documents == {}
