import pytest
from fastapi import HTTPException

from app.crud import mapping as mapping_crud
from app.models.mapping import MappingKind
from app.schemas.mapping import AutoMapConfig, MappingCreate, MappingUpdate, SourceEntry
from app.services.mapping import mapping_service


def _entry(label, source, frequency=0):
    return {"raw_label": label, "survey_source": source, "frequency": frequency}


def _create(client, headers, canonical, entries, kind="specialty"):
    return client.post(
        f"/api/mappings/{kind}",
        headers=headers,
        json={"canonical_name": canonical, "source_entries": entries},
    )


class TestMappingApi:
    def test_create_and_get(self, client, auth_headers):
        response = _create(client, auth_headers, "Cardiology", [
            _entry("Cardiology", "MGMA", 2),
            _entry("Cardiovascular Disease", "SullivanCotter", 1),
        ])

        assert response.status_code == 201
        mapping = response.json()
        assert mapping["kind"] == "specialty"
        assert [s["raw_label"] for s in mapping["sources"]] == ["Cardiology", "Cardiovascular Disease"]

        fetched = client.get(f"/api/mappings/specialty/{mapping['id']}", headers=auth_headers)
        assert fetched.json()["canonical_name"] == "Cardiology"

    def test_second_claim_on_same_label_is_rejected(self, client, auth_headers):
        first = _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")]).json()

        response = _create(client, auth_headers, "Heart", [
            _entry("Cardio", "MGMA"),
            _entry("CARDIOLOGY", "MGMA"),
        ])

        assert response.status_code == 409
        assert "Duplicate mapping claim" in response.json()["detail"]
        mappings = client.get("/api/mappings/specialty", headers=auth_headers).json()
        assert [m["id"] for m in mappings] == [first["id"]]
        assert [s["raw_label"] for s in mappings[0]["sources"]] == ["Cardiology"]

    def test_same_label_from_another_source_is_allowed(self, client, auth_headers):
        _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")])

        response = _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "Gallagher")])

        assert response.status_code == 201

    def test_duplicate_inside_one_request_is_rejected(self, client, auth_headers):
        response = _create(client, auth_headers, "Cardiology", [
            _entry("Cardiology", "MGMA"),
            _entry("cardiology ", "MGMA"),
        ])

        assert response.status_code == 409

    def test_same_label_in_another_kind_is_independent(self, client, auth_headers):
        _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")])

        response = _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")], kind="variable")

        assert response.status_code == 201

    def test_wrong_kind_is_not_found(self, client, auth_headers):
        mapping = _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")]).json()

        assert client.get(f"/api/mappings/region/{mapping['id']}", headers=auth_headers).status_code == 404

    def test_clear_twice(self, client, auth_headers):
        _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")])
        _create(client, auth_headers, "Dermatology", [_entry("Dermatology", "MGMA")])

        first = client.delete("/api/mappings/specialty", headers=auth_headers)
        second = client.delete("/api/mappings/specialty", headers=auth_headers)

        assert first.json() == {"kind": "specialty", "deleted": 2}
        assert second.status_code == 200
        assert second.json() == {"kind": "specialty", "deleted": 0}
        assert client.get("/api/mappings/specialty", headers=auth_headers).json() == []

    def test_delete_frees_claims(self, client, auth_headers):
        mapping = _create(client, auth_headers, "Cardiology", [_entry("Cardiology", "MGMA")]).json()

        deleted = client.delete(f"/api/mappings/specialty/{mapping['id']}", headers=auth_headers)

        assert deleted.status_code == 204
        assert _create(client, auth_headers, "Heart", [_entry("Cardiology", "MGMA")]).status_code == 201

    def test_unmapped_endpoint(self, client, auth_headers, make_survey):
        make_survey("MGMA Physician", [{"specialty": "Cardiology"}, {"specialty": "Cardio"}])

        response = client.get(
            "/api/mappings/specialty/unmapped",
            headers=auth_headers,
            params={"provider_type": "PHYSICIAN"},
        )

        assert response.status_code == 200
        assert {e["name"] for e in response.json()} == {"cardiology", "cardio"}


class TestUpdateMapping:
    def _mapping(self, db, user, *entries):
        return mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Cardiology",
            source_entries=[SourceEntry(raw_label=label, survey_source=source) for label, source in entries],
        ))

    def test_add_and_remove_sources(self, db, user):
        mapping = self._mapping(db, user, ("Cardiology", "MGMA"), ("Cardio", "MGMA"))

        updated = mapping_service.update_mapping(db, mapping.id, user.id, MappingKind.specialty, MappingUpdate(
            canonical_name="Cardiovascular",
            add_sources=[SourceEntry(raw_label="Cardiology", survey_source="Gallagher")],
            remove_sources=[SourceEntry(raw_label="cardio", survey_source="MGMA")],
        ))

        assert updated.canonical_name == "Cardiovascular"
        assert [(s.raw_label, s.survey_source) for s in updated.sources] == [
            ("Cardiology", "MGMA"), ("Cardiology", "Gallagher"),
        ]

    def test_entry_can_be_removed_and_re_added(self, db, user):
        mapping = self._mapping(db, user, ("Cardiology", "MGMA"), ("Cardio", "MGMA"))

        updated = mapping_service.update_mapping(db, mapping.id, user.id, MappingKind.specialty, MappingUpdate(
            add_sources=[SourceEntry(raw_label="Cardio", survey_source="MGMA", frequency=3)],
            remove_sources=[SourceEntry(raw_label="Cardio", survey_source="MGMA")],
        ))

        assert [s.raw_label for s in updated.sources] == ["Cardiology", "Cardio"]
        assert updated.sources[1].frequency == 3

    def test_adding_a_claimed_source_is_rejected(self, db, user):
        self._mapping(db, user, ("Cardiology", "MGMA"))
        other = mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Dermatology",
            source_entries=[SourceEntry(raw_label="Dermatology", survey_source="MGMA")],
        ))

        with pytest.raises(HTTPException) as exc:
            mapping_service.update_mapping(db, other.id, user.id, MappingKind.specialty, MappingUpdate(
                add_sources=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
            ))

        assert exc.value.status_code == 409
        assert len(mapping_crud.get(db, id=other.id, user_id=user.id).sources) == 1

    def test_removing_every_source_is_rejected(self, db, user):
        mapping = self._mapping(db, user, ("Cardiology", "MGMA"))

        with pytest.raises(HTTPException) as exc:
            mapping_service.update_mapping(db, mapping.id, user.id, MappingKind.specialty, MappingUpdate(
                remove_sources=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
            ))

        assert exc.value.status_code == 400

    def test_claims_stay_unique_across_operations(self, db, user):
        first = self._mapping(db, user, ("Cardiology", "MGMA"), ("Cardio", "MGMA"))
        second = mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Heart",
            source_entries=[SourceEntry(raw_label="Heart", survey_source="MGMA")],
        ))
        mapping_service.update_mapping(db, first.id, user.id, MappingKind.specialty, MappingUpdate(
            remove_sources=[SourceEntry(raw_label="Cardio", survey_source="MGMA")],
        ))
        mapping_service.update_mapping(db, second.id, user.id, MappingKind.specialty, MappingUpdate(
            add_sources=[SourceEntry(raw_label="Cardio", survey_source="MGMA")],
        ))

        claims = [
            (s.label_key, s.survey_source)
            for m in mapping_crud.get_by_kind(db, user_id=user.id, kind=MappingKind.specialty)
            for s in m.sources
        ]
        assert len(claims) == len(set(claims)) == 3


class TestAutoMap:
    def test_groups_labels_seen_in_several_sources(self, db, user, make_survey):
        make_survey("MGMA Physician", [{"specialty": "Cardiology"}, {"specialty": "Dermatology"}])
        make_survey("SullivanCotter Physician", [{"specialty": "cardiology"}])

        suggestions = mapping_service.auto_map(db, user.id, MappingKind.specialty, AutoMapConfig())

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.canonical_name == "Cardiology"
        assert suggestion.confidence == 1.0
        assert suggestion.existing_mapping_id is None
        assert {e.survey_source for e in suggestion.source_entries} == {"MGMA", "SullivanCotter"}

    def test_matches_existing_mapping(self, db, user, make_survey):
        make_survey("MGMA Physician", [{"specialty": "Cardiology"}])
        make_survey("Gallagher Physician", [{"specialty": "Cardiology"}, {"specialty": "Dermatology"}])
        mapping = mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Cardiology",
            source_entries=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
        ))

        suggestions = mapping_service.auto_map(db, user.id, MappingKind.specialty, AutoMapConfig())

        assert len(suggestions) == 1
        assert suggestions[0].existing_mapping_id == mapping.id
        assert [(e.raw_label, e.survey_source) for e in suggestions[0].source_entries] == [("cardiology", "Gallagher")]

    def test_threshold_filters_weak_matches(self, db, user, make_survey):
        make_survey("Gallagher Physician", [{"specialty": "Cardio"}])
        mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Cardiology",
            source_entries=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
        ))

        loose = mapping_service.auto_map(db, user.id, MappingKind.specialty, AutoMapConfig(confidence_threshold=0.8))
        strict = mapping_service.auto_map(db, user.id, MappingKind.specialty, AutoMapConfig(confidence_threshold=0.9))

        assert loose[0].confidence == 0.85
        assert strict == []

    def test_existing_mappings_can_be_ignored(self, db, user, make_survey):
        make_survey("Gallagher Physician", [{"specialty": "Cardiology"}])
        mapping_service.create_mapping(db, user.id, MappingKind.specialty, MappingCreate(
            canonical_name="Cardiology",
            source_entries=[SourceEntry(raw_label="Cardiology", survey_source="MGMA")],
        ))

        suggestions = mapping_service.auto_map(
            db, user.id, MappingKind.specialty, AutoMapConfig(use_existing_mappings=False)
        )

        assert suggestions == []

    def test_auto_map_persists_nothing(self, client, auth_headers, make_survey):
        make_survey("MGMA Physician", [{"specialty": "Cardiology"}])
        make_survey("ECG Physician", [{"specialty": "Cardiology"}])

        response = client.post("/api/mappings/specialty/auto-map", headers=auth_headers, json={})

        assert response.status_code == 200
        assert len(response.json()) == 1
        assert client.get("/api/mappings/specialty", headers=auth_headers).json() == []


def test_crud_delete_is_scoped_to_owner_and_drops_sources(db, user):
    mapping = mapping_service.create_mapping(db, user.id, MappingKind.region, MappingCreate(
        canonical_name="Northeast",
        source_entries=[SourceEntry(raw_label="NE", survey_source="MGMA")],
    ))

    assert mapping_crud.delete(db, id=mapping.id, user_id=user.id + 1) is None
    assert mapping_crud.delete(db, id=mapping.id, user_id=user.id) is not None
    assert mapping_crud.get(db, mapping.id, user.id) is None
    assert mapping_crud.get_claims(db, user_id=user.id, kind=MappingKind.region) == {}
