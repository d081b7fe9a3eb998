from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.exceptions import CloudSyncNotConfiguredError, RetryableSyncError
from app.core.logging_config import logger
from app.crud import survey as survey_crud, mapping as mapping_crud
from app.crud.learned_mapping import learned_mapping_crud
from app.models.mapping import Mapping, MappingKind
from app.models.learned_mapping import LearnedMapping
from app.models.survey import Survey, SurveyRow
from app.schemas.sync import QueueStatus
from app.services.survey import survey_service
from app.services.cloud_sync.adapter import (
    CloudSyncAdapter, ProgressCallback, SURVEYS_COLLECTION, SURVEY_DATA_COLLECTION
)
from app.services.cloud_sync.connectivity import ConnectivityMonitor
from app.services.cloud_sync.firestore_client import FirestoreClient

MAPPING_COLLECTIONS = {
    MappingKind.specialty: "specialtyMappings",
    MappingKind.column: "columnMappings",
    MappingKind.region: "regionMappings",
    MappingKind.provider_type: "providerTypeMappings",
    MappingKind.variable: "variableMappings",
}
LEARNED_MAPPINGS_COLLECTION = "learnedMappings"

USER_COLLECTIONS = [
    SURVEYS_COLLECTION,
    SURVEY_DATA_COLLECTION,
    *MAPPING_COLLECTIONS.values(),
    LEARNED_MAPPINGS_COLLECTION,
]


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def survey_document(survey: Survey) -> Dict[str, Any]:
    return {
        "id": survey.id,
        "name": survey.name,
        "year": survey.year,
        "type": survey.survey_type,
        "surveySource": survey.survey_source,
        "providerType": _enum_value(survey.provider_type),
        "dataCategory": _enum_value(survey.data_category),
        "rowCount": survey.row_count,
        "uploadDate": survey.uploaded_at,
        "metadata": survey.file_metadata,
    }


def row_document(row: SurveyRow) -> Dict[str, Any]:
    return {
        "rowIndex": row.row_index,
        "specialty": row.specialty,
        "region": row.region,
        "providerType": row.provider_type,
        "variable": row.variable,
        "p25": row.p25,
        "p50": row.p50,
        "p75": row.p75,
        "p90": row.p90,
        "n_orgs": row.n_orgs,
        "n_incumbents": row.n_incumbents,
        "data": row.data,
    }


def mapping_document(mapping: Mapping) -> Dict[str, Any]:
    return {
        "id": mapping.id,
        "kind": _enum_value(mapping.kind),
        "standardizedName": mapping.canonical_name,
        "providerType": _enum_value(mapping.provider_type),
        "sources": [
            {
                "rawLabel": source.raw_label,
                "surveySource": source.survey_source,
                "frequency": source.frequency,
            }
            for source in mapping.sources
        ],
        "createdAt": mapping.created_at,
        "updatedAt": mapping.updated_at,
    }


def learned_document(entry: LearnedMapping) -> Dict[str, Any]:
    return {
        "type": _enum_value(entry.mapping_type),
        "original": entry.original,
        "corrected": entry.corrected,
        "providerType": entry.provider_type,
        "surveySource": entry.survey_source,
    }


class CloudSyncService:
    """
    Entry point for remote mirroring.

    Holds the shared Firestore client, the connectivity monitor and one
    adapter per user, so each user's offline queue survives across requests.
    """

    def __init__(self):
        self.client: Optional[FirestoreClient] = None
        self.monitor = ConnectivityMonitor(None)
        self._adapters: Dict[int, CloudSyncAdapter] = {}

    @property
    def configured(self) -> bool:
        return self.client is not None

    def configure(self, client: Optional[FirestoreClient] = None) -> None:
        """
        Create the client when the environment provides Firebase settings.

        Args:
            client: Pre-built client, used as-is (tests pass one with a mock transport)
        """
        if client is None and not settings.firebase_configured:
            logger.warning(
                "Cloud sync disabled; missing " + ", ".join(settings.missing_firebase_settings)
            )
            self.client = None
        else:
            self.client = client or FirestoreClient()
            logger.info(f"Cloud sync enabled for project '{self.client.project_id}'")

        self.monitor = ConnectivityMonitor(self.client)
        self._adapters = {}

    def get_adapter(self, user_id: int) -> CloudSyncAdapter:
        """
        Raises:
            CloudSyncNotConfiguredError: If the backend credentials are missing
        """
        if self.client is None:
            raise CloudSyncNotConfiguredError(
                settings.missing_firebase_settings or ["FIREBASE_API_KEY", "FIREBASE_PROJECT_ID"]
            )
        adapter = self._adapters.get(user_id)
        if adapter is None:
            adapter = CloudSyncAdapter(self.client, user_id)
            self._adapters[user_id] = adapter
        return adapter

    def queue_status(self, user_id: int) -> QueueStatus:
        adapter = self.get_adapter(user_id)
        return QueueStatus(online=adapter.online, queued_operations=adapter.queued_operations)

    async def set_online(self, user_id: int, online: bool) -> QueueStatus:
        adapter = self.get_adapter(user_id)
        await adapter.set_online(online)
        return QueueStatus(online=adapter.online, queued_operations=adapter.queued_operations)

    def _require_online(self, adapter: CloudSyncAdapter) -> None:
        # Deletes run before the local delete, so they cannot wait in the queue
        if not adapter.online:
            raise RetryableSyncError("Cloud sync is offline; go online before deleting remote data", status="UNAVAILABLE")

    def _survey_payload(self, db: Session, survey: Survey):
        rows = survey_crud.get_rows(db, survey_id=survey.id)
        return survey_document(survey), [row_document(row) for row in rows]

    def sync_survey(
        self,
        db: Session,
        user_id: int,
        survey_id: int,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Mirror one survey and its rows.

        Returns:
            Future resolving to SyncSurveyResponse

        Raises:
            HTTPException 404: If survey not found
            CloudSyncNotConfiguredError: If the backend is not configured
        """
        adapter = self.get_adapter(user_id)
        survey = survey_service.get_survey(db, survey_id, user_id)
        survey_doc, rows = self._survey_payload(db, survey)
        return adapter.save_survey(survey_doc, rows, on_progress)

    def migrate_surveys(self, db: Session, user_id: int, survey_ids: Optional[List[int]] = None):
        """Mirror many surveys; per-survey failures are collected, not raised."""
        adapter = self.get_adapter(user_id)
        surveys = survey_crud.get_multi(db, user_id=user_id, limit=None)
        if survey_ids is not None:
            wanted = set(survey_ids)
            surveys = [s for s in surveys if s.id in wanted]
        payloads = [self._survey_payload(db, survey) for survey in surveys]
        return adapter.migrate_surveys(payloads)

    def sync_mappings(self, db: Session, user_id: int, kind: MappingKind):
        """Mirror every mapping of one kind. Future resolves to the chunk count."""
        adapter = self.get_adapter(user_id)
        mappings = mapping_crud.get_by_kind(db, user_id=user_id, kind=kind)
        documents = [(str(m.id), mapping_document(m)) for m in mappings]
        return adapter.save_documents(MAPPING_COLLECTIONS[kind], documents)

    def sync_learned_mappings(self, db: Session, user_id: int):
        adapter = self.get_adapter(user_id)
        entries = learned_mapping_crud.get_all(db, user_id)
        documents = [
            (f"{_enum_value(e.mapping_type)}_{e.id}", learned_document(e))
            for e in entries
        ]
        return adapter.save_documents(LEARNED_MAPPINGS_COLLECTION, documents)

    async def delete_survey(self, user_id: int, survey_id: int, row_count: int) -> int:
        """Remove a survey's metadata and row documents. Returns the number of documents removed."""
        adapter = self.get_adapter(user_id)
        self._require_online(adapter)
        await adapter.delete_document(SURVEYS_COLLECTION, str(survey_id))
        row_ids = [f"{survey_id}_{index}" for index in range(row_count)]
        deleted = await adapter.delete_documents(SURVEY_DATA_COLLECTION, row_ids)
        return deleted + 1

    async def clear_user_data(self, user_id: int) -> int:
        """Delete every collection under the user's prefix. Returns documents deleted."""
        adapter = self.get_adapter(user_id)
        self._require_online(adapter)
        deleted = 0
        for collection in USER_COLLECTIONS:
            deleted += await adapter.delete_collection(collection)
        logger.info(f"Cleared {deleted} remote documents for user={user_id}")
        return deleted

    async def shutdown(self) -> None:
        await self.monitor.stop()
        if self.client is not None:
            await self.client.aclose()


cloud_sync_service = CloudSyncService()
