from .adapter import CloudSyncAdapter
from .connectivity import ConnectivityMonitor
from .firestore_client import FirestoreClient
from .retry import RetryPolicy
from .service import cloud_sync_service

__all__ = ["CloudSyncAdapter", "ConnectivityMonitor", "FirestoreClient", "RetryPolicy", "cloud_sync_service"]
