from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ENVIRONMENT: str = "development"  # "development" or "production"

    # Login lockout
    MAX_FAILED_LOGIN_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 15

    # Remote document store (Firestore). Sync is disabled unless all are set.
    FIREBASE_API_KEY: Optional[str] = None
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_AUTH_DOMAIN: Optional[str] = None
    FIRESTORE_BASE_URL: str = "https://firestore.googleapis.com/v1"
    FIRESTORE_ACCESS_TOKEN: Optional[str] = None  # OAuth bearer; API key only when unset
    FIRESTORE_TIMEOUT_SECONDS: float = 30.0

    # Batched writes
    SYNC_CHUNK_SIZE: int = 500  # Firestore limit on writes per atomic commit
    SYNC_CHUNK_DELAY_MS: int = 100
    SYNC_PROGRESS_START: float = 70.0  # 0-70 is reserved for upload/parse phases
    SYNC_PROGRESS_END: float = 100.0

    # Retry policy
    SYNC_RETRY_DELAY_MS: int = 1000
    SYNC_MAX_RETRIES: int = 3
    SYNC_QUOTA_RETRY_DELAY_MS: int = 5000
    SYNC_MAX_QUOTA_RETRIES: int = 5

    # Connectivity monitor
    CONNECTIVITY_TIMEOUT_MS: int = 3000
    CONNECTIVITY_POLL_SECONDS: int = 30

    @property
    def missing_firebase_settings(self) -> List[str]:
        required = {
            "FIREBASE_API_KEY": self.FIREBASE_API_KEY,
            "FIREBASE_PROJECT_ID": self.FIREBASE_PROJECT_ID,
            "FIREBASE_AUTH_DOMAIN": self.FIREBASE_AUTH_DOMAIN,
        }
        return [name for name, value in required.items() if not (value and value.strip())]

    @property
    def firebase_configured(self) -> bool:
        return not self.missing_firebase_settings

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
