from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    PORT: int = 3000

    # ------------------------------------------------------------------
    # Identity verification
    # ------------------------------------------------------------------
    AUTH_BACKEND: Literal["firebase", "jwt"] = "firebase"
    CHECK_REVOKED: bool = False

    JWT_SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # ------------------------------------------------------------------
    # Meeting storage
    # ------------------------------------------------------------------
    STORE_BACKEND: Literal["firestore", "sql"] = "firestore"
    MEETINGS_COLLECTION: str = "meetings"
    DATABASE_URL: str = "sqlite:///./meetings.db"

    # ------------------------------------------------------------------
    # Firebase project (shared by the verifier and Firestore)
    # ------------------------------------------------------------------
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_STORAGE_BUCKET: Optional[str] = None
    FIREBASE_CREDENTIALS: Optional[str] = None  # service-account JSON path

    CORS_ORIGINS: str = "*"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def uses_firebase(self) -> bool:
        return self.AUTH_BACKEND == "firebase" or self.STORE_BACKEND == "firestore"


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
