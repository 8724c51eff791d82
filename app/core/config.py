from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Roster / batching
    batch_target_size: int = Field(25, alias="BATCH_TARGET_SIZE")
    class_lock_timeout_seconds: float = Field(30.0, alias="CLASS_LOCK_TIMEOUT_SECONDS")
    persistence_timeout_seconds: float = Field(10.0, alias="PERSISTENCE_TIMEOUT_SECONDS")

    # Credential issuance
    credential_max_attempts: int = Field(1000, alias="CREDENTIAL_MAX_ATTEMPTS")

    # Bulk upload
    bulk_import_max_rows: int = Field(500, alias="BULK_IMPORT_MAX_ROWS")
    bulk_import_workers: int = Field(1, alias="BULK_IMPORT_WORKERS")

    # First admin account (app.db.seed_admin)
    admin_username: Optional[str] = Field(None, alias="ADMIN_USERNAME")
    admin_password: Optional[str] = Field(None, alias="ADMIN_PASSWORD")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
