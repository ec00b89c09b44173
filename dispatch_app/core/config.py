from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = "Group Transport Dispatch"
    BACKEND_BASE_URL: str = "http://localhost:3000/api/v1"
    BACKEND_TOKEN: Optional[str] = None
    BACKEND_TIMEOUT: float = 10.0
    OPENROUTESERVICE_API_KEY: str = ""
    OPENROUTESERVICE_BASE_URL: str = "https://api.openrouteservice.org"
    ROUTING_TIMEOUT: float = 10.0
    DRAFT_KEY_PREFIX: str = "groupDispatchDraft"
    DRAFT_STORAGE_DIR: str = "drafts"
    VEHICLE_CAPACITY: int = 4
    DISPATCH_PERMISSION: str = "transports:read"
    LOG_DIR: str = "logs"
    LOG_FILE: str = "dispatch.log"
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 2_000_000
    LOG_BACKUP_COUNT: int = 3

    class Config:
        env_file = ".env"

settings = Settings()
