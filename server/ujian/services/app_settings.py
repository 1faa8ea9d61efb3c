"""
Owner-managed application settings and storage reconnection.
"""
import logging
from typing import Any, Dict

from ujian.config import Settings
from ujian.database import StorageBackend, StorageMode
from ujian.schemas import (
    SettingsResponse,
    SettingsSaved,
    SettingsUpdate,
    TestDatabaseResponse,
    UserRecord,
)
from ujian.storage import Gateway

logger = logging.getLogger(__name__)


class SettingsService:
    def __init__(self, gateway: Gateway, config: Settings):
        self.gateway = gateway
        self.config = config

    def defaults(self) -> Dict[str, Any]:
        return {
            "gemini_api_key": self.config.gemini_api_key,
            "database_url": self.config.database_url,
            "app_name": self.config.app_name,
        }

    def get_settings(self) -> SettingsResponse:
        record = self.gateway.settings.get(self.defaults())
        return SettingsResponse(**record.model_dump(), current_storage_mode=self.gateway.mode.value)

    def update_settings(self, owner: UserRecord, data: SettingsUpdate) -> SettingsSaved:
        patch = data.model_dump(exclude_unset=True, exclude_none=True)
        record = self.gateway.settings.save(patch, updated_by=owner.id, defaults=self.defaults())
        logger.info("⚙️ Settings updated by %s: %s", owner.username, ", ".join(sorted(patch)) or "no changes")
        return SettingsSaved(message="Settings updated", settings=record)

    def grading_api_key(self) -> str:
        """Stored key wins over the configured one."""
        return self.gateway.settings.get(self.defaults()).gemini_api_key or self.config.gemini_api_key


def check_database_connection(backend: StorageBackend, database_url: str) -> TestDatabaseResponse:
    mode = backend.reconnect(database_url)
    success = mode == StorageMode.REMOTE
    return TestDatabaseResponse(
        success=success,
        mode=mode.value,
        message="Connected successfully" if success else "Connection failed, using local storage",
    )
