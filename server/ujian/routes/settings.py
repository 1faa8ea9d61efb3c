from fastapi import APIRouter, Depends

from ujian.database import StorageBackend
from ujian.deps import get_backend, get_settings_service, require_roles
from ujian.models.user import UserRole
from ujian.schemas import (
    SettingsResponse,
    SettingsSaved,
    SettingsUpdate,
    TestDatabaseRequest,
    TestDatabaseResponse,
    UserRecord,
)
from ujian.services.app_settings import SettingsService, check_database_connection

router = APIRouter(tags=["Settings"])

owner_only = require_roles(UserRole.OWNER)


@router.get("", response_model=SettingsResponse)
def get_settings(_: UserRecord = Depends(owner_only),
                 service: SettingsService = Depends(get_settings_service)):
    return service.get_settings()


@router.put("", response_model=SettingsSaved)
def update_settings(data: SettingsUpdate,
                    owner: UserRecord = Depends(owner_only),
                    service: SettingsService = Depends(get_settings_service)):
    return service.update_settings(owner, data)


@router.post("/test-db", response_model=TestDatabaseResponse)
def test_db(data: TestDatabaseRequest,
            _: UserRecord = Depends(owner_only),
            backend: StorageBackend = Depends(get_backend)):
    """Reconnect with a new database URL; failure leaves the server in local mode."""
    return check_database_connection(backend, data.database_url)
