"""
FastAPI dependencies shared by the routers.

The StorageBackend lives on ``app.state`` and everything else is built from
it per request.
"""
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ujian.config import settings
from ujian.database import StorageBackend
from ujian.models.user import UserRole
from ujian.schemas import UserRecord
from ujian.services.app_settings import SettingsService
from ujian.services.auth import authenticate, require_role
from ujian.services.directory import ClassDirectory, ExamDirectory
from ujian.services.grading import GradingEngine
from ujian.services.llm_service import StructuredLLMService
from ujian.services.presence import PresenceService
from ujian.services.submissions import SubmissionService
from ujian.services.users import UserAdmin
from ujian.storage import Gateway

bearer_scheme = HTTPBearer(auto_error=False)


def get_backend(request: Request) -> StorageBackend:
    return request.app.state.backend


def get_gateway(backend: StorageBackend = Depends(get_backend)) -> Gateway:
    return Gateway(backend)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    gateway: Gateway = Depends(get_gateway),
) -> UserRecord:
    token = credentials.credentials if credentials else None
    return authenticate(gateway, token)


def require_roles(*roles: UserRole) -> Callable[..., UserRecord]:
    """Dependency that authenticates and then checks the caller's role."""

    def dependency(user: UserRecord = Depends(get_current_user)) -> UserRecord:
        require_role(user, roles)
        return user

    return dependency


def get_settings_service(gateway: Gateway = Depends(get_gateway)) -> SettingsService:
    return SettingsService(gateway, settings)


def get_grading_engine(settings_service: SettingsService = Depends(get_settings_service)) -> GradingEngine:
    api_key = settings_service.grading_api_key()
    return GradingEngine(StructuredLLMService(api_key) if api_key else None)


def get_submission_service(gateway: Gateway = Depends(get_gateway)) -> SubmissionService:
    """Read-side service; only submit needs a grading engine."""
    return SubmissionService(gateway)


def get_grading_submission_service(
    gateway: Gateway = Depends(get_gateway),
    engine: GradingEngine = Depends(get_grading_engine),
) -> SubmissionService:
    return SubmissionService(gateway, engine)


def get_class_directory(gateway: Gateway = Depends(get_gateway)) -> ClassDirectory:
    return ClassDirectory(gateway)


def get_exam_directory(gateway: Gateway = Depends(get_gateway)) -> ExamDirectory:
    return ExamDirectory(gateway)


def get_user_admin(gateway: Gateway = Depends(get_gateway)) -> UserAdmin:
    return UserAdmin(gateway)


def get_presence_service(gateway: Gateway = Depends(get_gateway)) -> PresenceService:
    return PresenceService(gateway, settings.online_threshold_seconds)
