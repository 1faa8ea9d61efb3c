from typing import List, Optional

from fastapi import APIRouter, Depends

from ujian.deps import get_current_user, get_presence_service, require_roles
from ujian.models.user import UserRole
from ujian.schemas import ExamProgress, MessageResponse, OnlineStatus, UserRecord
from ujian.services.presence import PresenceService

router = APIRouter(tags=["Realtime"])

manager_only = require_roles(UserRole.TEACHER, UserRole.OWNER)


@router.post("/heartbeat", response_model=MessageResponse)
def heartbeat(user: UserRecord = Depends(get_current_user),
              presence: PresenceService = Depends(get_presence_service)):
    presence.heartbeat(user)
    return MessageResponse(message="ok")


@router.get("/status", response_model=List[OnlineStatus])
def online_status(class_id: Optional[str] = None,
                  _: UserRecord = Depends(manager_only),
                  presence: PresenceService = Depends(get_presence_service)):
    return presence.online_status(class_id)


@router.get("/progress", response_model=List[ExamProgress])
def exam_progress(exam_id: Optional[str] = None,
                  user: UserRecord = Depends(manager_only),
                  presence: PresenceService = Depends(get_presence_service)):
    return presence.exam_progress(user, exam_id)
