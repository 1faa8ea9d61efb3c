from typing import List, Union

from fastapi import APIRouter, Depends

from ujian.deps import get_current_user, get_exam_directory, require_roles
from ujian.models.user import UserRole
from ujian.schemas import (
    ExamCreate,
    ExamRecord,
    ExamUpdate,
    MessageResponse,
    PublishResponse,
    StudentExamView,
    UserRecord,
)
from ujian.services.directory import ExamDirectory

router = APIRouter(tags=["Exams"])

manager_only = require_roles(UserRole.TEACHER, UserRole.OWNER)


@router.get("", response_model=None)
def list_exams(user: UserRecord = Depends(get_current_user),
               directory: ExamDirectory = Depends(get_exam_directory)) -> List[Union[ExamRecord, StudentExamView]]:
    """Students only get published exams of their classes, without answer keys."""
    return directory.list_exams(user)


@router.post("", response_model=ExamRecord, status_code=201)
def create_exam(data: ExamCreate,
                user: UserRecord = Depends(manager_only),
                directory: ExamDirectory = Depends(get_exam_directory)):
    return directory.create_exam(user, data)


@router.get("/{exam_id}", response_model=None)
def get_exam(exam_id: str,
             user: UserRecord = Depends(get_current_user),
             directory: ExamDirectory = Depends(get_exam_directory)) -> Union[ExamRecord, StudentExamView]:
    return directory.get_exam(user, exam_id)


@router.put("/{exam_id}", response_model=ExamRecord)
def update_exam(exam_id: str, data: ExamUpdate,
                user: UserRecord = Depends(manager_only),
                directory: ExamDirectory = Depends(get_exam_directory)):
    return directory.update_exam(user, exam_id, data)


@router.delete("/{exam_id}", response_model=MessageResponse)
def delete_exam(exam_id: str,
                user: UserRecord = Depends(manager_only),
                directory: ExamDirectory = Depends(get_exam_directory)):
    directory.delete_exam(user, exam_id)
    return MessageResponse(message="Exam deleted")


@router.post("/{exam_id}/publish", response_model=PublishResponse)
def publish_exam(exam_id: str,
                 user: UserRecord = Depends(manager_only),
                 directory: ExamDirectory = Depends(get_exam_directory)):
    exam = directory.publish_exam(user, exam_id)
    return PublishResponse(message="Exam published", exam=exam)
