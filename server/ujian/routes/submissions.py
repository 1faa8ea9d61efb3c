from typing import List

from fastapi import APIRouter, Depends

from ujian.deps import get_current_user, get_grading_submission_service, get_submission_service, require_roles
from ujian.models.user import UserRole
from ujian.schemas import SubmissionRecord, SubmissionStart, SubmissionSubmit, SubmitResult, UserRecord
from ujian.services.submissions import SubmissionService

router = APIRouter(tags=["Submissions"])


@router.get("", response_model=List[SubmissionRecord])
def list_submissions(user: UserRecord = Depends(get_current_user),
                     service: SubmissionService = Depends(get_submission_service)):
    return service.list_for(user)


@router.post("/start", response_model=SubmissionRecord, status_code=201)
def start_submission(data: SubmissionStart,
                     user: UserRecord = Depends(require_roles(UserRole.STUDENT)),
                     service: SubmissionService = Depends(get_submission_service)):
    return service.start(data.exam_id, user)


@router.post("/submit", response_model=SubmitResult)
def submit_answers(data: SubmissionSubmit,
                   user: UserRecord = Depends(require_roles(UserRole.STUDENT)),
                   service: SubmissionService = Depends(get_grading_submission_service)):
    """Grades synchronously; free-form answers may wait on the AI grader."""
    return service.submit(data.submission_id, user, data.answers)


@router.get("/exam/{exam_id}", response_model=List[SubmissionRecord])
def list_exam_submissions(exam_id: str,
                          user: UserRecord = Depends(require_roles(UserRole.TEACHER, UserRole.OWNER)),
                          service: SubmissionService = Depends(get_submission_service)):
    return service.list_for_exam(user, exam_id)


@router.get("/{submission_id}", response_model=SubmissionRecord)
def get_submission(submission_id: str,
                   user: UserRecord = Depends(get_current_user),
                   service: SubmissionService = Depends(get_submission_service)):
    return service.get_for(user, submission_id)
