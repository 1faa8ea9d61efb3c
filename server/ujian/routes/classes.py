from typing import List

from fastapi import APIRouter, Depends

from ujian.deps import get_class_directory, get_current_user, require_roles
from ujian.models.user import UserRole
from ujian.schemas import (
    ClassCreate,
    ClassRecord,
    ClassUpdate,
    JoinClassRequest,
    JoinClassResponse,
    MessageResponse,
    UserPublic,
    UserRecord,
)
from ujian.services.directory import ClassDirectory

router = APIRouter(tags=["Classes"])

manager_only = require_roles(UserRole.TEACHER, UserRole.OWNER)


@router.get("", response_model=List[ClassRecord])
def list_classes(user: UserRecord = Depends(get_current_user),
                 directory: ClassDirectory = Depends(get_class_directory)):
    return directory.list_classes(user)


@router.post("", response_model=ClassRecord, status_code=201)
def create_class(data: ClassCreate,
                 user: UserRecord = Depends(require_roles(UserRole.TEACHER)),
                 directory: ClassDirectory = Depends(get_class_directory)):
    return directory.create_class(user, data)


@router.post("/join", response_model=JoinClassResponse, response_model_by_alias=True)
def join_class(data: JoinClassRequest,
               user: UserRecord = Depends(require_roles(UserRole.STUDENT)),
               directory: ClassDirectory = Depends(get_class_directory)):
    return directory.join_class(user, data.invite_code)


@router.get("/{class_id}", response_model=ClassRecord)
def get_class(class_id: str,
              user: UserRecord = Depends(get_current_user),
              directory: ClassDirectory = Depends(get_class_directory)):
    return directory.get_class(user, class_id)


@router.put("/{class_id}", response_model=ClassRecord)
def update_class(class_id: str, data: ClassUpdate,
                 user: UserRecord = Depends(manager_only),
                 directory: ClassDirectory = Depends(get_class_directory)):
    return directory.update_class(user, class_id, data)


@router.delete("/{class_id}", response_model=MessageResponse)
def delete_class(class_id: str,
                 user: UserRecord = Depends(manager_only),
                 directory: ClassDirectory = Depends(get_class_directory)):
    directory.delete_class(user, class_id)
    return MessageResponse(message="Class deleted")


@router.get("/{class_id}/students", response_model=List[UserPublic])
def list_students(class_id: str,
                  user: UserRecord = Depends(manager_only),
                  directory: ClassDirectory = Depends(get_class_directory)):
    return directory.list_students(user, class_id)
