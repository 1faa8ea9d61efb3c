from typing import List

from fastapi import APIRouter, Depends

from ujian.deps import get_user_admin, require_roles
from ujian.models.user import UserRole
from ujian.schemas import MessageResponse, SuspendResponse, UserCreate, UserPublic, UserRecord, UserUpdate
from ujian.services.users import UserAdmin

router = APIRouter(tags=["Users"])

owner_only = require_roles(UserRole.OWNER)


@router.get("", response_model=List[UserPublic])
def list_users(_: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    return admin.list_users()


@router.post("", response_model=UserPublic, status_code=201)
def create_user(data: UserCreate, _: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    return admin.create_user(data)


@router.get("/{user_id}", response_model=UserPublic)
def get_user(user_id: str, _: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    return admin.get_user(user_id)


@router.put("/{user_id}", response_model=UserPublic)
def update_user(user_id: str, data: UserUpdate,
                _: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    return admin.update_user(user_id, data)


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: str, owner: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    admin.delete_user(owner, user_id)
    return MessageResponse(message="User deleted")


@router.put("/{user_id}/suspend", response_model=SuspendResponse)
def toggle_suspend(user_id: str, _: UserRecord = Depends(owner_only), admin: UserAdmin = Depends(get_user_admin)):
    return admin.toggle_suspension(user_id)
