from fastapi import APIRouter, Depends

from ujian.deps import get_current_user, get_gateway
from ujian.schemas import LoginRequest, LoginResponse, MessageResponse, UserRecord, UserSummary
from ujian.services import auth
from ujian.storage import Gateway

router = APIRouter(tags=["Auth"])


@router.post("/login", response_model=LoginResponse)
def login(request: LoginRequest, gateway: Gateway = Depends(get_gateway)):
    """Teachers/owners log in with username + password, students with username + NISN."""
    return auth.login(gateway, request)


@router.post("/logout", response_model=MessageResponse)
def logout(user: UserRecord = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
    auth.logout(gateway, user)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserSummary)
def me(user: UserRecord = Depends(get_current_user)):
    return user.summary()
