"""
User administration (owner only).

Works in both storage modes; in local mode users live in the JSON partitions.
"""
import logging
from typing import List

from ujian.errors import Conflict, NotFound, ValidationFailed
from ujian.models.user import PRIVILEGED_ROLES, UserRole
from ujian.schemas import SuspendResponse, UserCreate, UserPublic, UserRecord, UserUpdate
from ujian.services.auth import hash_password
from ujian.storage import Gateway

logger = logging.getLogger(__name__)


class UserAdmin:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    def _get_or_404(self, user_id: str) -> UserRecord:
        user = self.gateway.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def _check_unique(self, username: str, role: UserRole, nisn: str = None, exclude_id: str = None) -> None:
        if role in PRIVILEGED_ROLES:
            existing = self.gateway.users.find_by_username(username, list(PRIVILEGED_ROLES))
        else:
            existing = self.gateway.users.find_by_nisn(nisn) if nisn else None
        if existing is not None and existing.id != exclude_id:
            raise Conflict("User already exists")

    def list_users(self) -> List[UserPublic]:
        return [user.public() for user in self.gateway.users.list()]

    def get_user(self, user_id: str) -> UserPublic:
        return self._get_or_404(user_id).public()

    def create_user(self, data: UserCreate) -> UserPublic:
        username = data.username.strip()
        if not username:
            raise ValidationFailed("Username and role are required")
        if data.role in PRIVILEGED_ROLES and not data.password:
            raise ValidationFailed("Password required for teacher/owner")
        if data.role == UserRole.STUDENT and not data.nisn:
            raise ValidationFailed("NISN required for students")

        nisn = data.nisn.strip() if data.nisn else None
        self._check_unique(username, data.role, nisn)

        user = self.gateway.users.create({
            "username": username,
            "email": data.email,
            "role": data.role,
            "password_hash": hash_password(data.password) if data.role in PRIVILEGED_ROLES else None,
            "nisn": nisn if data.role == UserRole.STUDENT else None,
            "classes": [],
        })
        logger.info("👤 Created %s %s", user.role.value, user.username)
        return user.public()

    def update_user(self, user_id: str, data: UserUpdate) -> UserPublic:
        current = self._get_or_404(user_id)
        patch = data.model_dump(exclude_unset=True, exclude_none=True)
        if "username" in patch:
            patch["username"] = patch["username"].strip()
            if not patch["username"]:
                raise ValidationFailed("Username cannot be empty")
        if "nisn" in patch:
            patch["nisn"] = patch["nisn"].strip()

        if "username" in patch or "nisn" in patch:
            self._check_unique(
                patch.get("username", current.username),
                current.role,
                patch.get("nisn", current.nisn),
                exclude_id=current.id,
            )
        return self.gateway.users.update(user_id, patch).public()

    def delete_user(self, actor: UserRecord, user_id: str) -> None:
        if actor.id == user_id:
            raise ValidationFailed("Cannot delete your own account")
        self._get_or_404(user_id)
        self.gateway.users.delete(user_id)
        logger.info("🗑️ User %s deleted by %s", user_id, actor.username)

    def toggle_suspension(self, user_id: str) -> SuspendResponse:
        user = self._get_or_404(user_id)
        updated = self.gateway.users.update(user_id, {"is_suspended": not user.is_suspended})
        state = "suspended" if updated.is_suspended else "activated"
        logger.info("🔒 User %s %s", updated.username, state)
        return SuspendResponse(message=f"User {state}", user=updated.public())

    def ensure_owner(self, username: str, password: str) -> bool:
        """Create the first owner account. Returns True when one was created."""
        if not username or not password:
            return False
        if self.gateway.users.list({"role": UserRole.OWNER}):
            return False
        self.create_user(UserCreate(username=username, password=password, role=UserRole.OWNER))
        return True
