from dataclasses import dataclass
from typing import List, Tuple
import logging

from ..ports.user_repo import UserRepository
from ..ports.audit_logger import AuditLogger
from ...db.models import User, TutorProfile, UserRole
from ...exceptions import ValidationError, NotFound

logger = logging.getLogger(__name__)


@dataclass
class AdminService:
    user_repo: UserRepository
    audit: AuditLogger

    def pending_tutors(self) -> List[Tuple[User, TutorProfile]]:
        users = self.user_repo.list_by_role(int(UserRole.PENDING_TUTOR))
        return [(u, self.user_repo.get_tutor_profile(u.id)) for u in users]

    def _pending(self, user_id: str) -> Tuple[User, TutorProfile]:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        profile = self.user_repo.get_tutor_profile(user.id)
        if profile is None:
            raise NotFound("Mohafez profile not found")
        if user.role_id != int(UserRole.PENDING_TUTOR):
            raise ValidationError("User is not a pending mohafez")
        return user, profile

    def approve(self, user_id: str, admin_id: str) -> User:
        user, _ = self._pending(user_id)
        user = self.user_repo.update(user, {"role_id": int(UserRole.TUTOR)})
        self.audit.log("tutor_approve", user_id=admin_id, details={"target": user.id})
        return user

    def reject(self, user_id: str, admin_id: str) -> None:
        user, _ = self._pending(user_id)
        self.user_repo.delete(user)
        self.audit.log("tutor_reject", user_id=admin_id, details={"target": user_id})

    def update_role(self, user_id: str, role_id: int, admin_id: str) -> User:
        try:
            role = UserRole(role_id)
        except ValueError:
            raise ValidationError("Invalid role")
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        user = self.user_repo.update(user, {"role_id": int(role)})
        self.audit.log("role_update", user_id=admin_id, details={"target": user.id, "roleId": int(role)})
        return user
