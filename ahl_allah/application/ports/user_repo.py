from typing import Protocol, Optional, List, Dict, Any

from ...db.models import User, StudentProfile, TutorProfile


class UserRepository(Protocol):
    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    def get_by_email(self, email: str) -> Optional[User]:
        ...

    def get_by_phone(self, phone: str) -> Optional[User]:
        ...

    def get_by_provider(self, provider: str, provider_id: str) -> Optional[User]:
        ...

    def create(self, user: User) -> User:
        ...

    def create_with_profile(self, user: User, profile: Any) -> User:
        """Persist a user and its companion profile row in one transaction."""
        ...

    def update(self, user: User, fields: Dict[str, Any]) -> User:
        ...

    def delete(self, user: User) -> None:
        """Delete a user together with its profile rows."""
        ...

    def list_by_role(self, role_id: int) -> List[User]:
        ...

    def get_student_profile(self, user_id: str) -> Optional[StudentProfile]:
        ...

    def create_student_profile(self, profile: StudentProfile) -> StudentProfile:
        ...

    def get_tutor_profile(self, user_id: str) -> Optional[TutorProfile]:
        ...
