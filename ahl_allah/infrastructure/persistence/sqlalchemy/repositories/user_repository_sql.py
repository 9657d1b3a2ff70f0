from typing import Optional, List, Dict, Any
from sqlmodel import Session, select

from .....db.models import User, StudentProfile, TutorProfile, RefreshToken
from .....application.ports.user_repo import UserRepository
from .....utils import normalize_email


class SqlUserRepository(UserRepository):
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.id == user_id)).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.email == normalize_email(email))).first()

    def get_by_phone(self, phone: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.phone == phone)).first()

    def get_by_provider(self, provider: str, provider_id: str) -> Optional[User]:
        return self.session.exec(
            select(User).where(User.provider == provider, User.provider_id == provider_id)
        ).first()

    def create(self, user: User) -> User:
        try:
            self.session.add(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        return user

    def create_with_profile(self, user: User, profile: Any) -> User:
        try:
            self.session.add(user)
            self.session.flush()
            profile.user_id = user.id
            self.session.add(profile)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        self.session.refresh(profile)
        return user

    def update(self, user: User, fields: Dict[str, Any]) -> User:
        for key, value in fields.items():
            setattr(user, key, value)
        try:
            self.session.add(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        return user

    def delete(self, user: User) -> None:
        try:
            for model in (TutorProfile, StudentProfile, RefreshToken):
                rows = self.session.exec(select(model).where(model.user_id == user.id)).all()
                for row in rows:
                    self.session.delete(row)
            self.session.delete(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def list_by_role(self, role_id: int) -> List[User]:
        return list(self.session.exec(
            select(User).where(User.role_id == role_id).order_by(User.created_at.desc())
        ).all())

    def get_student_profile(self, user_id: str) -> Optional[StudentProfile]:
        return self.session.exec(select(StudentProfile).where(StudentProfile.user_id == user_id)).first()

    def create_student_profile(self, profile: StudentProfile) -> StudentProfile:
        try:
            self.session.add(profile)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(profile)
        return profile

    def get_tutor_profile(self, user_id: str) -> Optional[TutorProfile]:
        return self.session.exec(select(TutorProfile).where(TutorProfile.user_id == user_id)).first()
