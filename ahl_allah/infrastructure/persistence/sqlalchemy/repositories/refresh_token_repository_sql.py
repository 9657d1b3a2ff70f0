from typing import Optional
from datetime import datetime
from sqlmodel import Session, select

from .....db.models import RefreshToken
from .....application.ports.refresh_token_repo import RefreshTokenRepository


class SqlRefreshTokenRepository(RefreshTokenRepository):
    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, token_hash: str, expires_at: datetime) -> RefreshToken:
        rec = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        try:
            self.session.add(rec)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(rec)
        return rec

    def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        return self.session.exec(select(RefreshToken).where(RefreshToken.token_hash == token_hash)).first()

    def revoke(self, record: RefreshToken, revoked_at: datetime) -> None:
        record.revoked = True
        record.revoked_at = revoked_at
        try:
            self.session.add(record)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
