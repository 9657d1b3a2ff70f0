from typing import Protocol, Optional
from datetime import datetime

from ...db.models import RefreshToken


class RefreshTokenRepository(Protocol):
    def create(self, user_id: str, token_hash: str, expires_at: datetime) -> RefreshToken:
        ...

    def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        ...

    def revoke(self, record: RefreshToken, revoked_at: datetime) -> None:
        ...
