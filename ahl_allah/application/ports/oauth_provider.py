from typing import Protocol, Optional
from dataclasses import dataclass


@dataclass
class FederatedProfile:
    provider: str
    provider_id: Optional[str]
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None


class OAuthProvider(Protocol):
    name: str

    def authorization_url(self, state: str) -> str:
        ...

    async def fetch_profile(self, code: Optional[str] = None, id_token: Optional[str] = None, user_payload: Optional[str] = None) -> FederatedProfile:
        ...
