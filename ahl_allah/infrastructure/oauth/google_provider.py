import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from ...core.config import Settings
from ...application.ports.oauth_provider import OAuthProvider, FederatedProfile
from ...exceptions import Unauthorized

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthProvider(OAuthProvider):
    name = "google"

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.GOOGLE_CALLBACK_URL
        self._http_client = http_client

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: Optional[str] = None, id_token: Optional[str] = None, user_payload: Optional[str] = None) -> FederatedProfile:
        if not code:
            raise Unauthorized("OAuth authentication failed")
        client = self._http_client or httpx.AsyncClient(timeout=10.0)
        try:
            token_resp = await client.post(TOKEN_URL, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            })
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise Unauthorized("OAuth authentication failed")

            info_resp = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            info_resp.raise_for_status()
            info = info_resp.json()
        except httpx.HTTPError as e:
            logger.warning(f"Google OAuth exchange failed: {e}")
            raise Unauthorized("OAuth authentication failed")
        finally:
            if self._http_client is None:
                await client.aclose()

        name = info.get("name") or " ".join(
            part for part in (info.get("given_name"), info.get("family_name")) if part
        ) or None
        return FederatedProfile(
            provider=self.name,
            provider_id=info.get("sub"),
            email=info.get("email"),
            name=name,
            avatar=info.get("picture"),
        )
