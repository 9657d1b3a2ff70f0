import json
import asyncio
import logging
from datetime import timedelta
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import httpx
import jwt

from ...core.config import Settings
from ...application.ports.oauth_provider import OAuthProvider, FederatedProfile
from ...exceptions import Unauthorized
from ...utils import utc_now

logger = logging.getLogger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"
AUTH_URL = "https://appleid.apple.com/auth/authorize"
TOKEN_URL = "https://appleid.apple.com/auth/token"
KEYS_URL = "https://appleid.apple.com/auth/keys"


class AppleOAuthProvider(OAuthProvider):
    name = "apple"

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None, jwks_client: Optional[jwt.PyJWKClient] = None):
        self.client_id = settings.APPLE_CLIENT_ID
        self.team_id = settings.APPLE_TEAM_ID
        self.key_id = settings.APPLE_KEY_ID
        self.private_key = settings.APPLE_PRIVATE_KEY
        self.redirect_uri = settings.APPLE_CALLBACK_URL
        self._http_client = http_client
        self._jwks_client = jwks_client or jwt.PyJWKClient(KEYS_URL)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code id_token",
            "response_mode": "form_post",
            "scope": "name email",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def _client_secret(self) -> str:
        """Apple expects an ES256-signed JWT as the client secret."""
        now = utc_now()
        claims = {
            "iss": self.team_id,
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "aud": APPLE_ISSUER,
            "sub": self.client_id,
        }
        return jwt.encode(claims, self.private_key, algorithm="ES256", headers={"kid": self.key_id})

    async def _exchange_code(self, code: str) -> str:
        client = self._http_client or httpx.AsyncClient(timeout=10.0)
        try:
            resp = await client.post(TOKEN_URL, data={
                "client_id": self.client_id,
                "client_secret": self._client_secret(),
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            })
            resp.raise_for_status()
            id_token = resp.json().get("id_token")
        except httpx.HTTPError as e:
            logger.warning(f"Apple code exchange failed: {e}")
            raise Unauthorized("OAuth authentication failed")
        finally:
            if self._http_client is None:
                await client.aclose()
        if not id_token:
            raise Unauthorized("OAuth authentication failed")
        return id_token

    def _decode_id_token(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(id_token)
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=APPLE_ISSUER,
            )
        except jwt.PyJWTError as e:
            logger.warning(f"Apple id_token verification failed: {e}")
            raise Unauthorized("OAuth authentication failed")

    async def fetch_profile(self, code: Optional[str] = None, id_token: Optional[str] = None, user_payload: Optional[str] = None) -> FederatedProfile:
        if not id_token:
            if not code:
                raise Unauthorized("OAuth authentication failed")
            id_token = await self._exchange_code(code)
        claims = await asyncio.to_thread(self._decode_id_token, id_token)

        # Apple only sends the user's name on the very first authorization
        name = None
        email = claims.get("email")
        if user_payload:
            try:
                user_info = json.loads(user_payload)
            except ValueError:
                user_info = {}
            name_parts = user_info.get("name") or {}
            name = " ".join(p for p in (name_parts.get("firstName"), name_parts.get("lastName")) if p) or None
            email = email or user_info.get("email")

        return FederatedProfile(
            provider=self.name,
            provider_id=claims.get("sub"),
            email=email,
            name=name or "Apple User",
        )
