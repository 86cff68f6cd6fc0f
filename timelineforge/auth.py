"""
Bearer token verification.

Tokens are issued by the hosted auth provider (Supabase Auth). They are
checked by asking the provider who the token belongs to; nothing is decoded
locally.
"""
import logging
from typing import Optional

import requests
from pydantic import BaseModel

from timelineforge.config import settings
from timelineforge.errors import AuthenticationError, UpstreamServiceError

logger = logging.getLogger(__name__)


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or malformed Authorization header")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Empty bearer token")
    return token


class TokenVerifier:
    def __init__(
        self,
        supabase_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: float = 10
    ):
        self.supabase_url = (supabase_url if supabase_url is not None else settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = timeout

    def verify(self, token: str) -> AuthenticatedUser:
        if not self.supabase_url or not self.anon_key:
            raise UpstreamServiceError("SUPABASE_URL / SUPABASE_ANON_KEY not configured")

        try:
            response = requests.get(
                f"{self.supabase_url}/auth/v1/user",
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {token}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamServiceError(f"Auth provider unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Token rejected by auth provider",
                public_message="Invalid authentication token",
            )
        if response.status_code != 200:
            raise UpstreamServiceError(f"Auth provider returned {response.status_code}")

        data = response.json()
        user_id = data.get("id")
        if not user_id:
            raise AuthenticationError(
                "Auth provider returned no user id",
                public_message="Invalid authentication token",
            )
        return AuthenticatedUser(id=str(user_id), email=data.get("email"))
