# =============================================================================
# Supabase Backend Client for Nine Picture Grid
# =============================================================================
"""
Thin async client for the hosted Supabase auth (GoTrue) and storage APIs.

All calls go through the injected ``httpx.AsyncClient`` so that the network
logging transport sees every request. Non-2xx responses become typed errors.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from core.exceptions import AuthenticationError, BackendServiceError
from models.data_models import BackendConfig, Session, StorageObject, User

logger = logging.getLogger(__name__)


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def _error_code(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("error_code", "error", "code"):
            value = payload.get(key)
            if value:
                return str(value)
    return None


def parse_session(payload: Dict[str, Any]) -> Optional[Session]:
    """Build a Session from a token response, or None when it carries no token."""
    if not payload or not payload.get("access_token"):
        return None
    return Session(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        token_type=payload.get("token_type", "bearer"),
        expires_at=payload.get("expires_at"),
        user=User(**payload["user"]),
    )


def parse_user(payload: Dict[str, Any]) -> Optional[User]:
    """Sign-up returns either a session (with ``user``) or the bare user object."""
    if not payload:
        return None
    if isinstance(payload.get("user"), dict):
        return User(**payload["user"])
    if payload.get("id"):
        return User(**payload)
    return None


class SupabaseBackend:
    """Auth and object storage calls against one Supabase project."""

    def __init__(self, config: BackendConfig, http: httpx.AsyncClient):
        self.config = config
        self.http = http

    # -- helpers ---------------------------------------------------------------

    def _headers(self, access_token: Optional[str] = None, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.config.anon_key,
            "Authorization": f"Bearer {access_token or self.config.anon_key}",
        }
        headers.update(extra)
        return headers

    def _url(self, path: str) -> str:
        return f"{self.config.url}{path}"

    async def _send(self, method: str, path: str, *, auth_call: bool = False,
                    **kwargs: Any) -> httpx.Response:
        response = await self.http.request(method, self._url(path), **kwargs)
        if response.is_success:
            return response
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        message = _error_message(payload, f"{method} {path} failed with status {response.status_code}")
        code = _error_code(payload)
        logger.debug("Backend call %s %s failed: %s (%s)", method, path, message, response.status_code)
        if auth_call and response.status_code in (400, 401, 403, 422):
            raise AuthenticationError(message, status=response.status_code, code=code)
        raise BackendServiceError(message, status=response.status_code, code=code, details=payload)

    # -- auth ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._send(
            "POST", "/auth/v1/token", auth_call=True,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        return response.json()

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._send(
            "POST", "/auth/v1/signup", auth_call=True,
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        return response.json()

    async def sign_out(self, access_token: str) -> None:
        await self._send("POST", "/auth/v1/logout", auth_call=True,
                         headers=self._headers(access_token))

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        response = await self._send(
            "POST", "/auth/v1/token", auth_call=True,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers=self._headers(),
        )
        return response.json()

    async def health(self) -> bool:
        try:
            await self._send("GET", "/auth/v1/health", headers=self._headers())
        except (BackendServiceError, httpx.HTTPError):
            return False
        return True

    # -- storage ---------------------------------------------------------------

    async def list_objects(self, bucket: str, access_token: str, prefix: str = "",
                           limit: int = 100) -> List[StorageObject]:
        response = await self._send(
            "POST", f"/storage/v1/object/list/{quote(bucket)}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
            headers=self._headers(access_token),
        )
        return [StorageObject(**item) for item in response.json() or []]

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str,
                     access_token: str, cache_control: str, upsert: bool = True) -> Dict[str, Any]:
        response = await self._send(
            "POST", f"/storage/v1/object/{quote(bucket)}/{quote(path)}",
            content=content,
            headers=self._headers(
                access_token,
                **{
                    "Content-Type": content_type,
                    "Cache-Control": cache_control,
                    "x-upsert": "true" if upsert else "false",
                },
            ),
        )
        return response.json()

    def public_url(self, bucket: str, path: str) -> str:
        return self._url(f"/storage/v1/object/public/{quote(bucket)}/{quote(path)}")

    async def remove(self, bucket: str, paths: List[str], access_token: str) -> List[Dict[str, Any]]:
        response = await self._send(
            "DELETE", f"/storage/v1/object/{quote(bucket)}",
            json={"prefixes": list(paths)},
            headers=self._headers(access_token),
        )
        return response.json()
