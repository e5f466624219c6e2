import logging
from typing import Any, Optional, Protocol

import httpx

from config import get_api_base_url
from exceptions import AuthFailure, NetworkFailure, failure_for_status

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def get_token(self, force_refresh: bool = False) -> Optional[str]: ...


class Transport:
    """Authenticated and public requests against the remote store.

    Timeouts are httpx's defaults; nothing here retries except the single
    authenticated retry after a refreshed credential.
    """

    def __init__(self, credentials: CredentialProvider, base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.credentials = credentials
        self.base_url = (base_url or get_api_base_url()).rstrip("/")
        self.client = client or httpx.AsyncClient()

    async def aclose(self):
        await self.client.aclose()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path if path.startswith('/') else '/' + path}"

    async def _send(self, method: str, path: str, token: Optional[str], json: Any) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            return await self.client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Network error: {exc}") from exc

    async def _raise_for_status(self, response: httpx.Response):
        if response.is_success:
            return
        await response.aread()
        logger.debug("API error %s: %s", response.status_code, response.text)
        raise failure_for_status(response.status_code, response.text)

    async def authenticated_request(self, path: str, method: str = "GET", json: Any = None) -> httpx.Response:
        token = await self.credentials.get_token()
        if not token:
            raise AuthFailure(httpx.codes.UNAUTHORIZED, "Not authenticated")

        response = await self._send(method, path, token, json)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            refreshed = await self.credentials.get_token(force_refresh=True)
            if refreshed:
                logger.debug("Got 401, retrying %s with a refreshed token", path)
                response = await self._send(method, path, refreshed, json)

        await self._raise_for_status(response)
        return response

    async def public_request(self, path: str, method: str = "GET", json: Any = None) -> httpx.Response:
        token = await self.credentials.get_token()
        response = await self._send(method, path, token, json)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            refreshed = await self.credentials.get_token(force_refresh=True)
            if refreshed:
                logger.debug("Public request to %s returned 401, retrying as authenticated", path)
                response = await self._send(method, path, refreshed, json)
            elif not token:
                raise AuthFailure(httpx.codes.UNAUTHORIZED,
                                  "This endpoint requires authentication. Sign in to continue.")

        await self._raise_for_status(response)
        return response
