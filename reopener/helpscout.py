import logging
from typing import Optional

import httpx

from reopener import config

logger = logging.getLogger(__name__)


class HelpScoutError(Exception):
    """A Help Scout call failed (network, non-2xx, or unexpected body)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenError(HelpScoutError):
    pass


class ReopenError(HelpScoutError):
    pass


class HelpScoutClient:
    """
    The two Help Scout Mailbox API calls this service makes:

      POST {auth_endpoint}                      client-credentials token
      PATCH {api_base}/conversations/{id}       status -> active
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        auth_endpoint: str = config.HS_AUTH_ENDPOINT,
        api_base: str = config.HS_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.auth_endpoint = auth_endpoint
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def _http(self) -> httpx.AsyncClient:
        # created on first use so a closed client can be used again
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def conversation_url(self, conversation_id: str) -> str:
        return f"{self.api_base}/conversations/{conversation_id}"

    async def get_access_token(self) -> str:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.app_id,
            "client_secret": self.app_secret,
        }
        try:
            r = await self._http.post(self.auth_endpoint, data=form)
        except httpx.HTTPError as e:
            raise TokenError(f"token request failed: {type(e).__name__}") from e

        if r.status_code >= 400:
            raise TokenError(f"token request failed: {r.status_code} {r.text[:300]}", r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise TokenError("token response is not JSON", r.status_code) from e
        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenError("token response missing access_token", r.status_code)
        return token

    async def reopen_conversation(self, conversation_id: str, token: str) -> None:
        """Set the conversation status to active. Raises ReopenError unless 2xx."""
        url = self.conversation_url(conversation_id)
        patch = {"op": "replace", "path": "/status", "value": "active"}
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            r = await self._http.patch(url, headers=headers, json=patch)
        except httpx.HTTPError as e:
            raise ReopenError(f"PATCH {conversation_id} failed: {type(e).__name__}") from e

        if not r.is_success:
            raise ReopenError(
                f"PATCH {conversation_id} failed: {r.status_code} {r.text[:300]}", r.status_code
            )
        logger.info("Reopened conversation %s", conversation_id)
