"""
REMOTE STORE CLIENT - Talk to the remote object store over its REST API

Purpose:
    1. Authenticate (password flow or a pre-issued session token)
    2. describe / query / queryMore / create
    3. Turn HTTP failures into engine errors

The client is shared by every request in the process. It holds only the
session token and the httpx connection pool; nothing request-scoped lives
here, so concurrent requests can reuse it safely.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional

import httpx

from project_console.core.config import settings
from project_console.core.engine.errors import (
    RecordCreateFailed,
    RemoteStoreError,
    SchemaNotFound,
)

logger = logging.getLogger(__name__)

PRODUCTION_LOGIN_URL = "https://login.salesforce.com"
SANDBOX_LOGIN_URL = "https://test.salesforce.com"


# ============================================================================
# LOGIN URL HELPERS
# ============================================================================


def normalize_instance_url(url: str) -> str:
    """
    Strip trailing slashes and any /services/... path from an instance URL.

    Example:
        "https://acme.my.salesforce.com/services/data/v59.0/" -> "https://acme.my.salesforce.com"
    """
    normalized = str(url).strip().rstrip("/")
    return re.sub(r"/services/.*$", "", normalized, flags=re.IGNORECASE)


def login_url_for(instance_url: str) -> str:
    """Pick the login host for an instance URL (sandboxes log in on the test host)."""
    url = normalize_instance_url(instance_url).lower()

    if "lightning.force.com" in url:
        if ".sandbox." in url or "--staging" in url or "--dev" in url:
            return SANDBOX_LOGIN_URL
        return PRODUCTION_LOGIN_URL
    if ".my.salesforce.com" in url:
        return PRODUCTION_LOGIN_URL
    if "test.salesforce.com" in url or "--staging" in url or "--dev" in url:
        return SANDBOX_LOGIN_URL
    return PRODUCTION_LOGIN_URL


# ============================================================================
# CLIENT
# ============================================================================


class RemoteStoreClient:
    """Async client for the remote object store REST API."""

    def __init__(
        self,
        instance_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.instance_url = normalize_instance_url(
            instance_url or settings.REMOTE_INSTANCE_URL
        )
        self.api_version = api_version or settings.REMOTE_API_VERSION
        self._access_token = access_token or settings.REMOTE_ACCESS_TOKEN
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT_SECONDS
        )
        self._login_lock = asyncio.Lock()

    @property
    def data_path(self) -> str:
        return f"/services/data/{self.api_version}"

    async def login(self) -> None:
        """
        Authenticate with the OAuth2 username-password flow.

        The password sent is the configured password followed by the security
        token, as the remote store expects.
        """
        async with self._login_lock:
            if self._access_token:
                return

            if not settings.REMOTE_USERNAME or not settings.REMOTE_PASSWORD:
                raise RemoteStoreError(
                    "Remote store credentials are incomplete. Configure REMOTE_USERNAME and REMOTE_PASSWORD."
                )

            login_url = settings.REMOTE_LOGIN_URL or login_url_for(self.instance_url)
            data = {
                "grant_type": "password",
                "client_id": settings.REMOTE_CLIENT_ID or "",
                "client_secret": settings.REMOTE_CLIENT_SECRET or "",
                "username": settings.REMOTE_USERNAME,
                "password": settings.REMOTE_PASSWORD + settings.REMOTE_SECURITY_TOKEN,
            }
            try:
                response = await self._http.post(
                    f"{login_url}/services/oauth2/token", data=data
                )
            except httpx.HTTPError as e:
                raise RemoteStoreError(f"Login request failed: {e}") from e

            if response.status_code != 200:
                raise RemoteStoreError(
                    "Remote store login failed",
                    status_code=response.status_code,
                    payload=_safe_json(response),
                )

            body = response.json()
            self._access_token = body["access_token"]
            self.instance_url = normalize_instance_url(
                body.get("instance_url", self.instance_url)
            )
            logger.info(f"Remote store login successful, instance={self.instance_url}")

    async def _request(
        self, method: str, path: str, *, retry_auth: bool = True, **kwargs
    ) -> httpx.Response:
        if not self._access_token:
            await self.login()

        url = path if path.startswith("http") else f"{self.instance_url}{path}"
        headers = {"Authorization": f"Bearer {self._access_token}"}

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {path} failed: {e}") from e

        # Expired session: log in again once
        if response.status_code == 401 and retry_auth and settings.REMOTE_USERNAME:
            logger.info("Remote session expired, logging in again")
            self._access_token = None
            return await self._request(method, path, retry_auth=False, **kwargs)

        return response

    async def describe(self, object_name: str) -> Dict[str, Any]:
        """Return the raw describe payload for an object type."""
        response = await self._request(
            "GET", f"{self.data_path}/sobjects/{object_name}/describe"
        )
        if response.status_code in (403, 404):
            raise SchemaNotFound(
                object_name, _error_message(response) or f"HTTP {response.status_code}"
            )
        _raise_for_status(response, f"describe {object_name}")
        return response.json()

    async def query(self, soql: str) -> Dict[str, Any]:
        """Run a query; returns {records, totalSize, done, nextRecordsUrl}."""
        response = await self._request(
            "GET", f"{self.data_path}/query", params={"q": soql}
        )
        _raise_for_status(response, "query")
        return response.json()

    async def query_more(self, next_records_url: str) -> Dict[str, Any]:
        """Continue a truncated query result from its cursor."""
        response = await self._request("GET", next_records_url)
        _raise_for_status(response, "queryMore")
        return response.json()

    async def create(self, object_name: str, values: Dict[str, Any]) -> str:
        """Create a record and return its id."""
        response = await self._request(
            "POST", f"{self.data_path}/sobjects/{object_name}", json=values
        )
        if response.status_code == 400:
            body = _safe_json(response)
            errors = body if isinstance(body, list) else [{"message": str(body)}]
            raise RecordCreateFailed(object_name, errors)
        _raise_for_status(response, f"create {object_name}")

        body = response.json()
        if not body.get("success", True):
            raise RecordCreateFailed(object_name, body.get("errors", []))
        return body["id"]

    async def aclose(self) -> None:
        await self._http.aclose()


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(response: httpx.Response) -> str:
    body = _safe_json(response)
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return body[0].get("message", "")
    if isinstance(body, dict):
        return body.get("message", "")
    return str(body or "")


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.status_code >= 400:
        raise RemoteStoreError(
            f"{operation} failed: {_error_message(response) or response.status_code}",
            status_code=response.status_code,
            payload=_safe_json(response),
        )


# ============================================================================
# SHARED INSTANCE
# ============================================================================

_client: Optional[RemoteStoreClient] = None


# One client per process; routes get it through this dependency
def get_remote_store() -> RemoteStoreClient:
    global _client
    if _client is None:
        _client = RemoteStoreClient()
    return _client


async def close_remote_store() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
