"""HTTP client for the byte-range proxy: manifest, audio and art fetches."""

import asyncio
import json
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import aiohttp

from cloudplayer.credentials import CredentialStore
from cloudplayer.exceptions import AuthError, NetworkError, NotFoundError
from cloudplayer.logging import get_logger
from cloudplayer.manifest import validate_manifest

logger = get_logger(__name__)

AUTH_HEADER = "X-Auth-Token"


class ProxyClient:
    """
    Authenticated access to /db.json, /music/<name> and /art/<name>.

    The credential is read from the store before every request; a 401
    clears it so the next call forces a new login.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Proxy root, e.g. http://127.0.0.1:8787
            credentials: Where the bearer token lives
            timeout: Total timeout per request, in seconds
            session: Existing aiohttp session (the client closes only its own)
        """
        self.base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, **kwargs) -> bytes:
        token = self._credentials.get()
        if not token:
            raise AuthError("No auth token")

        headers = dict(kwargs.pop("headers", None) or {})
        headers[AUTH_HEADER] = token
        url = f"{self.base_url}{path}"

        try:
            async with self._get_session().request(method, url, headers=headers, **kwargs) as response:
                if response.status == 401:
                    self._credentials.clear()
                    raise AuthError("Unauthorized - invalid token")
                if response.status == 404:
                    raise NotFoundError(f"Not found: {path}")
                if response.status >= 400:
                    raise NetworkError(f"HTTP {response.status}: {response.reason}")
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

    async def fetch_metadata(self) -> Dict[str, Any]:
        """
        Fetch the library manifest.

        Raises:
            AuthError: Credential missing or rejected
            NetworkError: Anything else, including an undecodable body
        """
        body = await self._request("GET", "/db.json")
        try:
            metadata = json.loads(body)
        except ValueError as e:
            raise NetworkError(f"Invalid manifest JSON: {e}") from e
        if not isinstance(metadata, dict):
            raise NetworkError("Manifest is not a JSON object")
        return metadata

    async def fetch_audio_bytes(self, file_name: str) -> bytes:
        """
        Fetch the audio bytes for a track.

        Raises:
            NotFoundError: The name does not resolve
            AuthError: Credential missing or rejected
            NetworkError: Any other failure
        """
        if not file_name:
            raise NotFoundError("Empty audio file reference")
        return await self._request("GET", f"/music/{quote(file_name, safe='/')}")

    async def fetch_art_bytes(self, file_name: Optional[str]) -> Optional[bytes]:
        """Fetch album art; any failure yields None (rendered as missing art)."""
        if not file_name:
            return None
        try:
            return await self._request("GET", f"/art/{quote(file_name, safe='/')}")
        except (AuthError, NetworkError) as e:
            logger.warning("Error loading art (%s): %s", file_name, e)
            return None

    async def upload_metadata(self, manifest: Mapping[str, Any]) -> None:
        """
        Replace the manifest on the proxy.

        Raises:
            ValidationError: Manifest lacks albums or tracks (nothing is sent)
            AuthError, NetworkError: As for fetches
        """
        validate_manifest(manifest)
        await self._request("PUT", "/db.json", json=dict(manifest))
        logger.info("Uploaded manifest with %d tracks", len(manifest["tracks"]))
