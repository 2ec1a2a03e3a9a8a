"""Supabase Storage backend using httpx.

Talks to the Supabase Storage REST API directly:

- upload:   ``POST {url}/storage/v1/object/{bucket}/{key}`` with ``x-upsert: true``
- download: ``GET  {url}/storage/v1/object/{bucket}/{key}``

Server errors and transport failures are retried; client errors are not.
Depending on the Supabase version a missing object is reported either as
HTTP 404 or as HTTP 400 with a ``not_found`` JSON body; both map to None.
"""

from __future__ import annotations

import asyncio
import os
from urllib.parse import quote

import httpx

from plumage.core.config import StorageConfig
from plumage.core.errors import ConfigurationError, StorageError
from plumage.core.logging import get_logger
from plumage.storage.base import StorageBackend

_logger = get_logger("storage.supabase")


class SupabaseStorage(StorageBackend):
    """Durable object storage backed by a Supabase Storage bucket.

    Example usage:
        storage = SupabaseStorage(
            url="https://abc.supabase.co",
            api_key=os.environ["SUPABASE_SERVICE_ROLE_KEY"],
        )
        await storage.upload("ml-patterns", "learned-patterns.json", payload)
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Supabase backend.

        Args:
            url: Project URL, e.g. ``https://abc.supabase.co``.
            api_key: Service role (or anon) key sent as bearer token and apikey.
            timeout: Per-request timeout in seconds.
            max_retries: Retry attempts for 5xx responses and transport errors.
            retry_delay: Delay between retries in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        if not url:
            raise ConfigurationError("Supabase URL is required")
        if not api_key:
            raise ConfigurationError("Supabase API key is required")
        self._base_url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> SupabaseStorage:
        """Create a backend from storage config, resolving env vars.

        Raises:
            ConfigurationError: If URL or key cannot be resolved.
        """
        url = config.supabase_url or os.environ.get(config.supabase_url_env, "")
        api_key = os.environ.get(config.supabase_key_env, "")
        if not url:
            raise ConfigurationError(
                f"Supabase URL not configured. Set storage.supabase_url or ${config.supabase_url_env}."
            )
        if not api_key:
            raise ConfigurationError(
                f"Supabase key not configured. Set ${config.supabase_key_env}."
            )
        return cls(url=url, api_key=api_key, timeout=config.timeout_seconds)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "apikey": self._api_key,
                },
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _object_path(bucket: str, key: str) -> str:
        return f"/storage/v1/object/{quote(bucket, safe='')}/{quote(key, safe='/')}"

    async def _request(
        self,
        method: str,
        bucket: str,
        key: str,
        **kwargs: object,
    ) -> httpx.Response:
        """Send a request, retrying server errors and transport failures.

        Returns the first response that is not a server error. Raises
        StorageError once retries are exhausted.
        """
        client = self._get_client()
        path = self._object_path(bucket, key)
        last_error = "no attempt made"

        for attempt in range(self._max_retries + 1):
            try:
                response = await client.request(method, path, **kwargs)  # type: ignore[arg-type]
                if response.status_code < 500:
                    return response
                last_error = f"HTTP {response.status_code}: {response.text[:100]}"
                _logger.debug(
                    "supabase_retry_server_error",
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
            except httpx.TimeoutException:
                last_error = "Request timed out"
                _logger.debug("supabase_retry_timeout", attempt=attempt + 1)
            except httpx.RequestError as e:
                last_error = str(e) or type(e).__name__
                _logger.debug("supabase_retry_request_error", attempt=attempt + 1, error=last_error)

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay)

        raise StorageError(f"{method} failed: {last_error}", bucket=bucket, key=key)

    async def upload(self, bucket: str, key: str, data: bytes) -> None:
        response = await self._request(
            "POST",
            bucket,
            key,
            content=data,
            headers={"Content-Type": "application/json", "x-upsert": "true"},
        )
        if not response.is_success:
            raise StorageError(
                f"Upload rejected with HTTP {response.status_code}: {response.text[:100]}",
                bucket=bucket,
                key=key,
            )
        _logger.debug("supabase_uploaded", bucket=bucket, key=key, size=len(data))

    async def download(self, bucket: str, key: str) -> bytes | None:
        response = await self._request("GET", bucket, key)
        if response.is_success:
            return response.content
        if self._is_not_found(response):
            return None
        raise StorageError(
            f"Download rejected with HTTP {response.status_code}: {response.text[:100]}",
            bucket=bucket,
            key=key,
        )

    @staticmethod
    def _is_not_found(response: httpx.Response) -> bool:
        if response.status_code == 404:
            return True
        if response.status_code != 400:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        if not isinstance(body, dict):
            return False
        return str(body.get("statusCode")) == "404" or body.get("error") in ("not_found", "Not found")

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
