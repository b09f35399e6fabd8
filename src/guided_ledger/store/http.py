"""Document store client speaking JSON over HTTP."""

import asyncio
from typing import Any

import httpx
import structlog

from guided_ledger.config import get_settings
from guided_ledger.errors import ConflictError, StoreRequestError, TransientIOError

logger = structlog.get_logger(__name__)


class HTTPDocumentStore:
    """Async ``DocumentStore`` backed by a REST document service.

    Records live under ``/companies/{company_id}/{collection}/{key}``.
    Transport errors and 5xx responses are retried with exponential backoff
    and surface as ``TransientIOError`` once retries are exhausted.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_url).rstrip("/")
        if token is None and settings.store_token is not None:
            token = settings.store_token.get_secret_value()
        self._token = token
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._max_retries = max_retries if max_retries is not None else settings.store_max_retries
        self._client = client
        self._logger = logger.bind(component="http_store", base_url=self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HTTPDocumentStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _path(company_id: str, collection: str, key: str | None = None) -> str:
        path = f"/companies/{company_id}/{collection}"
        return f"{path}/{key}" if key is not None else path

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """Send a request, retrying transport errors and 5xx responses."""
        client = await self._get_client()
        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(headers),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                self._logger.warning(
                    "store_request_retry", method=method, path=path, attempt=retry_count + 1, error=str(e)
                )
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, headers, retry_count + 1)
            raise TransientIOError(f"Store request failed: {e}", details={"path": path}) from e

        if response.status_code >= 500:
            if retry_count < self._max_retries:
                self._logger.warning(
                    "store_request_retry",
                    method=method,
                    path=path,
                    attempt=retry_count + 1,
                    status_code=response.status_code,
                )
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, headers, retry_count + 1)
            raise TransientIOError(
                f"Store unavailable: {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "60"))
            raise TransientIOError(
                f"Rate limited, retry after {retry_after}s",
                details={"retry_after": retry_after},
            )

        return response

    @staticmethod
    def _raise_for_error(response: httpx.Response, path: str) -> None:
        if response.status_code in (409, 412):
            raise ConflictError(f"{path} already exists", details={"status_code": response.status_code})
        if response.status_code >= 400:
            try:
                detail = response.json() if response.content else {}
            except ValueError:
                detail = {"raw": response.text[:500] if response.text else "empty response"}
            raise StoreRequestError(
                f"Store error: {response.status_code}",
                status_code=response.status_code,
                details=detail,
            )

    async def get(self, company_id: str, collection: str, key: str) -> dict[str, Any] | None:
        path = self._path(company_id, collection, key)
        response = await self._request("GET", path)
        if response.status_code == 404:
            return None
        self._raise_for_error(response, path)
        data: dict[str, Any] = response.json()
        return data

    async def list(self, company_id: str, collection: str) -> list[dict[str, Any]]:
        path = self._path(company_id, collection)
        response = await self._request("GET", path)
        if response.status_code == 404:
            return []
        self._raise_for_error(response, path)
        data = response.json()
        if isinstance(data, dict):
            items: list[dict[str, Any]] = data.get("items", [])
            return items
        return list(data)

    async def put(
        self,
        company_id: str,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        path = self._path(company_id, collection, key)
        method = "PATCH" if merge else "PUT"
        response = await self._request(method, path, json=data)
        self._raise_for_error(response, path)

    async def create(
        self, company_id: str, collection: str, key: str, data: dict[str, Any]
    ) -> None:
        """Conditional create. The server answers 409/412 when the key exists."""
        path = self._path(company_id, collection, key)
        response = await self._request("PUT", path, json=data, headers={"If-None-Match": "*"})
        self._raise_for_error(response, path)

    async def delete(self, company_id: str, collection: str, key: str) -> None:
        path = self._path(company_id, collection, key)
        response = await self._request("DELETE", path)
        if response.status_code == 404:
            return
        self._raise_for_error(response, path)
