"""Company registry lookup used to pre-fill partner data."""

import re
from dataclasses import asdict
from typing import Any

import httpx
import structlog

from guided_ledger.config import get_settings
from guided_ledger.errors import StoreRequestError, TransientIOError
from guided_ledger.store.base import CompanyInfo, DocumentStore

logger = structlog.get_logger(__name__)

# Registry records are shared across tenants
REGISTRY_SCOPE = "registry"
COMPANIES = "companies"


def normalize_ico(ico: str) -> str:
    """Strip whitespace and left-pad a company ID to eight digits."""
    return re.sub(r"\s", "", ico).zfill(8)


class CompanyLookupClient:
    """Looks up companies by IČO, consulting a store-backed cache first."""

    def __init__(
        self,
        base_url: str | None = None,
        cache: DocumentStore | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.registry_lookup_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._cache = cache
        self._client = client
        self._logger = logger.bind(component="company_lookup")

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

    async def lookup(self, ico: str) -> CompanyInfo | None:
        """Return registry data for ``ico`` or ``None`` when it is unknown.

        Raises:
            TransientIOError: The registry service could not be reached.
        """
        clean = normalize_ico(ico)

        if self._cache is not None:
            try:
                cached = await self._cache.get(REGISTRY_SCOPE, COMPANIES, clean)
            except TransientIOError as e:
                # Cache is an optimization, the registry stays authoritative
                self._logger.warning("company_cache_read_failed", ico=clean, error=str(e))
                cached = None
            if cached is not None:
                return CompanyInfo.from_dict(cached)

        client = await self._get_client()
        try:
            response = await client.post("/lookup", json={"ico": clean})
        except httpx.RequestError as e:
            raise TransientIOError(f"Registry lookup failed: {e}", details={"ico": clean}) from e

        if response.status_code == 404:
            return None
        if response.status_code >= 500:
            raise TransientIOError(
                f"Registry unavailable: {response.status_code}", details={"ico": clean}
            )
        if response.status_code >= 400:
            raise StoreRequestError(
                f"Registry error: {response.status_code}", status_code=response.status_code
            )

        payload: dict[str, Any] = response.json()
        if not payload.get("success") or not payload.get("data"):
            return None

        info = CompanyInfo.from_dict({**payload["data"], "ico": clean})
        self._logger.info("company_found", ico=clean, source=payload.get("source"))
        if self._cache is not None:
            try:
                await self.save_company(info)
            except TransientIOError as e:
                self._logger.warning("company_cache_write_failed", ico=clean, error=str(e))
        return info

    async def save_company(self, info: CompanyInfo) -> None:
        """Write a registry record to the cache under its normalized IČO."""
        if self._cache is None:
            return
        clean = normalize_ico(info.ico)
        data = {k: v for k, v in asdict(info).items() if v is not None}
        data["ico"] = clean
        await self._cache.put(REGISTRY_SCOPE, COMPANIES, clean, data, merge=True)
