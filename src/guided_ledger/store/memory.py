"""In-memory document store for tests, demos and single-process use."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from guided_ledger.errors import ConflictError


class InMemoryDocumentStore:
    """Dictionary-backed implementation of ``DocumentStore``.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _bucket(self, company_id: str, collection: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault((company_id, collection), {})

    async def get(self, company_id: str, collection: str, key: str) -> dict[str, Any] | None:
        record = self._bucket(company_id, collection).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def list(self, company_id: str, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._bucket(company_id, collection).values()]

    async def put(
        self,
        company_id: str,
        collection: str,
        key: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        bucket = self._bucket(company_id, collection)
        if merge and key in bucket:
            bucket[key] = {**bucket[key], **copy.deepcopy(data)}
        else:
            bucket[key] = copy.deepcopy(data)

    async def create(
        self, company_id: str, collection: str, key: str, data: dict[str, Any]
    ) -> None:
        async with self._lock:
            bucket = self._bucket(company_id, collection)
            if key in bucket:
                raise ConflictError(
                    f"{collection}/{key} already exists", details={"company_id": company_id}
                )
            bucket[key] = copy.deepcopy(data)

    async def delete(self, company_id: str, collection: str, key: str) -> None:
        self._bucket(company_id, collection).pop(key, None)
