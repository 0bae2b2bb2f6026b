"""Whole-document key/value stores backing the org chart repository."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import aiohttp
from azure.core.exceptions import AzureError
from azure.cosmos.aio import CosmosClient
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from orgchart.core.config import Settings
from orgchart.services.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


class DocumentNotFoundError(Exception):
    """The requested key has never been written."""


class DocumentStore(Protocol):
    read_only: bool

    async def get(self, key: str) -> bytes: ...

    async def put(self, key: str, data: bytes) -> None: ...

    async def check_connection(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryDocumentStore:
    """Process-local store for development and tests."""

    read_only = False

    def __init__(self, documents: dict[str, bytes] | None = None) -> None:
        self._documents: dict[str, bytes] = dict(documents or {})

    async def get(self, key: str) -> bytes:
        try:
            return self._documents[key]
        except KeyError:
            raise DocumentNotFoundError(key) from None

    async def put(self, key: str, data: bytes) -> None:
        self._documents[key] = bytes(data)

    async def check_connection(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class CosmosDocumentStore:
    """Stores each document as one Cosmos DB item ``{"id": key, "content": text}``.

    The container is expected to be partitioned on ``/id``.
    """

    read_only = False

    def __init__(self, client: CosmosClient, container: Any) -> None:
        self.client = client
        self.container = container

    @classmethod
    def from_settings(cls, settings: Settings) -> CosmosDocumentStore:
        client = CosmosClient(settings.COSMOS_DB_ENDPOINT, settings.COSMOS_DB_KEY)
        db = client.get_database_client(settings.COSMOS_DB_DATABASE)
        container = db.get_container_client(settings.COSMOS_DB_CONTAINER)
        logger.info("CosmosDocumentStore ready (container=%s)", settings.COSMOS_DB_CONTAINER)
        return cls(client, container)

    async def get(self, key: str) -> bytes:
        try:
            item = await self.container.read_item(item=key, partition_key=key)
        except CosmosResourceNotFoundError:
            raise DocumentNotFoundError(key) from None
        except AzureError as e:
            logger.error("Cosmos DB read failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Failed to read document '{key}': {e}") from e
        return str(item.get("content", "")).encode("utf-8")

    async def put(self, key: str, data: bytes) -> None:
        try:
            await self.container.upsert_item({"id": key, "content": data.decode("utf-8")})
        except AzureError as e:
            logger.error("Cosmos DB write failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Failed to write document '{key}': {e}") from e

    async def check_connection(self) -> bool:
        try:
            await self.container.read()
            return True
        except Exception:
            logger.exception("Cosmos DB connection check failed")
            return False

    async def close(self) -> None:
        await self.client.close()


class UrlDocumentStore:
    """Read-only store that fetches the document from a fixed URL, whatever the key."""

    read_only = True

    def __init__(self, url: str, timeout_seconds: float = 30.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def get(self, key: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.url) as response:
                    if response.status == 404:
                        raise DocumentNotFoundError(key)
                    if response.status != 200:
                        error_text = await response.text()
                        raise StorageUnavailableError(
                            f"Fetching {self.url} failed: {response.status} - {error_text}"
                        )
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to fetch org chart from %s: %s", self.url, e)
            raise StorageUnavailableError(f"Failed to fetch org chart from {self.url}: {e}") from e

    async def put(self, key: str, data: bytes) -> None:
        raise StorageUnavailableError("URL document store is read-only")

    async def check_connection(self) -> bool:
        try:
            await self.get("")
            return True
        except DocumentNotFoundError:
            return True
        except StorageUnavailableError:
            logger.exception("URL document store connection check failed")
            return False

    async def close(self) -> None:
        pass


def build_document_store(settings: Settings) -> DocumentStore:
    store_type = settings.DOCUMENT_STORE_TYPE.lower()

    if store_type == "memory":
        logger.warning("Using in-memory document store; changes are lost on restart")
        return InMemoryDocumentStore()

    if store_type == "cosmos":
        if not settings.COSMOS_DB_ENDPOINT or not settings.COSMOS_DB_KEY:
            raise ValueError("COSMOS_DB_ENDPOINT and COSMOS_DB_KEY are required for the cosmos document store")
        return CosmosDocumentStore.from_settings(settings)

    if store_type == "url":
        if not settings.ORGCHART_DATA_URL:
            raise ValueError("ORGCHART_DATA_URL is required for the url document store")
        return UrlDocumentStore(settings.ORGCHART_DATA_URL, settings.ORGCHART_DATA_TIMEOUT_SECONDS)

    raise ValueError(f"Unknown DOCUMENT_STORE_TYPE: {settings.DOCUMENT_STORE_TYPE}")
