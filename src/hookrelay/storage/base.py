"""Base storage class and helpers.

Contains initialization, collection management, and shared utilities.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from hookrelay.config import settings
from hookrelay.exceptions import StorageError
from hookrelay.models import WebhookDelivery, WebhookEndpoint
from hookrelay.models.base import to_epoch

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", WebhookEndpoint, WebhookDelivery)

# Collection names by record type
COLLECTION_NAMES = {
    "endpoints": "endpoints",
    "deliveries": "deliveries",
}

# Qdrant is used as a payload store; every point carries the same vector.
PLACEHOLDER_VECTOR = [0.0]

# Datetime fields mirrored as epoch floats for range filtering
TIMESTAMP_MIRRORS = {
    "created_at": "created_ts",
    "next_retry_at": "next_retry_ts",
}

_KEYWORD_INDEXES = {
    "endpoints": ("owner_id", "events"),
    "deliveries": ("endpoint_id", "status", "event"),
}
_FLOAT_INDEXES = {
    "endpoints": ("created_ts",),
    "deliveries": ("created_ts", "next_retry_ts"),
}


class StorageBase:
    """Base class for HookRelay storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID conversion
    - Payload serialization/deserialization
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
                Pass ":memory:" for an in-process store.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Page size for scans. Defaults to
                settings.storage_max_scroll_limit.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        if self._url == ":memory:":
            self._client = AsyncQdrantClient(location=":memory:")
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        try:
            await self._ensure_collections()
        except (
            httpx.HTTPError,
            ConnectionError,
            ResponseHandlingException,
            UnexpectedResponse,
        ) as e:
            await self.close()
            raise StorageError(f"Could not initialize Qdrant at {self._url}: {e}") from e

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _collection_name(self, record_type: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(record_type, record_type)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with proper schemas."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for record_type in COLLECTION_NAMES:
            collection_name = self._collection_name(record_type)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(record_type)
            logger.info("Created collection %s", collection_name)

    async def _create_indexes(self, record_type: str) -> None:
        """Create payload indexes for efficient filtering."""
        collection_name = self._collection_name(record_type)
        for field_name in _KEYWORD_INDEXES[record_type]:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        for field_name in _FLOAT_INDEXES[record_type]:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.FLOAT,
            )

    def _record_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a record model to Qdrant payload."""
        data = record.model_dump(mode="json")
        for field_name, mirror in TIMESTAMP_MIRRORS.items():
            if field_name in data:
                data[mirror] = to_epoch(getattr(record, field_name))
        return data

    def _payload_to_record(self, payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert Qdrant payload back to a record model."""
        data = {k: v for k, v in payload.items() if k not in TIMESTAMP_MIRRORS.values()}
        return record_class.model_validate(data)

    def _point(self, record: WebhookEndpoint | WebhookDelivery) -> models.PointStruct:
        return models.PointStruct(
            id=self._key_to_point_id(record.id),
            vector=PLACEHOLDER_VECTOR,
            payload=self._record_to_payload(record),
        )

    async def _retrieve(
        self, record_type: str, record_id: str, record_class: type[RecordT]
    ) -> RecordT | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(record_type),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return self._payload_to_record(results[0].payload, record_class)

    async def _scroll(
        self,
        record_type: str,
        record_class: type[RecordT],
        conditions: list[models.Condition] | None = None,
    ) -> list[RecordT]:
        """Read every record matching the conditions.

        Pages through the collection `_max_scroll_limit` points at a time.
        Ordering and pagination are applied by the caller.
        """
        records: list[RecordT] = []
        offset: models.ExtendedPointId | None = None
        while True:
            results, offset = await self.client.scroll(
                collection_name=self._collection_name(record_type),
                scroll_filter=models.Filter(must=conditions) if conditions else None,
                limit=self._max_scroll_limit,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(
                self._payload_to_record(point.payload, record_class)
                for point in results
                if point.payload is not None
            )
            if offset is None:
                return records

    async def _count(
        self, record_type: str, conditions: list[models.Condition] | None = None
    ) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(record_type),
            count_filter=models.Filter(must=conditions) if conditions else None,
            exact=True,
        )
        return result.count


def match(key: str, value: Any) -> models.FieldCondition:
    """Payload equality condition."""
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


def match_any(key: str, values: list[str]) -> models.FieldCondition:
    """Payload membership condition."""
    return models.FieldCondition(key=key, match=models.MatchAny(any=values))


def in_range(
    key: str,
    *,
    gt: float | None = None,
    gte: float | None = None,
    lt: float | None = None,
    lte: float | None = None,
) -> models.FieldCondition:
    """Numeric range condition on an epoch mirror field."""
    return models.FieldCondition(key=key, range=models.Range(gt=gt, gte=gte, lt=lt, lte=lte))


def paginate(records: list[RecordT], page: int, limit: int) -> list[RecordT]:
    """Slice one page out of an ordered list (pages are 1-based)."""
    start = (page - 1) * limit
    return records[start : start + limit]
