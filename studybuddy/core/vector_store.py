"""Qdrant vector store client."""

import asyncio
from typing import Any, Awaitable, TypeVar
from uuid import UUID

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
    VectorParams,
)

from studybuddy.config import get_settings
from studybuddy.core.errors import UpstreamFailure

settings = get_settings()

T = TypeVar("T")


def _content_filter(content_id: UUID | str) -> Filter:
    return Filter(
        must=[
            FieldCondition(
                key="content_id",
                match=MatchValue(value=str(content_id)),
            )
        ]
    )


class VectorStore:
    """Async Qdrant vector store keyed by content id."""

    def __init__(self, client: AsyncQdrantClient | None = None) -> None:
        self.client = client or AsyncQdrantClient(url=settings.qdrant_url)
        self.collection_name = settings.qdrant_collection
        self.vector_size = settings.embedding_dimensions
        self.timeout = settings.store_timeout_seconds

    async def _call(self, operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
        """Run a Qdrant call under a timeout, mapping transport errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(
                f"Vector store {operation} timed out", error_code="timeout"
            ) from e
        except ResponseHandlingException as e:
            raise UpstreamFailure(
                f"Vector store {operation} failed: {e}", error_code="unreachable"
            ) from e

    async def ensure_collection(self) -> None:
        """Create collection if it doesn't exist."""
        collections = await self.client.get_collections()
        collection_names = [c.name for c in collections.collections]

        if self.collection_name not in collection_names:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.vector_size,
                    distance=Distance.COSINE,
                ),
            )

            # Create payload indices for filtering
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="user_id",
                field_schema="keyword",
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="content_id",
                field_schema="keyword",
            )

    async def upsert_vectors(
        self,
        vectors: list[dict[str, Any]],
        batch_size: int = 200,
    ) -> None:
        """
        Upsert vectors in batches.

        Each entry should have:
        - id: str (UUID)
        - vector: list[float]
        - payload: dict with user_id, content_id, chunk_index, etc.
        """
        if not vectors:
            return

        for i in range(0, len(vectors), batch_size):
            batch = vectors[i:i + batch_size]
            points = [
                PointStruct(
                    id=entry["id"],
                    vector=entry["vector"],
                    payload=entry["payload"],
                )
                for entry in batch
            ]

            await self.client.upsert(
                collection_name=self.collection_name,
                points=points,
            )

    async def count_by_content(
        self,
        content_id: UUID | str,
        timeout: float | None = None,
    ) -> int:
        """Exact number of vectors stored for a content item."""
        try:
            result = await self._call(
                "count",
                self.client.count(
                    collection_name=self.collection_name,
                    count_filter=_content_filter(content_id),
                    exact=True,
                ),
                timeout,
            )
        except UnexpectedResponse as e:
            if e.status_code == 404:
                return 0  # No collection yet, nothing stored
            raise UpstreamFailure(
                f"Vector store count failed: {e}", error_code=str(e.status_code)
            ) from e
        return result.count

    async def delete_by_content(
        self,
        content_id: UUID | str,
        timeout: float | None = None,
    ) -> None:
        """Delete all vectors for a content item. Deleting nothing is a no-op."""
        try:
            await self._call(
                "delete",
                self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=FilterSelector(filter=_content_filter(content_id)),
                ),
                timeout,
            )
        except UnexpectedResponse as e:
            if e.status_code == 404:
                return  # No collection yet, nothing to delete
            raise UpstreamFailure(
                f"Vector store delete failed: {e}", error_code=str(e.status_code)
            ) from e


# Singleton instance
vector_store = VectorStore()
