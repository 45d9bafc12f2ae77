"""Base repository class with common database operations."""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base repository providing common CRUD operations.

    Documents use the model's string ``id`` as their ``_id``; subclasses set
    ``model_class`` to enable automatic document-to-model conversion.
    """

    model_class: type[T]

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Initialize repository with a MongoDB collection.

        Args:
            collection: Motor collection instance
        """
        self.collection = collection

    def _to_model(self, doc: dict[str, Any] | None) -> T | None:
        """Convert MongoDB document to Pydantic model."""
        if doc is None:
            return None
        if "_id" in doc:
            doc["id"] = str(doc.pop("_id"))
        return self.model_class.model_validate(doc)

    def _to_models(self, docs: list[dict[str, Any]]) -> list[T]:
        """Convert list of MongoDB documents to models."""
        return [self._to_model(doc) for doc in docs if doc is not None]

    @staticmethod
    def _to_document(model: BaseModel) -> dict[str, Any]:
        """Convert a model to a document keyed by ``_id``."""
        document = model.model_dump()
        document["_id"] = document.pop("id")
        return document

    async def find_by_id(self, id: str) -> T | None:
        """
        Find document by ID.

        Args:
            id: Document ID

        Returns:
            Document as model, or None if not found
        """
        doc = await self.collection.find_one({"_id": id})
        return self._to_model(doc)

    async def find_many(
        self,
        filter: dict[str, Any] | None = None,
        sort: list[tuple[str, int]] | None = None,
        limit: int = 100,
        skip: int = 0,
    ) -> list[T]:
        """
        Find multiple documents matching filter.

        Args:
            filter: MongoDB query filter
            sort: List of (field, direction) tuples
            limit: Maximum documents to return
            skip: Number of documents to skip

        Returns:
            List of documents as models
        """
        cursor = self.collection.find(filter or {})

        if sort:
            cursor = cursor.sort(sort)

        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return self._to_models(docs)

    async def find_one(self, filter: dict[str, Any]) -> T | None:
        """
        Find single document matching filter.

        Args:
            filter: MongoDB query filter

        Returns:
            Document as model, or None if not found
        """
        doc = await self.collection.find_one(filter)
        return self._to_model(doc)

    async def insert_one(self, document: dict[str, Any]) -> str:
        """
        Insert a single document.

        Args:
            document: Document to insert

        Returns:
            Inserted document ID as string
        """
        if document.get("created_at") is None:
            document["created_at"] = datetime.now(UTC)

        result = await self.collection.insert_one(document)
        return str(result.inserted_id)

    async def update_one(
        self,
        id: str,
        update: dict[str, Any],
        upsert: bool = False,
    ) -> bool:
        """
        Update a single document by ID.

        Args:
            id: Document ID
            update: Update operations (will be wrapped in $set if not an operator)
            upsert: Create document if it doesn't exist

        Returns:
            True if a document matched
        """
        if not any(key.startswith("$") for key in update.keys()):
            update = {"$set": update}

        if "$set" in update:
            update["$set"]["updated_at"] = datetime.now(UTC)

        result = await self.collection.update_one(
            {"_id": id},
            update,
            upsert=upsert,
        )
        return result.matched_count > 0 or result.upserted_id is not None

    async def delete_one(self, id: str) -> bool:
        """
        Delete a single document by ID.

        Args:
            id: Document ID

        Returns:
            True if document was deleted
        """
        result = await self.collection.delete_one({"_id": id})
        return result.deleted_count > 0

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        """
        Count documents matching filter.

        Args:
            filter: MongoDB query filter

        Returns:
            Document count
        """
        return await self.collection.count_documents(filter or {})

    async def aggregate(
        self,
        pipeline: list[dict[str, Any]],
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        Execute aggregation pipeline.

        Args:
            pipeline: MongoDB aggregation pipeline
            limit: Maximum results to return

        Returns:
            Aggregation results
        """
        cursor = self.collection.aggregate(pipeline)
        return await cursor.to_list(length=limit)
