"""Storage backends for meal records.

``MongoMealStore`` talks to the ``user_meals`` collection through motor.
``InMemoryMealStore`` keeps documents in a dict and is used by tests and for
local runs without a database (``MEAL_STORE_BACKEND=inmemory``).

Both take and return the same camelCase field names. MongoDB keeps the
consumption time under ``date`` and the identifier under ``_id``; the
mapping happens in ``_to_document`` / ``_from_document``.
"""

import logging
import os
from copy import deepcopy
from datetime import datetime
from typing import Any, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from nutripocket_mcp.errors import StoreError
from nutripocket_mcp.models import MealRecord

logger = logging.getLogger(__name__)

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE = "nutripocket"
DEFAULT_COLLECTION = "user_meals"


class MealStore(Protocol):
    """Operations the ledger needs from a storage backend."""

    async def insert(self, meal: dict[str, Any]) -> MealRecord: ...

    async def find_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[MealRecord]: ...

    async def update(
        self, meal_id: str, changes: dict[str, Any], user_id: str | None = None
    ) -> tuple[int, int]: ...

    async def delete(self, meal_id: str, user_id: str | None = None) -> int: ...

    def close(self) -> None: ...


def _object_id(meal_id: str) -> ObjectId:
    """Parse a meal id, raising StoreError for malformed values."""
    try:
        return ObjectId(meal_id)
    except (InvalidId, TypeError) as e:
        raise StoreError(f"Invalid meal id '{meal_id}'") from e


class MongoMealStore:
    """Meal storage backed by a MongoDB collection.

    One motor client is shared by every call; motor pools connections
    internally, so each operation borrows a connection for its single request.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient | None = None,
        database: str | None = None,
        collection: str | None = None,
    ):
        """Initialize the store.

        Args:
            client: Motor client (if None, one is created from MONGODB_URI)
            database: Database name (defaults to MONGODB_DATABASE or "nutripocket")
            collection: Collection name (defaults to MONGODB_MEALS_COLLECTION or "user_meals")
        """
        if client is None:
            uri = os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI)
            client = AsyncIOMotorClient(uri, tz_aware=True)
        self._client = client

        database_name = database or os.getenv("MONGODB_DATABASE", DEFAULT_DATABASE)
        collection_name = collection or os.getenv(
            "MONGODB_MEALS_COLLECTION", DEFAULT_COLLECTION
        )
        self._collection: AsyncIOMotorCollection = self._client[database_name][collection_name]
        self.collection_name = collection_name

        logger.info(f"Initialized MongoMealStore for {database_name}.{collection_name}")

    @staticmethod
    def _to_document(meal: dict[str, Any]) -> dict[str, Any]:
        document = {key: value for key, value in meal.items() if key != "consumedAt"}
        document["date"] = meal["consumedAt"]
        return document

    @staticmethod
    def _from_document(doc: dict[str, Any]) -> MealRecord:
        return MealRecord(
            id=str(doc["_id"]),
            userId=doc["userId"],
            mealType=doc["mealType"],
            description=doc["description"],
            calories=doc.get("calories") or 0,
            carbs=doc.get("carbs") or 0,
            protein=doc.get("protein") or 0,
            fat=doc.get("fat") or 0,
            consumedAt=doc["date"],
            createdAt=doc["createdAt"],
            updatedAt=doc["updatedAt"],
        )

    def _ownership_filter(self, meal_id: str, user_id: str | None) -> dict[str, Any]:
        filter_dict: dict[str, Any] = {"_id": _object_id(meal_id)}
        if user_id is not None:
            filter_dict["userId"] = user_id
        return filter_dict

    async def insert(self, meal: dict[str, Any]) -> MealRecord:
        """Insert a meal and return it with its generated id."""
        document = self._to_document(meal)
        try:
            result = await self._collection.insert_one(document)
        except PyMongoError as e:
            logger.error(f"Error in insert_one: collection={self.collection_name}, error={e}")
            raise StoreError(f"Failed to insert meal: {e}") from e

        document["_id"] = result.inserted_id
        return self._from_document(document)

    async def find_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[MealRecord]:
        """Find a user's meals consumed in [start, end), oldest first."""
        filter_dict = {"userId": user_id, "date": {"$gte": start, "$lt": end}}
        try:
            cursor = self._collection.find(filter_dict).sort([("date", ASCENDING)])
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(
                f"Error in find: collection={self.collection_name}, "
                f"filter={filter_dict}, error={e}"
            )
            raise StoreError(f"Failed to query meals: {e}") from e

        return [self._from_document(doc) for doc in documents]

    async def update(
        self, meal_id: str, changes: dict[str, Any], user_id: str | None = None
    ) -> tuple[int, int]:
        """Apply ``$set`` with the given fields.

        Returns:
            (matched_count, modified_count)
        """
        filter_dict = self._ownership_filter(meal_id, user_id)
        try:
            result = await self._collection.update_one(filter_dict, {"$set": changes})
        except PyMongoError as e:
            logger.error(
                f"Error in update_one: collection={self.collection_name}, "
                f"filter={filter_dict}, error={e}"
            )
            raise StoreError(f"Failed to update meal: {e}") from e

        return result.matched_count, result.modified_count

    async def delete(self, meal_id: str, user_id: str | None = None) -> int:
        """Delete a meal. Returns the number of documents deleted (0 or 1)."""
        filter_dict = self._ownership_filter(meal_id, user_id)
        try:
            result = await self._collection.delete_one(filter_dict)
        except PyMongoError as e:
            logger.error(
                f"Error in delete_one: collection={self.collection_name}, "
                f"filter={filter_dict}, error={e}"
            )
            raise StoreError(f"Failed to delete meal: {e}") from e

        return result.deleted_count

    def close(self) -> None:
        """Close the MongoDB client."""
        self._client.close()
        logger.info("Closed MongoDB connection")


class InMemoryMealStore:
    """Dict-backed meal storage.

    Not persistent. Stored documents are deep-copied on the way in so callers
    cannot mutate them.
    """

    def __init__(self) -> None:
        self._meals: dict[str, dict[str, Any]] = {}

    def _lookup(self, meal_id: str, user_id: str | None) -> dict[str, Any] | None:
        key = str(_object_id(meal_id))
        meal = self._meals.get(key)
        if meal is None or (user_id is not None and meal["userId"] != user_id):
            return None
        return meal

    async def insert(self, meal: dict[str, Any]) -> MealRecord:
        meal_id = str(ObjectId())
        stored = deepcopy(meal)
        stored["id"] = meal_id
        self._meals[meal_id] = stored
        return MealRecord.model_validate(stored)

    async def find_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[MealRecord]:
        matches = [
            meal
            for meal in self._meals.values()
            if meal["userId"] == user_id and start <= meal["consumedAt"] < end
        ]
        matches.sort(key=lambda meal: meal["consumedAt"])
        return [MealRecord.model_validate(meal) for meal in matches]

    async def update(
        self, meal_id: str, changes: dict[str, Any], user_id: str | None = None
    ) -> tuple[int, int]:
        meal = self._lookup(meal_id, user_id)
        if meal is None:
            return 0, 0

        modified = any(meal.get(key) != value for key, value in changes.items())
        meal.update(deepcopy(changes))
        return 1, int(modified)

    async def delete(self, meal_id: str, user_id: str | None = None) -> int:
        meal = self._lookup(meal_id, user_id)
        if meal is None:
            return 0

        del self._meals[meal["id"]]
        return 1

    def close(self) -> None:
        self._meals.clear()


# Process-wide store instance
_store_instance: MealStore | None = None


def get_store() -> MealStore:
    """Get or create the store selected by MEAL_STORE_BACKEND.

    Values:
        - "mongodb": MongoMealStore (default)
        - "inmemory": InMemoryMealStore

    Raises:
        ValueError: If MEAL_STORE_BACKEND names an unknown backend
    """
    global _store_instance

    if _store_instance is None:
        backend = os.getenv("MEAL_STORE_BACKEND", "mongodb").lower()

        if backend == "mongodb":
            _store_instance = MongoMealStore()
        elif backend == "inmemory":
            _store_instance = InMemoryMealStore()
        else:
            raise ValueError(
                f"Unknown MEAL_STORE_BACKEND '{backend}'. Use 'mongodb' or 'inmemory'."
            )

        logger.info(f"Using {backend} meal store")

    return _store_instance


def close_store() -> None:
    """Close the process-wide store, if one was created."""
    global _store_instance

    if _store_instance is not None:
        _store_instance.close()
        _store_instance = None
