import logging
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from core.errors import ConflictError, InternalServerError, ValidationError

logger = logging.getLogger(__name__)

EntityId = Union[str, ObjectId]


def to_object_id(value: EntityId, field_name: str = "id") -> ObjectId:
    """Convert a path or claim value to an ObjectId, raising ValidationError when malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {field_name} format: {value}")


class MongoRepository:
    """Persistence collaborator for one collection.

    Lookups return the document or ``None`` for "not found"; every other
    database failure surfaces as ``InternalServerError``. A unique index
    violation on insert surfaces as ``ConflictError``.
    """

    def __init__(self, collection: Collection, natural_key: Optional[str] = None):
        self.collection = collection
        self.natural_key = natural_key

    @property
    def name(self) -> str:
        return self.collection.name

    def find_by_id(self, entity_id: EntityId) -> Optional[Dict[str, Any]]:
        return self.find_one({"_id": to_object_id(entity_id)})

    def find_by_natural_key(self, value: Any) -> Optional[Dict[str, Any]]:
        if not self.natural_key:
            raise InternalServerError(f"Collection {self.name} has no natural key")
        return self.find_one({self.natural_key: value})

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = self.collection.find_one(query)
            if result is None:
                logger.debug(f"No document found in {self.name} for query: {query}")
            return result
        except PyMongoError as e:
            logger.error(f"Database operation failed finding in {self.name}: {str(e)}", exc_info=True)
            raise InternalServerError(f"Failed to find document: {str(e)}")

    def find_many(
        self,
        query: Optional[Dict[str, Any]] = None,
        sort_field: str = "created_at",
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(query or {}).sort(sort_field, DESCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            logger.error(f"Database operation failed listing {self.name}: {str(e)}", exc_info=True)
            raise InternalServerError(f"Failed to list documents: {str(e)}")

    def insert(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert ``document`` and return it with its generated ``_id``."""
        try:
            result = self.collection.insert_one(document)
            document["_id"] = result.inserted_id
            logger.info(f"Inserted document into {self.name} with ID: {result.inserted_id}")
            return document
        except DuplicateKeyError as dke:
            logger.warning(f"Duplicate key error inserting into {self.name}: {str(dke)}")
            raise ConflictError(f"{self.natural_key or 'Entry'} is already registered")
        except OperationFailure as of:
            logger.error(f"Database operation failed inserting into {self.name}: {str(of)}", exc_info=True)
            raise InternalServerError(f"Failed to insert document: {str(of)}")
        except PyMongoError as e:
            logger.error(f"Unexpected error inserting into {self.name}: {str(e)}", exc_info=True)
            raise InternalServerError(f"Failed to insert document: {str(e)}")

    def update_fields(self, entity_id: EntityId, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Set ``fields`` on one document and return the updated document, or None if it is gone."""
        try:
            return self.collection.find_one_and_update(
                {"_id": to_object_id(entity_id)},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as dke:
            logger.warning(f"Duplicate key error updating {self.name}: {str(dke)}")
            raise ConflictError(f"{self.natural_key or 'Entry'} is already registered")
        except PyMongoError as e:
            logger.error(f"Database operation failed updating {self.name}: {str(e)}", exc_info=True)
            raise InternalServerError(f"Failed to update document: {str(e)}")

    def delete(self, entity_id: EntityId) -> bool:
        try:
            result = self.collection.delete_one({"_id": to_object_id(entity_id)})
            return result.deleted_count == 1
        except PyMongoError as e:
            logger.error(f"Database operation failed deleting from {self.name}: {str(e)}", exc_info=True)
            raise InternalServerError(f"Failed to delete document: {str(e)}")


class MongoStore:
    """Bundles the repositories of every entity collection."""

    def __init__(self, db: Database):
        self.db = db
        self.accounts = MongoRepository(db.accounts, natural_key="email")
        self.listings = MongoRepository(db.listings)
        self.posts = MongoRepository(db.posts)
        self.groups = MongoRepository(db.groups)

    def repository(self, collection: str) -> MongoRepository:
        return getattr(self, collection)
