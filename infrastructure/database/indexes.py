import logging

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

logger = logging.getLogger(__name__)


def create_indexes(db: Database) -> None:
    """Create indexes for MongoDB collections."""
    # Accounts collection
    db.accounts.create_index([("email", ASCENDING)], unique=True)
    db.accounts.create_index([("verification_token", ASCENDING)], sparse=True)
    db.accounts.create_index([("reset_token", ASCENDING)], sparse=True)

    # Listings collection
    db.listings.create_index([("owner_id", ASCENDING)])
    db.listings.create_index([("created_at", DESCENDING)])

    # Posts collection
    db.posts.create_index([("owner_id", ASCENDING)])
    db.posts.create_index([("is_private", ASCENDING), ("created_at", DESCENDING)])

    # Groups collection
    db.groups.create_index([("owner_id", ASCENDING)])

    logger.info("Database indexes created successfully")
