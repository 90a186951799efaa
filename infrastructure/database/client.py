import logging

from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)


def create_client(uri: str) -> MongoClient:
    """Create the process-wide MongoDB client; called once from the app lifespan."""
    try:
        client = MongoClient(uri, tz_aware=True)
        logger.info("MongoDB client created")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {str(e)}", exc_info=True)
        raise


def get_database(client: MongoClient, name: str) -> Database:
    db = client[name]
    logger.info(f"Connected to MongoDB database: {name}")
    return db
