"""
app/db/mongo.py

Purpose: MongoDB connection setup

- One Motor client per process, opened at startup with retries
- Collections: members, counters (member id sequence)
- Ping based health check
"""

import asyncio
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

CONNECT_ATTEMPTS = 3

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


def _open_client() -> AsyncIOMotorClient:
    # Webhook handling is short-lived; a small pool is plenty
    return AsyncIOMotorClient(
        settings.MONGODB_URL,
        maxPoolSize=20,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        retryWrites=True,
        retryReads=True,
        tz_aware=False,
    )


async def connect_to_mongo():
    """
    Opens the client and pings the server, backing off between attempts.

    Raises:
        ConnectionError: If MongoDB is unreachable after all attempts
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    delay = 2
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        client = _open_client()
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            logger.error(f"MongoDB ping failed (attempt {attempt}/{CONNECT_ATTEMPTS}): {e}")
            if attempt == CONNECT_ATTEMPTS:
                raise ConnectionError("Could not establish MongoDB connection") from e
            await asyncio.sleep(delay)
            delay *= 2
            continue

        _client = client
        _database = client[settings.MONGODB_DB_NAME]
        logger.info(f"✅ Connected to MongoDB database '{settings.MONGODB_DB_NAME}'")
        return


async def close_mongo_connection():
    global _client, _database

    if _client is not None:
        _client.close()
        _client = None
        _database = None


async def check_database_health() -> bool:
    """True if the client exists and answers a ping."""
    if _client is None:
        return False
    try:
        await _client.admin.command("ping")
    except PyMongoError as e:
        logger.error(f"Database health check failed: {e}")
        return False
    return True


def _collection(name: str) -> AsyncIOMotorCollection:
    if _database is None:
        raise RuntimeError("Database not initialized. Call connect_to_mongo() during startup.")
    return _database[name]


def get_members_collection() -> AsyncIOMotorCollection:
    """
    Returns the members collection.

    Fields:
    - member_id: int (unique, public; encoded in the QR code URL)
    - line_user_id: str (unique)
    - display_name: str
    - phone, card_number, photo_url, qr_code_url: str | None
    - state: int (RegistrationStep code)
    - pending_phone: str | None (phone change awaiting confirmation)
    - created_at, last_active_at: datetime
    """
    return _collection("members")


def get_counters_collection() -> AsyncIOMotorCollection:
    """
    Returns the counters collection ({_id: "member_id", seq: int}).
    """
    return _collection("counters")
