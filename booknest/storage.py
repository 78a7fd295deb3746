import logging
import os

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.collation import Collation

load_dotenv()
logger = logging.getLogger(__name__)

MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://mongo:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "booknest")
MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))

client: AsyncIOMotorClient = None


async def init_db():
    global client
    logger.info(f"Connecting to MongoDB database '{MONGODB_DB}'")
    client = AsyncIOMotorClient(MONGODB_URL, timeoutMS=MONGODB_TIMEOUT_MS)


async def close_db_connection():
    global client
    if client:
        client.close()
        client = None


def get_database() -> AsyncIOMotorDatabase:
    return client[MONGODB_DB]


async def ensure_indexes(db: AsyncIOMotorDatabase):
    # Case-insensitive uniqueness for category names.
    await db.categories.create_index(
        [("name", ASCENDING)],
        unique=True,
        collation=Collation(locale="en", strength=2),
    )
    await db.borrows.create_index([("userEmail", ASCENDING), ("bookId", ASCENDING)])
    await db.reviews.create_index([("bookId", ASCENDING)])
    await db.books.create_index([("createdAt", DESCENDING)])
    logger.info("MongoDB indexes ensured")
