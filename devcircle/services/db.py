import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
import os
from dotenv import load_dotenv

from devcircle.utils.logging_config import get_logger
from devcircle.utils.utils import to_jsonable

logger = get_logger(__name__)

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "devcircle")

logger.info(f"Initializing MongoDB connection to database: {DB_NAME}")

# Motor connects lazily, so building the client never blocks on the server
try:
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URI)
    db = client[DB_NAME]
    logger.info("MongoDB client initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize MongoDB client: {e}")
    raise

# Collections
users_coll = db["users"]
connections_coll = db["connection_requests"]
conversations_coll = db["conversations"]
messages_coll = db["messages"]
code_documents_coll = db["code_documents"]


async def _ensure_index(coll, keys, **kwargs):
    name = f"{coll.name}.{'_'.join(k for k, _ in keys)}"
    try:
        await coll.create_index(keys, **kwargs)
        logger.debug(f"Created index on {name}")
    except Exception as e:
        if "already exists" in str(e).lower():
            logger.debug(f"Index on {name} already exists")
        else:
            logger.warning(f"Could not create index on {name}: {e}")


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    await _ensure_index(users_coll, [("email", ASCENDING)], unique=True)

    # One request per ordered pair of users
    await _ensure_index(
        connections_coll, [("fromReqId", ASCENDING), ("toReqId", ASCENDING)], unique=True
    )
    await _ensure_index(connections_coll, [("toReqId", ASCENDING), ("status", ASCENDING)])

    await _ensure_index(conversations_coll, [("participantsKey", ASCENDING)], unique=True, sparse=True)
    await _ensure_index(conversations_coll, [("participants", ASCENDING)])
    await _ensure_index(conversations_coll, [("updatedAt", DESCENDING)])

    await _ensure_index(messages_coll, [("conversation", ASCENDING), ("createdAt", ASCENDING)])
    await _ensure_index(messages_coll, [("conversation", ASCENDING), ("sender", ASCENDING)])
    await _ensure_index(messages_coll, [("conversation", ASCENDING), ("readBy", ASCENDING)])

    await _ensure_index(code_documents_coll, [("roomId", ASCENDING)], unique=True)
    await _ensure_index(code_documents_coll, [("createdBy", ASCENDING)])
    await _ensure_index(code_documents_coll, [("sharedWith.user", ASCENDING)])

    logger.info("Database index initialization completed")


def to_dict(doc):
    if not doc:
        return None
    return to_jsonable(doc)
