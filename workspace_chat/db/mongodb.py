from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
from workspace_chat.models.group import Group
from workspace_chat.models.message import GroupMessage, DirectMessage
from workspace_chat.models.user import User
from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger

logger = get_logger(__name__)

DOCUMENT_MODELS = [User, Group, GroupMessage, DirectMessage]

_client: Optional[AsyncIOMotorClient] = None


def get_client() -> Optional[AsyncIOMotorClient]:
    return _client


async def init_db() -> AsyncIOMotorClient:
    """
    Initialize database connection and Beanie ODM.

    Connection pool configuration:
    - maxPoolSize=50: Maximum number of connections
    - minPoolSize=10: Pre-allocated connections
    - maxIdleTimeMS=45000: Close idle connections after 45s
    - serverSelectionTimeoutMS=5000: Fail fast if MongoDB is down
    """
    global _client

    try:
        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            minPoolSize=10,
            maxIdleTimeMS=45000,
            serverSelectionTimeoutMS=5000,
            retryWrites=True,
            retryReads=True,
        )

        await client.admin.command('ping')
        logger.info("mongodb_connected", database=settings.DATABASE_NAME)

        # Creates the declared indexes on first start
        await init_beanie(
            database=client[settings.DATABASE_NAME],
            document_models=DOCUMENT_MODELS
        )

        logger.info("beanie_initialized", models=[model.__name__ for model in DOCUMENT_MODELS])

    except Exception as e:
        logger.error("mongodb_connection_failed", error=str(e))
        raise

    _client = client
    return client


async def close_db():
    """Close database connection."""
    global _client

    if _client:
        _client.close()
        _client = None
        logger.info("mongodb_connection_closed")
