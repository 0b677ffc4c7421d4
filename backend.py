from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from constants import MONGO_URI, MONGO_DB, MONGO_TIMEOUT_MS, USERS_COLLECTION, CHATS_COLLECTION, MESSAGES_COLLECTION
from logging_config import get_logger

logger = get_logger(__name__)


class MessageStoreError(Exception):
    """Persisting or populating a message failed."""


def to_object_id(value: Any):
    """Ids come off the socket as strings; documents reference ObjectIds."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def serialize_document(value: Any):
    """Turn a Mongo document into something Socket.IO can JSON-encode."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(v) for v in value]
    return value


class MongoBackend:
    def __init__(self, mongo_uri: Optional[str] = None, db_name: Optional[str] = None, client: Optional[AsyncIOMotorClient] = None):
        self.mongo_uri = mongo_uri or MONGO_URI
        self.db_name = db_name or MONGO_DB
        logger.info(f"Initializing MongoBackend for database {self.db_name}")
        self.client = client or AsyncIOMotorClient(self.mongo_uri, tz_aware=True, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS)
        self.db = self.client[self.db_name]
        self.users = self.db[USERS_COLLECTION]
        self.chats = self.db[CHATS_COLLECTION]
        self.messages = self.db[MESSAGES_COLLECTION]

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
            logger.info("MongoDB connected")
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB connection error: {e}", exc_info=True)
            return False

    async def create(self, sender: Any, content: str, chat: Any) -> dict:
        """Insert a message document and return it with its new `_id`."""
        now = datetime.now(timezone.utc)
        document = {
            "sender": to_object_id(sender),
            "content": content,
            "chat": to_object_id(chat),
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            result = await self.messages.insert_one(document)
        except PyMongoError as e:
            raise MessageStoreError(f"Failed to save message in chat {chat}: {e}") from e
        document["_id"] = result.inserted_id
        logger.debug(f"Message {result.inserted_id} saved in chat {chat}")
        return document

    async def populate(self, record: dict) -> dict:
        """Resolve `sender` to {_id, name, email} and `chat` to the full chat document.

        A reference that no longer resolves becomes None, the same as an unmatched populate.
        """
        populated = dict(record)
        try:
            sender = await self.users.find_one({"_id": record.get("sender")}, {"name": 1, "email": 1})
            chat = await self.chats.find_one({"_id": record.get("chat")})
        except PyMongoError as e:
            raise MessageStoreError(f"Failed to populate message {record.get('_id')}: {e}") from e

        if sender is None:
            logger.warning(f"Sender {record.get('sender')} of message {record.get('_id')} not found")
        if chat is None:
            logger.warning(f"Chat {record.get('chat')} of message {record.get('_id')} not found")
        populated["sender"] = sender
        populated["chat"] = chat
        return serialize_document(populated)

    def close(self):
        self.client.close()
        logger.info("MongoDB client closed")
