from motor.motor_asyncio import AsyncIOMotorClient
from livepoll.core.config import settings

client: AsyncIOMotorClient | None = None

def get_client() -> AsyncIOMotorClient:
    global client
    if client is None:
        client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=False)
    return client

def get_db():
    return get_client()[settings.MONGO_DB]

def close_client():
    global client
    if client is not None:
        client.close()
        client = None
