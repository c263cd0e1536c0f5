"""MongoDB connection shared by the jobs DAL and deck storage.

Env:
  - MONGODB_URI: e.g., mongodb+srv://<user>:<pass>@<cluster>/?retryWrites=true&w=majority
  - MONGODB_DB_NAME (optional): database name (default deck_agents)
  - MONGODB_TIMEOUT_MS (optional): server selection timeout in ms (default 5000)
  - DECK_JOBS_COLLECTION (optional): jobs collection name (default deck_jobs)
  - DECK_FILES_BUCKET (optional): GridFS bucket holding rendered decks (default decks)
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.errors import ServerSelectionTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MongoSettings:
    uri: str
    db_name: str = "deck_agents"
    timeout_ms: int = 5000
    jobs_collection: str = "deck_jobs"
    deck_bucket: str = "decks"

    @classmethod
    def from_env(cls) -> "MongoSettings":
        load_dotenv()
        return cls(
            uri=os.environ.get("MONGODB_URI", "").strip(),
            db_name=os.environ.get("MONGODB_DB_NAME", "deck_agents"),
            timeout_ms=int(os.environ.get("MONGODB_TIMEOUT_MS", "5000")),
            jobs_collection=os.environ.get("DECK_JOBS_COLLECTION", "deck_jobs"),
            deck_bucket=os.environ.get("DECK_FILES_BUCKET", "decks"),
        )


@lru_cache(maxsize=1)
def get_mongo_client() -> MongoClient:
    """Create the cached client and ping it so a bad URI fails at first use."""
    settings = MongoSettings.from_env()
    if not settings.uri:
        raise RuntimeError("MONGODB_URI is not set")

    client = MongoClient(settings.uri, serverSelectionTimeoutMS=settings.timeout_ms)
    try:
        client.admin.command("ping")
    except ServerSelectionTimeoutError as e:
        raise RuntimeError(f"Cannot connect to MongoDB: {e}")
    logger.info("Connected to MongoDB database %s", settings.db_name)
    return client


def get_db_name() -> str:
    return MongoSettings.from_env().db_name


def get_jobs_collection_name() -> str:
    return MongoSettings.from_env().jobs_collection


def get_deck_bucket_name() -> str:
    return MongoSettings.from_env().deck_bucket


def get_db():
    return get_mongo_client()[get_db_name()]


def reset_client() -> None:
    """Close and forget the cached client (scripts that switch databases)."""
    if get_mongo_client.cache_info().currsize:
        get_mongo_client().close()
    get_mongo_client.cache_clear()
