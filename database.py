"""
MongoDB access for the attendance/conduct API.

The client is created at import time from DATABASE_URL / DATABASE_NAME.
When either is missing ``db`` stays None and the API reports the database
as unavailable instead of failing to start.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        client = MongoClient(DATABASE_URL)
        db = client[DATABASE_NAME]
        logger.info("MongoDB client created for database %s", DATABASE_NAME)
    except Exception as e:
        logger.error("Could not create MongoDB client: %s", e)
        client = None
        db = None
else:
    logger.warning("DATABASE_URL/DATABASE_NAME not set, database disabled")


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = _now()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes() -> None:
    if db is None:
        return
    db["estudiante"].create_index("identificacion", unique=True)
    db["usuario"].create_index("username", unique=True)
