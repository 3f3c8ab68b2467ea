"""
Database

MongoDB connection bootstrap and the small helpers the route handlers use.

The connection is opened once per process and handed to the app, which
exposes it to handlers through the `get_db` dependency.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import OperationFailure

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "storemari"
SERVER_SELECTION_TIMEOUT_MS = 5000


class DatabaseConfigError(Exception):
    """Raised when the connection string is missing."""


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None) -> Database:
    database_url = database_url or os.getenv("DATABASE_URL")
    if not database_url:
        raise DatabaseConfigError("DATABASE_URL is not defined in environment variables")

    logger.info("Connecting to MongoDB...")
    # tz_aware so stored timestamps come back as UTC-aware datetimes
    client = MongoClient(database_url, serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS, tz_aware=True)
    try:
        client.admin.command("ping")

        database_name = database_name or os.getenv("DATABASE_NAME")
        if database_name:
            db = client[database_name]
        else:
            db = client.get_default_database(default=DEFAULT_DATABASE_NAME)

        logger.info("MongoDB connected successfully. Database: %s", db.name)
        collections = db.list_collection_names()
        if collections:
            logger.info("Collections: %s", ", ".join(collections))
        else:
            logger.info("No collections yet (will be created when data is added)")

        ensure_indexes(db)
    except Exception:
        client.close()
        raise
    return db


def ensure_indexes(db: Database) -> None:
    indexes = [
        # users.email carries the uniqueness the signup check relies on
        ("users", "email", True),
        ("products", "category", False),
    ]
    for collection_name, field, unique in indexes:
        try:
            db[collection_name].create_index([(field, ASCENDING)], unique=unique)
        except OperationFailure as e:
            logger.warning("Could not create index on %s.%s: %s", collection_name, field, e)


def disconnect(db: Optional[Database]) -> None:
    if db is None:
        return
    try:
        db.client.close()
        logger.info("MongoDB connection closed")
    except Exception as e:
        logger.warning("Error while closing MongoDB connection: %s", e)


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the database handle of the running app."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not connected")
    return db


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping createdAt/updatedAt. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return list(db[collection_name].find(filter_dict or {}))


def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        elif hasattr(v, "isoformat"):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out
